from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from secrets import token_hex
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from anisync.logging_context import set_run_token
from anisync.logging_utils import structured_log
from anisync.services.ingestion import failures as failure_ledger
from anisync.services.ingestion.fetcher import RecordFetcher
from anisync.services.ingestion.queries import catalog_entry_exists, resolve_start_id
from anisync.services.ingestion.run_state import RunStateTracker, run_state
from anisync.services.ingestion.types import (
    FetchStatus,
    RunProgress,
    RunSummary,
    StopReason,
)
from anisync.services.ingestion.upsert import persist_catalog_record
from anisync.settings import settings

logger = logging.getLogger(__name__)

_background_tasks: set[asyncio.Task[Any]] = set()


def _finish_background_task(task: asyncio.Task[Any]) -> None:
    _background_tasks.discard(task)
    if task.cancelled():
        return
    # Marks the exception retrieved for tasks nobody awaits.
    exc = task.exception()
    if exc is not None:
        logger.error("ingestion.background_run_failed", exc_info=exc)


def _terminal_reason(
    *,
    tracker: RunStateTracker,
    generation: int,
    progress: RunProgress,
    limit: int,
    failure_imbalance_threshold: int,
) -> StopReason | None:
    if not tracker.is_running(generation):
        return StopReason.HARD_STOP
    if progress.success_count >= limit:
        return StopReason.LIMIT_REACHED
    # Cumulative imbalance over the whole run, not a consecutive streak.
    if progress.failure_count - progress.success_count >= failure_imbalance_threshold:
        return StopReason.FAILURE_THRESHOLD
    return None


class IngestionService:
    """Walks the catalog ID space and stores every record not yet present.

    One run at a time per process: ``run``/``start_background`` claim the
    shared RunStateTracker and raise RunAlreadyInProgressError when a run is
    live. Hard stops are observed before each ID; graceful stops only after
    the current ID has been fully fetched and written.
    """

    def __init__(
        self,
        *,
        fetcher: RecordFetcher,
        session_factory: async_sessionmaker[AsyncSession],
        tracker: RunStateTracker | None = None,
        request_delay_seconds: float | None = None,
        failure_imbalance_threshold: int | None = None,
        max_failure_attempts: int | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._fetcher = fetcher
        self._session_factory = session_factory
        self._tracker = tracker or run_state
        self._request_delay_seconds = max(
            0.0,
            float(
                settings.ingestion_request_delay_seconds
                if request_delay_seconds is None
                else request_delay_seconds
            ),
        )
        self._failure_imbalance_threshold = max(
            1,
            int(
                settings.ingestion_failure_imbalance_threshold
                if failure_imbalance_threshold is None
                else failure_imbalance_threshold
            ),
        )
        self._max_failure_attempts = max(
            1,
            int(settings.ingestion_max_failure_attempts if max_failure_attempts is None else max_failure_attempts),
        )
        self._sleep = sleep

    @property
    def tracker(self) -> RunStateTracker:
        return self._tracker

    async def run(
        self,
        *,
        start_id: int | None = None,
        limit: int | None = None,
    ) -> RunSummary:
        claim = self._tracker.start()
        return await self._execute(generation=claim.generation, start_id=start_id, limit=limit)

    def start_background(
        self,
        *,
        start_id: int | None = None,
        limit: int | None = None,
    ) -> asyncio.Task[RunSummary]:
        """Claim the run synchronously, then execute it in a detached task."""
        claim = self._tracker.start()
        task = asyncio.create_task(
            self._execute(generation=claim.generation, start_id=start_id, limit=limit),
            name="anisync-ingestion-run",
        )
        _background_tasks.add(task)
        task.add_done_callback(_finish_background_task)
        return task

    async def _execute(self, *, generation: int, start_id: int | None, limit: int | None) -> RunSummary:
        set_run_token(token_hex(4))
        summary: RunSummary | None = None
        try:
            async with self._session_factory() as db_session:
                summary = await self._run_loop(
                    db_session,
                    generation=generation,
                    start_id=start_id,
                    limit=limit,
                )
            return summary
        finally:
            self._tracker.finish(
                summary.as_dict() if summary is not None else None,
                generation=generation,
            )
            set_run_token(None)

    async def _run_loop(
        self,
        db_session: AsyncSession,
        *,
        generation: int,
        start_id: int | None,
        limit: int | None,
    ) -> RunSummary:
        resolved_start = int(start_id) if start_id is not None else await resolve_start_id(db_session)
        resolved_start = max(1, resolved_start)
        batch_limit = max(1, int(settings.ingestion_batch_limit if limit is None else limit))
        progress = RunProgress()
        structured_log(
            logger,
            "info",
            "ingestion.run_started",
            start_id=resolved_start,
            limit=batch_limit,
            failure_imbalance_threshold=self._failure_imbalance_threshold,
            max_failure_attempts=self._max_failure_attempts,
        )

        catalog_id = resolved_start
        last_id = resolved_start
        ids_processed = 0
        while True:
            stop_reason = _terminal_reason(
                tracker=self._tracker,
                generation=generation,
                progress=progress,
                limit=batch_limit,
                failure_imbalance_threshold=self._failure_imbalance_threshold,
            )
            if stop_reason is not None:
                break

            last_id = catalog_id
            self._tracker.touch(generation)
            await self._process_id(db_session, catalog_id=catalog_id, progress=progress)
            ids_processed += 1
            self._tracker.touch(generation)

            if self._tracker.is_graceful_stop_requested():
                stop_reason = StopReason.GRACEFUL_STOP
                break
            catalog_id += 1

        summary = RunSummary(
            start_id=resolved_start,
            last_id=last_id,
            success_count=progress.success_count,
            failure_count=progress.failure_count,
            skipped_present_count=progress.skipped_present_count,
            skipped_capped_count=progress.skipped_capped_count,
            stop_reason=stop_reason,
        )
        structured_log(
            logger,
            "info",
            "ingestion.run_completed",
            ids_processed=ids_processed,
            **summary.as_dict(),
        )
        return summary

    async def _process_id(
        self,
        db_session: AsyncSession,
        *,
        catalog_id: int,
        progress: RunProgress,
    ) -> None:
        if await catalog_entry_exists(db_session, catalog_id=catalog_id):
            progress.skipped_present_count += 1
            structured_log(logger, "debug", "ingestion.id_skipped_present", catalog_id=catalog_id)
            return

        attempt_count = await failure_ledger.get_attempt_count(db_session, catalog_id=catalog_id)
        if attempt_count >= self._max_failure_attempts:
            progress.skipped_capped_count += 1
            structured_log(
                logger,
                "info",
                "ingestion.id_skipped_retry_cap",
                catalog_id=catalog_id,
                attempt_count=attempt_count,
            )
            return

        outcome = await self._fetcher.fetch(db_session, catalog_id=catalog_id)
        if outcome.status == FetchStatus.ALREADY_PRESENT:
            progress.skipped_present_count += 1
            return
        if outcome.status == FetchStatus.NOT_FOUND or outcome.record is None:
            progress.failure_count += 1
            return

        if await persist_catalog_record(db_session, outcome.record):
            progress.success_count += 1
            if self._request_delay_seconds > 0:
                await self._sleep(self._request_delay_seconds)
        else:
            progress.failure_count += 1
