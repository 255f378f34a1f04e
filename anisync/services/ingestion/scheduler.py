from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from anisync.logging_utils import structured_log
from anisync.services.ingestion.application import IngestionService
from anisync.services.ingestion.types import RunAlreadyInProgressError, RunSummary

logger = logging.getLogger(__name__)


class SchedulerService:
    """Periodically resumes ingestion from the last stored ID."""

    def __init__(
        self,
        *,
        enabled: bool,
        tick_seconds: int,
        limit: int,
        service_factory: Callable[[], IngestionService],
    ) -> None:
        self._enabled = enabled
        self._tick_seconds = max(5, int(tick_seconds))
        self._limit = max(1, int(limit))
        self._service_factory = service_factory
        self._task: asyncio.Task[None] | None = None

    @property
    def is_active(self) -> bool:
        return self._task is not None

    async def start(self) -> None:
        if not self._enabled:
            structured_log(logger, "info", "scheduler.disabled")
            return
        if self._task is not None:
            return
        self._task = asyncio.create_task(self._run_loop(), name="anisync-scheduler")
        structured_log(
            logger,
            "info",
            "scheduler.started",
            tick_seconds=self._tick_seconds,
            limit=self._limit,
        )

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        finally:
            self._task = None
        structured_log(logger, "info", "scheduler.stopped")

    async def _run_loop(self) -> None:
        while True:
            try:
                await self.tick_once()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("scheduler.tick_failed")
            await asyncio.sleep(float(self._tick_seconds))

    async def tick_once(self) -> RunSummary | None:
        service = self._service_factory()
        if service.tracker.is_running():
            structured_log(logger, "info", "scheduler.run_skipped_active")
            return None
        try:
            summary = await service.run(limit=self._limit)
        except RunAlreadyInProgressError:
            structured_log(logger, "info", "scheduler.run_skipped_locked")
            return None
        structured_log(
            logger,
            "info",
            "scheduler.run_completed",
            **summary.as_dict(),
        )
        return summary
