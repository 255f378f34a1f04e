from __future__ import annotations

import asyncio

import httpx
import pytest

from anisync.services.ingestion.application import IngestionService
from anisync.services.ingestion.fetcher import RecordFetcher
from anisync.services.ingestion.run_state import RunStateTracker
from anisync.services.ingestion.scheduler import SchedulerService
from anisync.services.ingestion.types import StopReason
from tests.helpers import catalog_id_from_request, catalog_payload, mock_catalog_client


async def _no_sleep(_seconds: float) -> None:
    return None


def _factory(session_factory, tracker: RunStateTracker):
    def _handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=catalog_payload(catalog_id_from_request(request)))

    def _build() -> IngestionService:
        return IngestionService(
            fetcher=RecordFetcher(client=mock_catalog_client(_handler)),
            session_factory=session_factory,
            tracker=tracker,
            request_delay_seconds=0.0,
            sleep=_no_sleep,
        )

    return _build


@pytest.mark.asyncio
async def test_tick_once_runs_from_resume_point(session_factory) -> None:
    tracker = RunStateTracker(stale_after_seconds=600)
    scheduler = SchedulerService(
        enabled=True,
        tick_seconds=60,
        limit=2,
        service_factory=_factory(session_factory, tracker),
    )

    first = await scheduler.tick_once()
    second = await scheduler.tick_once()

    assert first is not None and second is not None
    assert (first.start_id, first.last_id) == (1, 2)
    assert (second.start_id, second.last_id) == (3, 4)
    assert second.stop_reason == StopReason.LIMIT_REACHED


@pytest.mark.asyncio
async def test_tick_once_skips_while_run_is_active(session_factory) -> None:
    tracker = RunStateTracker(stale_after_seconds=600)
    tracker.start()
    scheduler = SchedulerService(
        enabled=True,
        tick_seconds=60,
        limit=2,
        service_factory=_factory(session_factory, tracker),
    )

    assert await scheduler.tick_once() is None
    assert tracker.is_running() is True


@pytest.mark.asyncio
async def test_disabled_scheduler_never_starts(session_factory) -> None:
    scheduler = SchedulerService(
        enabled=False,
        tick_seconds=60,
        limit=2,
        service_factory=_factory(session_factory, RunStateTracker(stale_after_seconds=600)),
    )

    await scheduler.start()

    assert scheduler.is_active is False


@pytest.mark.asyncio
async def test_start_and_stop_manage_background_task(session_factory) -> None:
    tracker = RunStateTracker(stale_after_seconds=600)
    tracker.start()
    scheduler = SchedulerService(
        enabled=True,
        tick_seconds=3600,
        limit=1,
        service_factory=_factory(session_factory, tracker),
    )

    await scheduler.start()
    assert scheduler.is_active is True
    await asyncio.sleep(0)
    await scheduler.stop()

    assert scheduler.is_active is False
