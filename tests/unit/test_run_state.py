from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from anisync.services.ingestion.run_state import RunStateTracker
from anisync.services.ingestion.types import RunAlreadyInProgressError


class _Clock:
    def __init__(self) -> None:
        self.now = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


def test_fresh_tracker_is_idle() -> None:
    tracker = RunStateTracker(stale_after_seconds=600)

    info = tracker.info()

    assert info["running"] is False
    assert info["graceful_stop_requested"] is False
    assert info["started_at"] is None
    assert info["last_result"] is None


def test_start_marks_running_and_clears_graceful_flag() -> None:
    clock = _Clock()
    tracker = RunStateTracker(stale_after_seconds=600, clock=clock)

    snapshot = tracker.start()

    assert snapshot.running is True
    assert snapshot.graceful_stop_requested is False
    assert snapshot.started_at == clock.now
    assert snapshot.last_activity_at == clock.now
    assert tracker.is_running() is True


def test_second_start_while_running_is_rejected() -> None:
    clock = _Clock()
    tracker = RunStateTracker(stale_after_seconds=600, clock=clock)
    tracker.start()

    with pytest.raises(RunAlreadyInProgressError) as excinfo:
        tracker.start()

    assert excinfo.value.started_at == clock.now


def test_graceful_stop_only_applies_to_live_run() -> None:
    tracker = RunStateTracker(stale_after_seconds=600)

    assert tracker.request_graceful_stop() is False
    assert tracker.is_graceful_stop_requested() is False

    tracker.start()
    assert tracker.request_graceful_stop() is True
    assert tracker.is_graceful_stop_requested() is True
    assert tracker.is_running() is True


def test_stale_run_is_released_on_next_read() -> None:
    clock = _Clock()
    tracker = RunStateTracker(stale_after_seconds=600, clock=clock)
    tracker.start()
    tracker.request_graceful_stop()

    clock.advance(601)

    assert tracker.is_running() is False
    assert tracker.is_graceful_stop_requested() is False


def test_touch_keeps_long_run_alive() -> None:
    clock = _Clock()
    tracker = RunStateTracker(stale_after_seconds=600, clock=clock)
    tracker.start()

    for _ in range(5):
        clock.advance(300)
        tracker.touch()

    assert tracker.is_running() is True


def test_start_succeeds_after_stale_release() -> None:
    clock = _Clock()
    tracker = RunStateTracker(stale_after_seconds=600, clock=clock)
    first = tracker.start()
    clock.advance(1200)

    second = tracker.start()

    assert second.generation == first.generation + 1
    assert second.started_at == clock.now


def test_finish_records_result_and_releases_run() -> None:
    tracker = RunStateTracker(stale_after_seconds=600)
    claim = tracker.start()

    tracker.finish({"success_count": 2}, generation=claim.generation)

    info = tracker.info()
    assert info["running"] is False
    assert info["last_result"] == {"success_count": 2}


def test_finish_from_superseded_run_leaves_new_run_alone() -> None:
    tracker = RunStateTracker(stale_after_seconds=600)
    old = tracker.start()
    tracker.stop()
    new = tracker.start()

    tracker.finish({"success_count": 1}, generation=old.generation)

    assert tracker.is_running() is True
    assert tracker.is_running(new.generation) is True
    assert tracker.is_running(old.generation) is False
    assert tracker.info()["last_result"] is None


def test_hard_stop_clears_running_flag() -> None:
    tracker = RunStateTracker(stale_after_seconds=600)
    claim = tracker.start()

    tracker.stop()

    assert tracker.is_running() is False
    assert tracker.is_running(claim.generation) is False
