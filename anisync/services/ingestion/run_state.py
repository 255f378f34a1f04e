from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import UTC, datetime, timedelta
from typing import Any

from anisync.logging_utils import structured_log
from anisync.services.ingestion.types import RunAlreadyInProgressError
from anisync.settings import settings

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class RunStateSnapshot:
    generation: int = 0
    running: bool = False
    graceful_stop_requested: bool = False
    started_at: datetime | None = None
    last_activity_at: datetime | None = None
    last_result: dict[str, Any] | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "generation": self.generation,
            "running": self.running,
            "graceful_stop_requested": self.graceful_stop_requested,
            "started_at": self.started_at,
            "last_activity_at": self.last_activity_at,
            "last_result": dict(self.last_result) if self.last_result is not None else None,
        }


class RunStateTracker:
    """Process-wide run flags shared by the ingestion loop and its controllers.

    The state lives in one immutable snapshot that is swapped under a lock, so
    readers always see a consistent set of flags. A run whose last activity is
    older than ``stale_after_seconds`` is treated as abandoned and released the
    next time anyone asks whether a run is active.

    This only coordinates within a single process; multiple instances would
    need a shared lease row instead.
    """

    def __init__(
        self,
        *,
        stale_after_seconds: float | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        threshold = settings.ingestion_stale_run_seconds if stale_after_seconds is None else stale_after_seconds
        self._stale_after = timedelta(seconds=max(1.0, float(threshold)))
        self._clock = clock
        self._lock = threading.Lock()
        self._snapshot = RunStateSnapshot()

    def _heal_if_stale(self, now: datetime) -> None:
        # Caller holds the lock.
        snapshot = self._snapshot
        if not snapshot.running or snapshot.last_activity_at is None:
            return
        idle = now - snapshot.last_activity_at
        if idle <= self._stale_after:
            return
        self._snapshot = replace(snapshot, running=False, graceful_stop_requested=False)
        structured_log(
            logger,
            "warning",
            "ingestion.run_state_stale_released",
            started_at=snapshot.started_at,
            last_activity_at=snapshot.last_activity_at,
            idle_seconds=int(idle.total_seconds()),
        )

    def start(self) -> RunStateSnapshot:
        with self._lock:
            now = self._clock()
            self._heal_if_stale(now)
            if self._snapshot.running:
                raise RunAlreadyInProgressError(started_at=self._snapshot.started_at)
            self._snapshot = replace(
                self._snapshot,
                generation=self._snapshot.generation + 1,
                running=True,
                graceful_stop_requested=False,
                started_at=now,
                last_activity_at=now,
            )
            return self._snapshot

    def request_graceful_stop(self) -> bool:
        with self._lock:
            self._heal_if_stale(self._clock())
            if not self._snapshot.running:
                return False
            self._snapshot = replace(self._snapshot, graceful_stop_requested=True)
            return True

    def _owns(self, generation: int | None) -> bool:
        return generation is None or generation == self._snapshot.generation

    def is_running(self, generation: int | None = None) -> bool:
        """True while a run is live; with ``generation``, only if it is that run."""
        with self._lock:
            self._heal_if_stale(self._clock())
            return self._snapshot.running and self._owns(generation)

    def is_graceful_stop_requested(self) -> bool:
        return self._snapshot.graceful_stop_requested

    def touch(self, generation: int | None = None) -> None:
        with self._lock:
            if self._snapshot.running and self._owns(generation):
                self._snapshot = replace(self._snapshot, last_activity_at=self._clock())

    def stop(self) -> None:
        with self._lock:
            self._snapshot = replace(self._snapshot, running=False)

    def finish(self, result: dict[str, Any] | None, generation: int | None = None) -> None:
        with self._lock:
            if not self._owns(generation):
                # A newer run owns the flags; leave them alone.
                return
            self._snapshot = replace(
                self._snapshot,
                running=False,
                last_activity_at=self._clock(),
                last_result=result,
            )

    def snapshot(self) -> RunStateSnapshot:
        with self._lock:
            self._heal_if_stale(self._clock())
            return self._snapshot

    def info(self) -> dict[str, Any]:
        return self.snapshot().as_dict()

    def reset(self) -> None:
        with self._lock:
            self._snapshot = RunStateSnapshot()


run_state = RunStateTracker()
