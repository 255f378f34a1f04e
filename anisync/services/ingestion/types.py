from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Any

from anisync.services.catalog.types import CatalogRecord


class RunAlreadyInProgressError(RuntimeError):
    def __init__(self, *, started_at: datetime | None = None) -> None:
        super().__init__("An ingestion run is already in progress.")
        self.started_at = started_at


class FetchStatus(StrEnum):
    FETCHED = "fetched"
    ALREADY_PRESENT = "already_present"
    NOT_FOUND = "not_found"


class StopReason(StrEnum):
    HARD_STOP = "hard_stop"
    LIMIT_REACHED = "limit_reached"
    FAILURE_THRESHOLD = "failure_threshold"
    GRACEFUL_STOP = "graceful_stop"


@dataclass(frozen=True)
class FetchOutcome:
    status: FetchStatus
    record: CatalogRecord | None = None
    reason: str | None = None


@dataclass
class RunProgress:
    success_count: int = 0
    failure_count: int = 0
    skipped_present_count: int = 0
    skipped_capped_count: int = 0


@dataclass(frozen=True)
class RunSummary:
    start_id: int
    last_id: int
    success_count: int
    failure_count: int
    skipped_present_count: int
    skipped_capped_count: int
    stop_reason: StopReason

    def as_dict(self) -> dict[str, Any]:
        return {
            "start_id": self.start_id,
            "last_id": self.last_id,
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "skipped_present_count": self.skipped_present_count,
            "skipped_capped_count": self.skipped_capped_count,
            "stop_reason": self.stop_reason.value,
        }
