from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from anisync.api.schemas.common import ApiMeta


class IngestionStartRequest(BaseModel):
    start_id: int | None = Field(default=None, ge=1)
    limit: int | None = Field(default=None, ge=1, le=100_000)

    model_config = ConfigDict(extra="forbid")


class IngestionStopRequest(BaseModel):
    graceful: bool = True

    model_config = ConfigDict(extra="forbid")


class RunStateData(BaseModel):
    generation: int
    running: bool
    graceful_stop_requested: bool
    started_at: datetime | None = None
    last_activity_at: datetime | None = None
    last_result: dict[str, Any] | None = None

    model_config = ConfigDict(extra="forbid")


class RunStateEnvelope(BaseModel):
    data: RunStateData
    meta: ApiMeta

    model_config = ConfigDict(extra="forbid")


class IngestionStopData(BaseModel):
    graceful: bool
    was_running: bool
    state: RunStateData

    model_config = ConfigDict(extra="forbid")


class IngestionStopEnvelope(BaseModel):
    data: IngestionStopData
    meta: ApiMeta

    model_config = ConfigDict(extra="forbid")
