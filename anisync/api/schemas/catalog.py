from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict

from anisync.api.schemas.common import ApiMeta


class IngestionStatsData(BaseModel):
    catalog_count: int
    last_stored_id: int | None = None
    episode_count: int
    failure_count: int
    capped_failure_count: int

    model_config = ConfigDict(extra="forbid")


class IngestionStatsEnvelope(BaseModel):
    data: IngestionStatsData
    meta: ApiMeta

    model_config = ConfigDict(extra="forbid")


class FailureItemData(BaseModel):
    catalog_id: int
    reason: str | None = None
    attempt_count: int
    capped: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(extra="forbid")


class FailureListData(BaseModel):
    failures: list[FailureItemData]
    total_count: int

    model_config = ConfigDict(extra="forbid")


class FailureListEnvelope(BaseModel):
    data: FailureListData
    meta: ApiMeta

    model_config = ConfigDict(extra="forbid")


class FailureClearedData(BaseModel):
    catalog_id: int
    cleared: bool

    model_config = ConfigDict(extra="forbid")


class FailureClearedEnvelope(BaseModel):
    data: FailureClearedData
    meta: ApiMeta

    model_config = ConfigDict(extra="forbid")
