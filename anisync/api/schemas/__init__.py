from anisync.api.schemas.catalog import (
    FailureClearedEnvelope,
    FailureItemData,
    FailureListEnvelope,
    IngestionStatsEnvelope,
)
from anisync.api.schemas.common import ApiErrorEnvelope, ApiMeta
from anisync.api.schemas.ingestion import (
    IngestionStartRequest,
    IngestionStopEnvelope,
    IngestionStopRequest,
    RunStateData,
    RunStateEnvelope,
)

__all__ = [
    "ApiErrorEnvelope",
    "ApiMeta",
    "FailureClearedEnvelope",
    "FailureItemData",
    "FailureListEnvelope",
    "IngestionStartRequest",
    "IngestionStatsEnvelope",
    "IngestionStopEnvelope",
    "IngestionStopRequest",
    "RunStateData",
    "RunStateEnvelope",
]
