from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from anisync.api.responses import success_payload
from anisync.api.schemas import IngestionStatsEnvelope
from anisync.db.session import get_db_session
from anisync.services.stats import get_ingestion_stats
from anisync.settings import settings

router = APIRouter(prefix="/stats", tags=["api-stats"])


@router.get(
    "",
    response_model=IngestionStatsEnvelope,
)
async def get_stats(
    request: Request,
    db_session: AsyncSession = Depends(get_db_session),
):
    stats = await get_ingestion_stats(
        db_session,
        max_failure_attempts=settings.ingestion_max_failure_attempts,
    )
    return success_payload(request, data=stats.as_dict())
