from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from anisync.api.deps import require_control_token
from anisync.api.errors import ApiException
from anisync.api.responses import success_payload
from anisync.api.schemas import FailureClearedEnvelope, FailureListEnvelope
from anisync.db.models import IngestionFailure
from anisync.db.session import get_db_session
from anisync.logging_utils import structured_log
from anisync.services.ingestion import failures as failure_ledger
from anisync.settings import settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/failures", tags=["api-failures"])


def _serialize_failure(failure: IngestionFailure) -> dict:
    attempt_count = int(failure.attempt_count)
    return {
        "catalog_id": int(failure.catalog_id),
        "reason": failure.reason,
        "attempt_count": attempt_count,
        "capped": attempt_count >= settings.ingestion_max_failure_attempts,
        "created_at": failure.created_at,
        "updated_at": failure.updated_at,
    }


@router.get(
    "",
    response_model=FailureListEnvelope,
)
async def list_failures(
    request: Request,
    limit: int = Query(default=100, ge=1, le=1000),
    min_attempts: int = Query(default=1, ge=1),
    db_session: AsyncSession = Depends(get_db_session),
):
    failures = await failure_ledger.list_failures(
        db_session,
        limit=limit,
        min_attempts=min_attempts,
    )
    total_count = await failure_ledger.count_failures(db_session, min_attempts=min_attempts)
    return success_payload(
        request,
        data={
            "failures": [_serialize_failure(failure) for failure in failures],
            "total_count": total_count,
        },
    )


@router.delete(
    "/{catalog_id}",
    response_model=FailureClearedEnvelope,
    dependencies=[Depends(require_control_token)],
)
async def clear_failure(
    catalog_id: int,
    request: Request,
    db_session: AsyncSession = Depends(get_db_session),
):
    cleared = await failure_ledger.clear_failure(db_session, catalog_id=catalog_id)
    if not cleared:
        raise ApiException(
            status_code=404,
            code="failure_not_found",
            message="No failure recorded for this catalog ID.",
        )
    structured_log(logger, "info", "api.failure_cleared", catalog_id=catalog_id)
    return success_payload(request, data={"catalog_id": catalog_id, "cleared": True})
