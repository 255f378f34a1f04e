from __future__ import annotations

import logging

from fastapi import APIRouter, Body, Depends, Request

from anisync.api.deps import require_control_token
from anisync.api.responses import success_payload, success_response
from anisync.api.runtime_deps import get_ingestion_service, get_run_state
from anisync.api.schemas import (
    IngestionStartRequest,
    IngestionStopEnvelope,
    IngestionStopRequest,
    RunStateEnvelope,
)
from anisync.logging_utils import structured_log
from anisync.services.ingestion.application import IngestionService
from anisync.services.ingestion.run_state import RunStateTracker

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ingestion", tags=["api-ingestion"])


@router.get(
    "/status",
    response_model=RunStateEnvelope,
)
async def get_status(
    request: Request,
    tracker: RunStateTracker = Depends(get_run_state),
):
    return success_payload(request, data=tracker.info())


@router.post(
    "/start",
    response_model=RunStateEnvelope,
    status_code=202,
    dependencies=[Depends(require_control_token)],
)
async def start_ingestion(
    request: Request,
    payload: IngestionStartRequest | None = Body(default=None),
    service: IngestionService = Depends(get_ingestion_service),
):
    options = payload or IngestionStartRequest()
    service.start_background(start_id=options.start_id, limit=options.limit)
    structured_log(
        logger,
        "info",
        "api.ingestion_started",
        start_id=options.start_id,
        limit=options.limit,
    )
    return success_response(request, data=service.tracker.info(), status_code=202)


@router.post(
    "/stop",
    response_model=IngestionStopEnvelope,
    dependencies=[Depends(require_control_token)],
)
async def stop_ingestion(
    request: Request,
    payload: IngestionStopRequest | None = Body(default=None),
    tracker: RunStateTracker = Depends(get_run_state),
):
    options = payload or IngestionStopRequest()
    if options.graceful:
        was_running = tracker.request_graceful_stop()
    else:
        was_running = tracker.is_running()
        tracker.stop()
    structured_log(
        logger,
        "info",
        "api.ingestion_stop_requested",
        graceful=options.graceful,
        was_running=was_running,
    )
    return success_payload(
        request,
        data={
            "graceful": options.graceful,
            "was_running": was_running,
            "state": tracker.info(),
        },
    )
