from __future__ import annotations

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, HTTPException

from anisync.api.errors import register_api_exception_handlers
from anisync.api.router import router as api_router
from anisync.api.runtime_deps import build_ingestion_service
from anisync.db.session import check_database, close_engine
from anisync.http.middleware import RequestLoggingMiddleware, parse_skip_paths
from anisync.logging_config import configure_logging, parse_redact_fields
from anisync.services.ingestion.scheduler import SchedulerService
from anisync.settings import settings

logger = logging.getLogger(__name__)

configure_logging(
    level=settings.log_level,
    log_format=settings.log_format,
    redact_fields=parse_redact_fields(settings.log_redact_fields),
    include_uvicorn_access=settings.log_uvicorn_access,
)

scheduler_service = SchedulerService(
    enabled=settings.scheduler_enabled,
    tick_seconds=settings.scheduler_tick_seconds,
    limit=settings.ingestion_batch_limit,
    service_factory=build_ingestion_service,
)


@asynccontextmanager
async def lifespan(_: FastAPI):
    logger.info(
        "app.started",
        extra={
            "event": "app.started",
            "scheduler_enabled": settings.scheduler_enabled,
            "catalog_api_configured": bool(settings.catalog_api_base_url),
            "log_format": settings.log_format,
        },
    )
    await scheduler_service.start()
    yield
    await scheduler_service.stop()
    await close_engine()


app = FastAPI(title=settings.app_name, lifespan=lifespan)
register_api_exception_handlers(app)
app.add_middleware(
    RequestLoggingMiddleware,
    log_requests=settings.log_requests,
    skip_paths=parse_skip_paths(settings.log_request_skip_paths),
)
app.include_router(api_router)


@app.get("/healthz")
async def healthz() -> dict[str, str]:
    if await check_database():
        return {"status": "ok"}
    raise HTTPException(status_code=500, detail="database unavailable")
