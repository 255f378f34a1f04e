from __future__ import annotations

from fastapi import APIRouter

from anisync.api.routers import failures, ingestion, stats

router = APIRouter(prefix="/api/v1")
router.include_router(ingestion.router)
router.include_router(stats.router)
router.include_router(failures.router)
