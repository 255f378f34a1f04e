from __future__ import annotations

from fastapi import Depends

from anisync.db.session import get_session_factory
from anisync.services.catalog.client import CatalogClient
from anisync.services.ingestion.application import IngestionService
from anisync.services.ingestion.fetcher import RecordFetcher
from anisync.services.ingestion.run_state import RunStateTracker, run_state


def get_catalog_client() -> CatalogClient:
    return CatalogClient()


def get_run_state() -> RunStateTracker:
    return run_state


def build_ingestion_service(client: CatalogClient | None = None) -> IngestionService:
    return IngestionService(
        fetcher=RecordFetcher(client=client or CatalogClient()),
        session_factory=get_session_factory(),
        tracker=run_state,
    )


def get_ingestion_service(
    client: CatalogClient = Depends(get_catalog_client),
) -> IngestionService:
    return build_ingestion_service(client)
