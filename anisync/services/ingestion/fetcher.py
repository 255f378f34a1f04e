from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from anisync.logging_utils import structured_log
from anisync.services.catalog.client import CatalogClient
from anisync.services.catalog.errors import CatalogPayloadError
from anisync.services.catalog.normalize import normalize_catalog_payload
from anisync.services.catalog.types import CatalogResponse
from anisync.services.ingestion import failures as failure_ledger
from anisync.services.ingestion.queries import catalog_entry_exists
from anisync.services.ingestion.types import FetchOutcome, FetchStatus

logger = logging.getLogger(__name__)


class RecordFetcher:
    """Fetches one catalog record and maps it into a CatalogRecord."""

    def __init__(self, *, client: CatalogClient) -> None:
        self._client = client

    async def fetch(
        self,
        db_session: AsyncSession,
        *,
        catalog_id: int,
    ) -> FetchOutcome:
        if await catalog_entry_exists(db_session, catalog_id=catalog_id):
            structured_log(logger, "debug", "catalog.fetch_skipped_present", catalog_id=catalog_id)
            return FetchOutcome(status=FetchStatus.ALREADY_PRESENT)

        try:
            response = await self._client.get_info(catalog_id)
        except Exception as exc:
            logger.exception("catalog.fetch_unexpected_error", extra={"catalog_id": catalog_id})
            return await self._not_found(db_session, catalog_id=catalog_id, reason=str(exc) or type(exc).__name__)

        return await self._outcome_from_response(db_session, catalog_id=catalog_id, response=response)

    async def _outcome_from_response(
        self,
        db_session: AsyncSession,
        *,
        catalog_id: int,
        response: CatalogResponse,
    ) -> FetchOutcome:
        if not response.ok:
            return await self._not_found(
                db_session,
                catalog_id=catalog_id,
                reason=response.error or f"API returned status {response.status_code}",
                status_code=response.status_code,
            )
        try:
            record = normalize_catalog_payload(response.payload)
        except CatalogPayloadError as exc:
            return await self._not_found(
                db_session,
                catalog_id=catalog_id,
                reason=str(exc),
                status_code=response.status_code,
            )
        if record.id != catalog_id:
            return await self._not_found(
                db_session,
                catalog_id=catalog_id,
                reason=f"Catalog payload id {record.id} does not match requested id {catalog_id}.",
                status_code=response.status_code,
            )

        structured_log(
            logger,
            "info",
            "catalog.record_fetched",
            catalog_id=catalog_id,
            title=record.title_primary,
            episode_count=len(record.episodes),
        )
        return FetchOutcome(status=FetchStatus.FETCHED, record=record)

    @staticmethod
    async def _not_found(
        db_session: AsyncSession,
        *,
        catalog_id: int,
        reason: str,
        status_code: int | None = None,
    ) -> FetchOutcome:
        structured_log(
            logger,
            "info",
            "catalog.fetch_failed",
            catalog_id=catalog_id,
            status_code=status_code,
            reason=reason,
        )
        await failure_ledger.record_failure(db_session, catalog_id=catalog_id, reason=reason)
        return FetchOutcome(status=FetchStatus.NOT_FOUND, reason=reason)
