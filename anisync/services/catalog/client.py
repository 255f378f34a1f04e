from __future__ import annotations

import logging

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from anisync.errors import ConfigurationError
from anisync.logging_utils import structured_log
from anisync.services.catalog.types import CatalogResponse
from anisync.settings import settings

logger = logging.getLogger(__name__)

USER_AGENT = "anisync/1.0"
_RETRYABLE_ERRORS = (httpx.NetworkError, httpx.TimeoutException)


class CatalogClient:
    """Thin client for the external catalog API (``GET {base}/info/{id}``).

    Transport failures are retried with exponential backoff and then reported
    on the returned CatalogResponse rather than raised, so a dead record never
    aborts an ingestion run.
    """

    def __init__(
        self,
        *,
        base_url: str | None = None,
        timeout_seconds: float | None = None,
        retry_attempts: int | None = None,
        retry_wait_seconds: float = 1.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        resolved_base = (base_url if base_url is not None else settings.catalog_api_base_url).strip()
        if not resolved_base:
            raise ConfigurationError("CATALOG_API_BASE_URL is not configured.")
        self.base_url = resolved_base.rstrip("/")
        self.timeout_seconds = max(
            0.1,
            float(timeout_seconds if timeout_seconds is not None else settings.catalog_api_timeout_seconds),
        )
        self.retry_attempts = max(
            1,
            int(retry_attempts if retry_attempts is not None else settings.catalog_api_retry_attempts),
        )
        self.retry_wait_seconds = max(0.0, float(retry_wait_seconds))
        self._transport = transport

    def info_url(self, catalog_id: int) -> str:
        return f"{self.base_url}/info/{int(catalog_id)}"

    async def _get(self, url: str) -> httpx.Response:
        headers = {
            "Accept": "application/json",
            "Cache-Control": "public, max-age=3600",
            "User-Agent": USER_AGENT,
        }
        async with httpx.AsyncClient(
            timeout=self.timeout_seconds,
            follow_redirects=True,
            headers=headers,
            transport=self._transport,
        ) as client:
            return await client.get(url)

    async def _get_with_retry(self, url: str) -> httpx.Response:
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(_RETRYABLE_ERRORS),
            stop=stop_after_attempt(self.retry_attempts),
            wait=wait_exponential(
                multiplier=self.retry_wait_seconds,
                min=self.retry_wait_seconds,
                max=self.retry_wait_seconds * 8,
            ),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await self._get(url)
        raise RuntimeError("Catalog retry loop produced no response.")

    async def get_info(self, catalog_id: int) -> CatalogResponse:
        url = self.info_url(catalog_id)
        try:
            response = await self._get_with_retry(url)
        except httpx.HTTPError as exc:
            structured_log(
                logger,
                "warning",
                "catalog.request_failed",
                catalog_id=catalog_id,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            return CatalogResponse(
                requested_url=url,
                status_code=None,
                payload=None,
                error=f"{type(exc).__name__}: {exc}" if str(exc) else type(exc).__name__,
            )

        if not 200 <= response.status_code < 300:
            return CatalogResponse(
                requested_url=url,
                status_code=response.status_code,
                payload=None,
                error=f"API returned status {response.status_code}",
            )
        try:
            payload = response.json()
        except ValueError:
            return CatalogResponse(
                requested_url=url,
                status_code=response.status_code,
                payload=None,
                error="API returned invalid JSON",
            )
        return CatalogResponse(
            requested_url=url,
            status_code=response.status_code,
            payload=payload,
            error=None,
        )
