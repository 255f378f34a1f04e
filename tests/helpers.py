from __future__ import annotations

from collections.abc import Callable
from typing import Any

import httpx

from anisync.services.catalog.client import CatalogClient

CATALOG_BASE_URL = "https://catalog.test/api"


def catalog_payload(catalog_id: int, **overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "id": str(catalog_id),
        "title": {
            "romaji": f"Title {catalog_id}",
            "english": f"English Title {catalog_id}",
            "native": None,
        },
        "format": "TV",
        "status": "FINISHED",
        "season": "SPRING",
        "seasonYear": 2021,
        "totalEpisodes": 12,
        "duration": 24,
        "genres": ["Action", "Drama"],
        "rating": 78,
        "popularity": 12345,
        "description": "A story.",
        "releaseDate": "2021-04-03T00:00:00Z",
        "startDate": {"year": 2021, "month": 4, "day": 3},
        "endDate": {"year": 2021, "month": 6, "day": 19},
        "episodes": [],
    }
    payload.update(overrides)
    return payload


def episode_payload(catalog_id: int, number: int, **overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "id": f"{catalog_id}-ep-{number}",
        "number": number,
        "title": f"Episode {number}",
        "description": None,
        "airedAt": f"2021-04-{number:02d}T15:00:00Z",
    }
    payload.update(overrides)
    return payload


def catalog_id_from_request(request: httpx.Request) -> int:
    return int(request.url.path.rstrip("/").rsplit("/", 1)[-1])


def mock_catalog_client(
    handler: Callable[[httpx.Request], httpx.Response],
    **kwargs: Any,
) -> CatalogClient:
    kwargs.setdefault("retry_wait_seconds", 0.0)
    return CatalogClient(
        base_url=CATALOG_BASE_URL,
        transport=httpx.MockTransport(handler),
        **kwargs,
    )
