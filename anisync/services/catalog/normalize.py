from __future__ import annotations

import json
import logging
import math
import re
from collections.abc import Mapping
from datetime import date
from typing import Any

from anisync.services.catalog.errors import CatalogPayloadError
from anisync.services.catalog.types import CatalogRecord, EpisodeRecord

logger = logging.getLogger(__name__)

PAYLOAD_MISSING_ID = "payload_missing_id"
PAYLOAD_MISSING_TITLE = "payload_missing_title"
PAYLOAD_NOT_OBJECT = "payload_not_object"

# Year-only and year-month strings; missing parts default to the first.
_PARTIAL_DATE = re.compile(r"(\d{4})(?:-(\d{1,2}))?")


def parse_optional_float(raw: Any) -> float | None:
    """Coerce an API value to float; NaN, infinities and junk become None."""
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        value = float(raw)
    elif isinstance(raw, str):
        stripped = raw.strip()
        if not stripped:
            return None
        try:
            value = float(stripped)
        except ValueError:
            return None
    else:
        return None
    if math.isnan(value) or math.isinf(value):
        return None
    return value


def parse_optional_int(raw: Any) -> int | None:
    if isinstance(raw, int) and not isinstance(raw, bool):
        return raw
    if isinstance(raw, str):
        stripped = raw.strip()
        try:
            return int(stripped)
        except ValueError:
            pass
    value = parse_optional_float(raw)
    if value is None:
        return None
    return int(value)


def format_date_parts(year: Any, month: Any, day: Any) -> str | None:
    parts = [parse_optional_int(year), parse_optional_int(month), parse_optional_int(day)]
    if any(not part for part in parts):
        return None
    try:
        return date(parts[0], parts[1], parts[2]).isoformat()
    except ValueError:
        return None


def parse_date(raw: Any) -> str | None:
    """Normalize ``{year, month, day}`` objects or ISO strings to ``YYYY-MM-DD``.

    Object dates need all three parts. ``YYYY`` and ``YYYY-MM`` strings are
    padded to the first month or day.
    """
    if raw is None:
        return None
    if isinstance(raw, Mapping):
        return format_date_parts(raw.get("year"), raw.get("month"), raw.get("day"))
    if not isinstance(raw, str):
        return None
    stripped = raw.strip()
    if not stripped:
        return None
    if stripped.startswith("{"):
        try:
            decoded = json.loads(stripped)
        except ValueError:
            return None
        return parse_date(decoded) if isinstance(decoded, Mapping) else None
    partial = _PARTIAL_DATE.fullmatch(stripped)
    if partial is not None:
        return format_date_parts(partial.group(1), partial.group(2) or 1, 1)
    try:
        return date.fromisoformat(stripped[:10]).isoformat()
    except ValueError:
        return None


def _optional_text(raw: Any) -> str | None:
    if raw is None:
        return None
    text = str(raw).strip()
    return text or None


def _first_present(*values: Any) -> Any:
    for value in values:
        if value is not None and value != "":
            return value
    return None


def normalize_episode(raw: Any) -> EpisodeRecord | None:
    if not isinstance(raw, Mapping):
        return None
    episode_id = _optional_text(raw.get("id"))
    if episode_id is None:
        return None
    return EpisodeRecord(
        id=episode_id,
        number=raw.get("number"),
        title=_optional_text(raw.get("title")),
        description=_optional_text(raw.get("description")),
        aired_at=_optional_text(raw.get("airedAt")),
    )


def _titles(raw_title: Any) -> tuple[str | None, str | None, str | None]:
    if isinstance(raw_title, Mapping):
        return (
            _optional_text(raw_title.get("romaji")),
            _optional_text(raw_title.get("english")),
            _optional_text(raw_title.get("native")),
        )
    return _optional_text(raw_title), None, None


def _genres(raw_genres: Any) -> tuple[str, ...]:
    if not isinstance(raw_genres, list):
        return ()
    return tuple(text for text in (_optional_text(item) for item in raw_genres) if text)


def normalize_catalog_payload(payload: Any) -> CatalogRecord:
    """Map one ``/info/{id}`` payload into a CatalogRecord.

    Raises CatalogPayloadError when the payload lacks an ID or primary title;
    every other field is optional and defaults to None.
    """
    if not isinstance(payload, Mapping):
        raise CatalogPayloadError(PAYLOAD_NOT_OBJECT, "Catalog payload is not a JSON object.")

    catalog_id = parse_optional_int(payload.get("id"))
    if catalog_id is None:
        raise CatalogPayloadError(PAYLOAD_MISSING_ID, "Catalog payload is missing an id.")

    title_primary, title_alt1, title_alt2 = _titles(payload.get("title"))
    if title_primary is None:
        raise CatalogPayloadError(PAYLOAD_MISSING_TITLE, "Catalog payload is missing a primary title.")

    raw_episodes = payload.get("episodes")
    episode_list = raw_episodes if isinstance(raw_episodes, list) else []
    episodes = tuple(episode for episode in (normalize_episode(item) for item in episode_list) if episode)
    dropped = len(episode_list) - len(episodes)
    if dropped:
        logger.debug(
            "catalog.episodes_dropped",
            extra={"catalog_id": catalog_id, "dropped_count": dropped},
        )

    return CatalogRecord(
        id=catalog_id,
        title_primary=title_primary,
        title_alt1=title_alt1,
        title_alt2=title_alt2,
        format=_optional_text(payload.get("format")),
        status=_optional_text(payload.get("status")),
        season=_optional_text(payload.get("season")),
        season_year=payload.get("seasonYear"),
        episode_count=_first_present(
            payload.get("totalEpisodes"),
            payload.get("currentEpisode"),
            None if isinstance(raw_episodes, list) else raw_episodes,
        ),
        duration=payload.get("duration"),
        genres=_genres(payload.get("genres")),
        average_score=_first_present(payload.get("rating"), payload.get("averageScore")),
        popularity=payload.get("popularity"),
        description=_optional_text(payload.get("description")),
        release_date=parse_date(payload.get("releaseDate")),
        start_date=parse_date(payload.get("startDate")),
        end_date=parse_date(payload.get("endDate")),
        episodes=episodes,
    )
