from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import insert
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from anisync.db.models import CatalogEntry, CatalogEpisode
from anisync.errors import ConfigurationError
from anisync.logging_utils import structured_log
from anisync.services.catalog.normalize import parse_optional_float, parse_optional_int
from anisync.services.catalog.types import CatalogRecord, EpisodeRecord
from anisync.services.ingestion import failures as failure_ledger
from anisync.services.ingestion.queries import catalog_entry_exists

logger = logging.getLogger(__name__)

REASON_MISSING_TITLE = "Record is missing a primary title."
REASON_VERIFICATION_FAILED = "Database verification failed after insert."

_INT_FIELDS = ("season_year", "episode_count", "duration", "popularity")
_FLOAT_FIELDS = ("average_score",)


def _coerce_numeric_fields(record: CatalogRecord) -> dict[str, Any]:
    values: dict[str, Any] = {}
    for name in _INT_FIELDS:
        raw = getattr(record, name)
        values[name] = parse_optional_int(raw)
        if raw is not None and values[name] is None:
            structured_log(logger, "warning", "ingestion.numeric_field_dropped", catalog_id=record.id, field=name, raw=raw)
    for name in _FLOAT_FIELDS:
        raw = getattr(record, name)
        values[name] = parse_optional_float(raw)
        if raw is not None and values[name] is None:
            structured_log(logger, "warning", "ingestion.numeric_field_dropped", catalog_id=record.id, field=name, raw=raw)
    return values


def catalog_row_values(record: CatalogRecord) -> dict[str, Any]:
    return {
        "id": int(record.id),
        "title_primary": record.title_primary.strip(),
        "title_alt1": record.title_alt1,
        "title_alt2": record.title_alt2,
        "format": record.format,
        "status": record.status,
        "season": record.season,
        "genres_csv": ",".join(record.genres) if record.genres else None,
        "description": record.description,
        "release_date": record.release_date,
        "start_date": record.start_date,
        "end_date": record.end_date,
        **_coerce_numeric_fields(record),
    }


def episode_row_values(*, parent_id: int, episode: EpisodeRecord) -> dict[str, Any]:
    return {
        "id": episode.id,
        "parent_id": int(parent_id),
        "number": parse_optional_int(episode.number),
        "title": episode.title,
        "description": episode.description,
        "aired_at": episode.aired_at,
    }


def _insert_ignoring_duplicates(db_session: AsyncSession):
    dialect_name = db_session.get_bind().dialect.name
    if dialect_name == "postgresql":
        return postgresql.insert(CatalogEpisode).on_conflict_do_nothing(index_elements=["id"])
    if dialect_name == "sqlite":
        return sqlite.insert(CatalogEpisode).on_conflict_do_nothing(index_elements=["id"])
    raise ConfigurationError(f"Unsupported database dialect for episode writes: {dialect_name}")


async def insert_episodes(
    db_session: AsyncSession,
    *,
    parent_id: int,
    episodes: tuple[EpisodeRecord, ...] | list[EpisodeRecord],
) -> int:
    """Insert child episodes, each in its own savepoint.

    Duplicates are ignored and a failing episode is logged and skipped; the
    parent write is never rolled back because of a child.
    """
    inserted = 0
    for episode in episodes:
        if not episode.id:
            continue
        statement = _insert_ignoring_duplicates(db_session).values(
            **episode_row_values(parent_id=parent_id, episode=episode)
        )
        try:
            async with db_session.begin_nested():
                result = await db_session.execute(statement)
        except SQLAlchemyError as exc:
            structured_log(
                logger,
                "warning",
                "ingestion.episode_insert_failed",
                catalog_id=parent_id,
                episode_id=episode.id,
                error=str(exc),
            )
            continue
        if result.rowcount:
            inserted += 1
    return inserted


async def persist_catalog_record(
    db_session: AsyncSession,
    record: CatalogRecord,
) -> bool:
    """Idempotently store ``record`` and its episodes.

    Returns True when the parent row is durable (including when it already
    existed). Failures are written to the failure ledger and return False.
    """
    if await catalog_entry_exists(db_session, catalog_id=record.id):
        structured_log(logger, "debug", "ingestion.persist_skipped_present", catalog_id=record.id)
        return True

    if not (record.title_primary or "").strip():
        await failure_ledger.record_failure(db_session, catalog_id=record.id, reason=REASON_MISSING_TITLE)
        return False

    try:
        await db_session.execute(insert(CatalogEntry).values(**catalog_row_values(record)))
        inserted_episodes = await insert_episodes(
            db_session,
            parent_id=record.id,
            episodes=record.episodes,
        )
        await db_session.commit()
    except SQLAlchemyError as exc:
        await db_session.rollback()
        logger.exception("ingestion.persist_failed", extra={"catalog_id": record.id})
        await failure_ledger.record_failure(
            db_session,
            catalog_id=record.id,
            reason=f"Database write failed: {exc}",
        )
        return False

    if not await catalog_entry_exists(db_session, catalog_id=record.id):
        structured_log(logger, "error", "ingestion.persist_verification_failed", catalog_id=record.id)
        await failure_ledger.record_failure(db_session, catalog_id=record.id, reason=REASON_VERIFICATION_FAILED)
        return False

    try:
        await failure_ledger.clear_failure(db_session, catalog_id=record.id)
    except SQLAlchemyError as exc:
        # Parent and episodes are already committed here.
        await db_session.rollback()
        structured_log(
            logger,
            "warning",
            "ingestion.failure_clear_failed",
            catalog_id=record.id,
            error=str(exc),
        )
    structured_log(
        logger,
        "info",
        "ingestion.record_persisted",
        catalog_id=record.id,
        title=record.title_primary,
        episode_count=len(record.episodes),
        inserted_episode_count=inserted_episodes,
    )
    return True
