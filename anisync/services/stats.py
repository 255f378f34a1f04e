from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from anisync.db.models import CatalogEntry, CatalogEpisode
from anisync.services.ingestion import failures as failure_ledger


@dataclass(frozen=True)
class IngestionStats:
    catalog_count: int
    last_stored_id: int | None
    episode_count: int
    failure_count: int
    capped_failure_count: int

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


async def get_ingestion_stats(
    db_session: AsyncSession,
    *,
    max_failure_attempts: int,
) -> IngestionStats:
    catalog_result = await db_session.execute(
        select(func.count(CatalogEntry.id), func.max(CatalogEntry.id))
    )
    catalog_count, last_id = catalog_result.one()
    episode_result = await db_session.execute(select(func.count()).select_from(CatalogEpisode))
    return IngestionStats(
        catalog_count=int(catalog_count or 0),
        last_stored_id=int(last_id) if last_id is not None else None,
        episode_count=int(episode_result.scalar_one()),
        failure_count=await failure_ledger.count_failures(db_session),
        capped_failure_count=await failure_ledger.count_failures(
            db_session,
            min_attempts=max_failure_attempts,
        ),
    )
