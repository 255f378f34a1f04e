from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from anisync.db.models import CatalogEntry, CatalogEpisode


async def catalog_entry_exists(
    db_session: AsyncSession,
    *,
    catalog_id: int,
) -> bool:
    result = await db_session.execute(
        select(CatalogEntry.id).where(CatalogEntry.id == int(catalog_id))
    )
    return result.scalar_one_or_none() is not None


async def max_catalog_id(db_session: AsyncSession) -> int | None:
    result = await db_session.execute(select(func.max(CatalogEntry.id)))
    value = result.scalar_one_or_none()
    return int(value) if value is not None else None


async def resolve_start_id(db_session: AsyncSession) -> int:
    """Resume point: one past the highest stored ID, or 1 for an empty store."""
    last_id = await max_catalog_id(db_session)
    if last_id is None or last_id < 1:
        return 1
    return last_id + 1


async def count_episodes_for(
    db_session: AsyncSession,
    *,
    catalog_id: int,
) -> int:
    result = await db_session.execute(
        select(func.count())
        .select_from(CatalogEpisode)
        .where(CatalogEpisode.parent_id == int(catalog_id))
    )
    return int(result.scalar_one())
