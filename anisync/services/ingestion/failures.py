from __future__ import annotations

import logging

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from anisync.db.models import IngestionFailure
from anisync.logging_utils import structured_log

logger = logging.getLogger(__name__)

MAX_REASON_LENGTH = 2000


def _bounded_reason(reason: str | None) -> str | None:
    if reason is None:
        return None
    text = str(reason).strip()
    if not text:
        return None
    return text[:MAX_REASON_LENGTH]


async def get_failure(
    db_session: AsyncSession,
    *,
    catalog_id: int,
) -> IngestionFailure | None:
    result = await db_session.execute(
        select(IngestionFailure).where(IngestionFailure.catalog_id == int(catalog_id))
    )
    return result.scalar_one_or_none()


async def record_failure(
    db_session: AsyncSession,
    *,
    catalog_id: int,
    reason: str | None,
) -> IngestionFailure:
    """Upsert the failure row for ``catalog_id`` and commit it.

    A repeat failure bumps ``attempt_count`` and replaces the reason; the
    first failure creates the row with ``attempt_count=1``.
    """
    failure = await get_failure(db_session, catalog_id=catalog_id)
    if failure is None:
        failure = IngestionFailure(
            catalog_id=int(catalog_id),
            reason=_bounded_reason(reason),
            attempt_count=1,
        )
        db_session.add(failure)
    else:
        failure.attempt_count = int(failure.attempt_count or 0) + 1
        failure.reason = _bounded_reason(reason)
    await db_session.commit()
    structured_log(
        logger,
        "info",
        "ingestion.failure_recorded",
        catalog_id=int(catalog_id),
        attempt_count=int(failure.attempt_count),
        reason=failure.reason,
    )
    return failure


async def get_attempt_count(
    db_session: AsyncSession,
    *,
    catalog_id: int,
) -> int:
    result = await db_session.execute(
        select(IngestionFailure.attempt_count).where(IngestionFailure.catalog_id == int(catalog_id))
    )
    value = result.scalar_one_or_none()
    return int(value) if value is not None else 0


async def clear_failure(
    db_session: AsyncSession,
    *,
    catalog_id: int,
) -> bool:
    result = await db_session.execute(
        delete(IngestionFailure).where(IngestionFailure.catalog_id == int(catalog_id))
    )
    await db_session.commit()
    return bool(result.rowcount)


async def list_failures(
    db_session: AsyncSession,
    *,
    limit: int = 100,
    min_attempts: int = 1,
) -> list[IngestionFailure]:
    result = await db_session.execute(
        select(IngestionFailure)
        .where(IngestionFailure.attempt_count >= max(1, int(min_attempts)))
        .order_by(IngestionFailure.updated_at.desc(), IngestionFailure.catalog_id.desc())
        .limit(max(1, int(limit)))
    )
    return list(result.scalars().all())


async def count_failures(
    db_session: AsyncSession,
    *,
    min_attempts: int = 1,
) -> int:
    result = await db_session.execute(
        select(func.count())
        .select_from(IngestionFailure)
        .where(IngestionFailure.attempt_count >= max(1, int(min_attempts)))
    )
    return int(result.scalar_one())
