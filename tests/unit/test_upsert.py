from __future__ import annotations

from dataclasses import replace

import pytest
from sqlalchemy import Text, select
from sqlalchemy.exc import OperationalError

from anisync.db.models import CatalogEntry, CatalogEpisode
from anisync.services.catalog.normalize import normalize_catalog_payload
from anisync.services.catalog.types import EpisodeRecord
from anisync.services.ingestion import failures as failure_ledger
from anisync.services.ingestion import upsert
from anisync.services.ingestion.queries import catalog_entry_exists, count_episodes_for
from anisync.services.ingestion.upsert import (
    REASON_MISSING_TITLE,
    REASON_VERIFICATION_FAILED,
    catalog_row_values,
    insert_episodes,
    persist_catalog_record,
)
from tests.helpers import catalog_payload, episode_payload


def _record(catalog_id: int, **overrides):
    return normalize_catalog_payload(catalog_payload(catalog_id, **overrides))


def test_catalog_row_values_coerces_numeric_fields() -> None:
    record = replace(_record(4), average_score="NaN", season_year="2019", duration="abc", popularity=12.7)

    values = catalog_row_values(record)

    assert values["average_score"] is None
    assert values["season_year"] == 2019
    assert values["duration"] is None
    assert values["popularity"] == 12
    assert values["genres_csv"] == "Action,Drama"


@pytest.mark.asyncio
async def test_persist_catalog_record_stores_parent_and_episodes(db_session) -> None:
    record = _record(10, episodes=[episode_payload(10, n) for n in (1, 2, 3)])

    assert await persist_catalog_record(db_session, record) is True

    entry = (await db_session.execute(select(CatalogEntry).where(CatalogEntry.id == 10))).scalar_one()
    assert entry.title_primary == "Title 10"
    assert entry.average_score == 78.0
    assert entry.start_date == "2021-04-03"
    assert await count_episodes_for(db_session, catalog_id=10) == 3
    numbers = (
        await db_session.execute(
            select(CatalogEpisode.number).where(CatalogEpisode.parent_id == 10).order_by(CatalogEpisode.number)
        )
    ).scalars().all()
    assert list(numbers) == [1, 2, 3]

    duplicate = await insert_episodes(
        db_session,
        parent_id=10,
        episodes=[EpisodeRecord(id="10-ep-1", number=1, title="Again")],
    )
    await db_session.commit()
    assert duplicate == 0
    assert await count_episodes_for(db_session, catalog_id=10) == 3


@pytest.mark.asyncio
async def test_persist_catalog_record_is_idempotent(db_session) -> None:
    record = _record(11, episodes=[episode_payload(11, 1)])

    assert await persist_catalog_record(db_session, record) is True
    assert await persist_catalog_record(db_session, replace(record, title_primary="Renamed")) is True

    entry = (await db_session.execute(select(CatalogEntry).where(CatalogEntry.id == 11))).scalar_one()
    assert entry.title_primary == "Title 11"
    assert await count_episodes_for(db_session, catalog_id=11) == 1


@pytest.mark.asyncio
async def test_insert_episodes_ignores_duplicate_ids(db_session) -> None:
    await persist_catalog_record(db_session, _record(12, episodes=[episode_payload(12, 1)]))

    inserted = await insert_episodes(
        db_session,
        parent_id=12,
        episodes=[
            EpisodeRecord(id="12-ep-1", number=1, title="Duplicate"),
            EpisodeRecord(id="12-ep-2", number=2, title="New"),
        ],
    )
    await db_session.commit()

    assert inserted == 1
    assert await count_episodes_for(db_session, catalog_id=12) == 2
    title = (
        await db_session.execute(select(CatalogEpisode.title).where(CatalogEpisode.id == "12-ep-1"))
    ).scalar_one()
    assert title == "Episode 1"


@pytest.mark.asyncio
async def test_insert_episodes_skips_rows_that_violate_constraints(db_session) -> None:
    await persist_catalog_record(db_session, _record(13))

    inserted = await insert_episodes(
        db_session,
        parent_id=404,
        episodes=[EpisodeRecord(id="orphan-1", number=1)],
    )
    await db_session.commit()

    assert inserted == 0
    assert await catalog_entry_exists(db_session, catalog_id=13) is True
    assert await count_episodes_for(db_session, catalog_id=404) == 0


@pytest.mark.asyncio
async def test_persist_catalog_record_without_title_records_failure(db_session) -> None:
    record = replace(_record(14), title_primary="   ")

    assert await persist_catalog_record(db_session, record) is False

    assert await catalog_entry_exists(db_session, catalog_id=14) is False
    failure = await failure_ledger.get_failure(db_session, catalog_id=14)
    assert failure is not None
    assert failure.reason == REASON_MISSING_TITLE


@pytest.mark.asyncio
async def test_persist_catalog_record_clears_previous_failure(db_session) -> None:
    await failure_ledger.record_failure(db_session, catalog_id=15, reason="API returned status 500")

    assert await persist_catalog_record(db_session, _record(15)) is True

    assert await failure_ledger.get_failure(db_session, catalog_id=15) is None


def _locked_error() -> OperationalError:
    return OperationalError("DELETE FROM failures", {}, Exception("database is locked"))


@pytest.mark.asyncio
async def test_persist_catalog_record_survives_failure_clear_error(db_session, monkeypatch) -> None:
    await failure_ledger.record_failure(db_session, catalog_id=16, reason="API returned status 500")

    async def _raise_on_clear(*_args, **_kwargs) -> bool:
        raise _locked_error()

    monkeypatch.setattr(failure_ledger, "clear_failure", _raise_on_clear)

    assert await persist_catalog_record(db_session, _record(16, episodes=[episode_payload(16, 1)])) is True

    assert await catalog_entry_exists(db_session, catalog_id=16) is True
    assert await count_episodes_for(db_session, catalog_id=16) == 1
    failure = await failure_ledger.get_failure(db_session, catalog_id=16)
    assert failure is not None
    assert failure.attempt_count == 1


@pytest.mark.asyncio
async def test_persist_catalog_record_write_error_rolls_back_and_records_failure(db_session, monkeypatch) -> None:
    async def _raise_on_episodes(*_args, **_kwargs) -> int:
        raise OperationalError("INSERT INTO episodes", {}, Exception("disk I/O error"))

    monkeypatch.setattr(upsert, "insert_episodes", _raise_on_episodes)

    assert await persist_catalog_record(db_session, _record(17, episodes=[episode_payload(17, 1)])) is False

    assert await catalog_entry_exists(db_session, catalog_id=17) is False
    failure = await failure_ledger.get_failure(db_session, catalog_id=17)
    assert failure is not None
    assert failure.reason.startswith("Database write failed:")
    assert "disk I/O error" in failure.reason
    assert failure.attempt_count == 1


@pytest.mark.asyncio
async def test_persist_catalog_record_records_failure_when_row_is_missing_after_write(
    db_session, monkeypatch
) -> None:
    async def _never_present(*_args, **_kwargs) -> bool:
        return False

    monkeypatch.setattr(upsert, "catalog_entry_exists", _never_present)

    assert await persist_catalog_record(db_session, _record(18)) is False

    failure = await failure_ledger.get_failure(db_session, catalog_id=18)
    assert failure is not None
    assert failure.reason == REASON_VERIFICATION_FAILED
    assert failure.attempt_count == 1


def test_categorical_columns_are_unbounded_text() -> None:
    for column in (
        CatalogEntry.__table__.c.format,
        CatalogEntry.__table__.c.status,
        CatalogEntry.__table__.c.season,
        CatalogEpisode.__table__.c.aired_at,
    ):
        assert isinstance(column.type, Text), column.name


@pytest.mark.asyncio
async def test_persist_catalog_record_keeps_long_categorical_values(db_session) -> None:
    long_value = "SPECIAL_" * 40
    record = replace(
        _record(19, episodes=[episode_payload(19, 1)]),
        format=long_value,
        status=long_value,
        season=long_value,
    )
    record = replace(record, episodes=(replace(record.episodes[0], aired_at=long_value),))

    assert await persist_catalog_record(db_session, record) is True

    entry = (await db_session.execute(select(CatalogEntry).where(CatalogEntry.id == 19))).scalar_one()
    assert entry.format == long_value
    assert entry.season == long_value
    aired_at = (
        await db_session.execute(select(CatalogEpisode.aired_at).where(CatalogEpisode.parent_id == 19))
    ).scalar_one()
    assert aired_at == long_value
