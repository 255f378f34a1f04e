from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable, Iterator
from pathlib import Path
from typing import Any

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from anisync.db.session import close_engine, get_session_factory, init_schema
from anisync.services.ingestion.run_state import run_state
from anisync.settings import settings


@pytest.fixture
def override_settings() -> Iterator[Callable[..., None]]:
    """Temporarily replace frozen settings values for one test."""
    saved: list[tuple[str, Any]] = []

    def _apply(**values: Any) -> None:
        for name, value in values.items():
            saved.append((name, getattr(settings, name)))
            object.__setattr__(settings, name, value)

    yield _apply

    for name, value in reversed(saved):
        object.__setattr__(settings, name, value)


@pytest.fixture(autouse=True)
def reset_run_state() -> Iterator[None]:
    run_state.reset()
    yield
    run_state.reset()


@pytest.fixture
def sqlite_database_url(tmp_path: Path, override_settings) -> Iterator[str]:
    url = f"sqlite+aiosqlite:///{tmp_path / 'anisync.db'}"
    override_settings(database_url=url, database_pool_mode="null")
    asyncio.run(close_engine())
    asyncio.run(init_schema())
    asyncio.run(close_engine())
    yield url
    asyncio.run(close_engine())


@pytest.fixture
async def session_factory(sqlite_database_url: str) -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    factory = get_session_factory()
    yield factory
    await close_engine()


@pytest.fixture
async def db_session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncIterator[AsyncSession]:
    async with session_factory() as session:
        yield session
