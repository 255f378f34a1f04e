from __future__ import annotations

from sqlalchemy import (
    CheckConstraint,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from anisync.db.base import Base, CreatedAtMixin, TouchedAtMixin


class CatalogEntry(CreatedAtMixin, Base):
    __tablename__ = "catalog"

    # External catalog ID; never generated locally.
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    title_primary: Mapped[str] = mapped_column(Text, nullable=False)
    title_alt1: Mapped[str | None] = mapped_column(Text)
    title_alt2: Mapped[str | None] = mapped_column(Text)
    format: Mapped[str | None] = mapped_column(Text)
    status: Mapped[str | None] = mapped_column(Text)
    season: Mapped[str | None] = mapped_column(Text)
    season_year: Mapped[int | None] = mapped_column(Integer)
    episode_count: Mapped[int | None] = mapped_column(Integer)
    duration: Mapped[int | None] = mapped_column(Integer)
    genres_csv: Mapped[str | None] = mapped_column(Text)
    average_score: Mapped[float | None] = mapped_column(Float)
    popularity: Mapped[int | None] = mapped_column(Integer)
    description: Mapped[str | None] = mapped_column(Text)
    release_date: Mapped[str | None] = mapped_column(String(10))
    start_date: Mapped[str | None] = mapped_column(String(10))
    end_date: Mapped[str | None] = mapped_column(String(10))


class CatalogEpisode(CreatedAtMixin, Base):
    __tablename__ = "episodes"
    __table_args__ = (Index("ix_episodes_parent_number", "parent_id", "number"),)

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    parent_id: Mapped[int] = mapped_column(
        ForeignKey("catalog.id", ondelete="CASCADE"), nullable=False
    )
    number: Mapped[int | None] = mapped_column(Integer)
    title: Mapped[str | None] = mapped_column(Text)
    description: Mapped[str | None] = mapped_column(Text)
    aired_at: Mapped[str | None] = mapped_column(Text)


class IngestionFailure(TouchedAtMixin, Base):
    __tablename__ = "failures"
    __table_args__ = (
        CheckConstraint("attempt_count >= 1", name="attempt_count_positive"),
    )

    # Keyed by target ID; no FK because failed IDs usually have no catalog row.
    catalog_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    reason: Mapped[str | None] = mapped_column(Text)
    attempt_count: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default=text("1")
    )
