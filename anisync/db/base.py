from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import DateTime, MetaData, event, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# Constraint names stay stable across Postgres and SQLite schemas.
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    metadata = MetaData(naming_convention=NAMING_CONVENTION)


class CreatedAtMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


class TouchedAtMixin(CreatedAtMixin):
    """Adds ``updated_at``, refreshed on every ORM flush that updates the row."""

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


@event.listens_for(TouchedAtMixin, "before_update", propagate=True)
def _touch_updated_at(_mapper, _connection, target: TouchedAtMixin) -> None:
    target.updated_at = datetime.now(UTC)


metadata = Base.metadata
