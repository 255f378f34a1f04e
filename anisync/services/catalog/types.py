from __future__ import annotations

from dataclasses import dataclass, field

# Raw numeric values as delivered by the API; coerced when the row is written.
NumericInput = int | float | str | None


@dataclass(frozen=True)
class EpisodeRecord:
    id: str
    number: NumericInput = None
    title: str | None = None
    description: str | None = None
    aired_at: str | None = None


@dataclass(frozen=True)
class CatalogRecord:
    id: int
    title_primary: str
    title_alt1: str | None = None
    title_alt2: str | None = None
    format: str | None = None
    status: str | None = None
    season: str | None = None
    season_year: NumericInput = None
    episode_count: NumericInput = None
    duration: NumericInput = None
    genres: tuple[str, ...] = ()
    average_score: NumericInput = None
    popularity: NumericInput = None
    description: str | None = None
    release_date: str | None = None
    start_date: str | None = None
    end_date: str | None = None
    episodes: tuple[EpisodeRecord, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class CatalogResponse:
    requested_url: str
    status_code: int | None
    payload: object | None
    error: str | None

    @property
    def ok(self) -> bool:
        return self.error is None and self.status_code is not None and 200 <= self.status_code < 300
