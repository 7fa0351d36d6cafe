"""
app/domain/catalog.py

Domain models for reference-source lookups and catalog crawler runs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class ReferenceItem:
    """
    One game entry parsed from the external reference source.
    """

    external_id: int
    item_type: str
    title: str
    description: str | None = None
    image_url: str | None = None
    min_players: int | None = None
    max_players: int | None = None
    playing_time: int | None = None
    suggested_age: str | None = None
    year_published: int | None = None
    rating: float | None = None
    weight: float | None = None
    external_url: str | None = None
    mechanics: tuple[str, ...] = ()
    categories: tuple[str, ...] = ()
    publishers: tuple[str, ...] = ()
    designers: tuple[str, ...] = ()
    artists: tuple[str, ...] = ()

    @property
    def is_expansion(self) -> bool:
        return self.item_type == "boardgameexpansion"


@dataclass(frozen=True)
class CrawlBatchOutcome:
    """
    Result of one fixed-size id batch.
    """

    start_id: int
    end_id: int
    processed: int = 0
    added: int = 0
    skipped: int = 0
    errors: int = 0
    error_message: str | None = None


@dataclass(frozen=True)
class CrawlRunSummary:
    """
    End-of-run crawler summary.
    """

    status: str
    start_id: int
    next_external_id: int
    processed: int = 0
    added: int = 0
    skipped: int = 0
    errors: int = 0
    batches: list[CrawlBatchOutcome] = field(default_factory=list)
    last_error: str | None = None
    finished_at: datetime | None = None
    state_verified: bool = True
