"""
Repository for the catalog crawler's singleton state row.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import insert, select, update
from sqlalchemy.orm import Session

from db.models.catalog import CRAWLER_STATE_ID, CrawlerState

STATE_FIELDS = (
    "next_external_id",
    "is_enabled",
    "total_processed",
    "total_added",
    "total_skipped",
    "total_errors",
    "last_run_at",
    "last_error",
)


class CrawlerStateRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def get_state(self) -> CrawlerState | None:
        return self._session.get(CrawlerState, CRAWLER_STATE_ID)

    def read_fresh(self) -> CrawlerState | None:
        """
        Re-read the row from the database, bypassing the identity map.
        """

        stmt = (
            select(CrawlerState)
            .where(CrawlerState.id == CRAWLER_STATE_ID)
            .execution_options(populate_existing=True)
        )
        return self._session.scalars(stmt).first()

    def get_or_create_state(self) -> CrawlerState:
        state = self.get_state()
        if state is None:
            state = CrawlerState(
                id=CRAWLER_STATE_ID,
                next_external_id=1,
                is_enabled=False,
                total_processed=0,
                total_added=0,
                total_skipped=0,
                total_errors=0,
            )
            self._session.add(state)
            self._session.flush()
        return state

    def update_state(self, values: dict[str, Any]) -> int:
        """
        Atomic update of the singleton row. Returns the affected row count.
        """

        unknown = set(values) - set(STATE_FIELDS)
        if unknown:
            raise ValueError(f"Unknown crawler state fields: {sorted(unknown)}")
        result = self._session.execute(
            update(CrawlerState)
            .where(CrawlerState.id == CRAWLER_STATE_ID)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def insert_state_direct(self, values: dict[str, Any]) -> None:
        """
        Core-level insert of the singleton row, bypassing the ORM unit of work.
        """

        row = {
            "id": CRAWLER_STATE_ID,
            "next_external_id": 1,
            "is_enabled": False,
            "total_processed": 0,
            "total_added": 0,
            "total_skipped": 0,
            "total_errors": 0,
        }
        row.update(values)
        self._session.connection().execute(insert(CrawlerState.__table__).values(**row))
