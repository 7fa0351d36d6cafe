"""
Scheduled sweep of the reference source's id space into the local catalog.

Each run walks a bounded number of fixed-size id batches starting at the
persisted cursor. Ids already in the catalog are never fetched again, failed
batches are recorded and abandoned, and the cursor always moves forward by
the full batch size.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterable
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.clients.reference_source import BoardGameReferenceClient, ReferenceSourceError
from app.config import CrawlerSettings, get_crawler_settings, get_reference_source_settings
from app.domain.catalog import CrawlBatchOutcome, CrawlRunSummary, ReferenceItem
from app.logging_utils import log_event
from db.repositories.catalog_repository import CatalogRepository
from db.repositories.crawler_state_repository import CrawlerStateRepository

logger = logging.getLogger(__name__)

MAX_LAST_ERROR_LENGTH = 1000


class CatalogCrawlerBusyError(RuntimeError):
    """Raised when a run is requested while another run is in progress."""


class CatalogCrawler:
    def __init__(
        self,
        *,
        session_factory: sessionmaker[Session] | Callable[[], Session] | None = None,
        client: BoardGameReferenceClient | None = None,
        settings: CrawlerSettings | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if session_factory is None:
            from db.session import SessionLocal

            self._session_factory = SessionLocal
        else:
            self._session_factory = session_factory

        self._client = client or BoardGameReferenceClient(settings=get_reference_source_settings())
        self._settings = settings or get_crawler_settings()
        self._sleep = sleep
        self._run_lock = threading.Lock()
        self._fetched_in_run = False

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    def status(self) -> dict[str, Any]:
        with self._session_factory() as db:
            state = CrawlerStateRepository(db).get_or_create_state()
            db.commit()
            return {
                "next_external_id": state.next_external_id,
                "is_enabled": state.is_enabled,
                "total_processed": state.total_processed,
                "total_added": state.total_added,
                "total_skipped": state.total_skipped,
                "total_errors": state.total_errors,
                "last_run_at": state.last_run_at,
                "last_error": state.last_error,
                "catalog_size": CatalogRepository(db).count_entries(),
                "is_running": self._run_lock.locked(),
            }

    def set_enabled(self, enabled: bool) -> dict[str, Any]:
        """
        Toggle the crawler. The cursor is left untouched.
        """

        with self._session_factory() as db:
            states = CrawlerStateRepository(db)
            states.get_or_create_state()
            states.update_state({"is_enabled": enabled})
            db.commit()
        logger.info("Catalog crawler %s", "enabled" if enabled else "disabled")
        return self.status()

    def reset(self, next_external_id: int = 1) -> dict[str, Any]:
        if next_external_id < 1:
            raise ValueError("next_external_id must be >= 1.")
        with self._session_factory() as db:
            states = CrawlerStateRepository(db)
            states.get_or_create_state()
            states.update_state({"next_external_id": next_external_id, "last_error": None})
            db.commit()
        logger.warning("Catalog crawler cursor reset next_external_id=%s", next_external_id)
        return self.status()

    # ------------------------------------------------------------------
    # Sweep
    # ------------------------------------------------------------------

    def run(self, batches: int | None = None) -> CrawlRunSummary:
        """
        Run up to `batches` batches from the persisted cursor.

        Raises:
            CatalogCrawlerBusyError: if a run is already in progress.
        """

        if not self._run_lock.acquire(blocking=False):
            raise CatalogCrawlerBusyError("A catalog crawl is already running.")
        try:
            return self._run_locked(batches or self._settings.batches_per_run)
        finally:
            self._run_lock.release()

    def _run_locked(self, batch_count: int) -> CrawlRunSummary:
        self._fetched_in_run = False
        started = time.monotonic()

        with self._session_factory() as db:
            states = CrawlerStateRepository(db)
            state = states.get_or_create_state()
            db.commit()

            if not state.is_enabled:
                logger.info("Catalog crawler is disabled; skipping run.")
                return CrawlRunSummary(
                    status="disabled",
                    start_id=state.next_external_id,
                    next_external_id=state.next_external_id,
                )

            start_id = state.next_external_id
            cursor = start_id
            outcomes: list[CrawlBatchOutcome] = []
            for _ in range(max(1, batch_count)):
                outcome = self._run_batch(db, cursor)
                outcomes.append(outcome)
                cursor += self._settings.batch_size

            added = sum(outcome.added for outcome in outcomes)
            skipped = sum(outcome.skipped for outcome in outcomes)
            errors = sum(outcome.errors for outcome in outcomes)
            last_error = next(
                (outcome.error_message for outcome in reversed(outcomes) if outcome.error_message),
                None,
            )
            finished_at = datetime.now(timezone.utc)

            values: dict[str, Any] = {
                "next_external_id": cursor,
                "total_processed": state.total_processed + (cursor - start_id),
                "total_added": state.total_added + added,
                "total_skipped": state.total_skipped + skipped,
                "total_errors": state.total_errors + errors,
                "last_run_at": finished_at,
                "last_error": last_error[:MAX_LAST_ERROR_LENGTH] if last_error else state.last_error,
            }
            verified = self._persist_state(db, values)

        summary = CrawlRunSummary(
            status="completed",
            start_id=start_id,
            next_external_id=cursor,
            processed=cursor - start_id,
            added=added,
            skipped=skipped,
            errors=errors,
            batches=outcomes,
            last_error=last_error,
            finished_at=finished_at,
            state_verified=verified,
        )
        log_event(
            logger,
            logging.INFO,
            "catalog_crawl_completed",
            start_id=start_id,
            next_external_id=cursor,
            added=added,
            skipped=skipped,
            errors=errors,
            state_verified=verified,
            duration_seconds=round(time.monotonic() - started, 3),
        )
        return summary

    def _run_batch(self, db: Session, start_id: int) -> CrawlBatchOutcome:
        end_id = start_id + self._settings.batch_size - 1
        ids = list(range(start_id, end_id + 1))
        catalog = CatalogRepository(db)

        existing = catalog.existing_external_ids(ids)
        pending = [external_id for external_id in ids if external_id not in existing]
        if not pending:
            logger.info("Catalog batch %s-%s already present; skipping fetch", start_id, end_id)
            return CrawlBatchOutcome(start_id=start_id, end_id=end_id, skipped=len(existing))

        try:
            items = self._fetch(pending)
        except ReferenceSourceError as exc:
            message = f"Batch {start_id}-{end_id}: {exc}"
            logger.warning("Catalog batch abandoned %s", message)
            return CrawlBatchOutcome(
                start_id=start_id,
                end_id=end_id,
                skipped=len(existing),
                errors=1,
                error_message=message,
            )

        added, errors, error_message = self._store_items(db, items, skip_ids=existing)
        logger.info(
            "Catalog batch %s-%s fetched=%s added=%s errors=%s",
            start_id,
            end_id,
            len(items),
            added,
            errors,
        )
        return CrawlBatchOutcome(
            start_id=start_id,
            end_id=end_id,
            processed=len(items),
            added=added,
            skipped=len(existing),
            errors=errors,
            error_message=error_message,
        )

    def fetch_ids(self, external_ids: Iterable[int]) -> dict[str, Any]:
        """
        Backfill specific ids without moving the cursor. Known ids are
        refreshed, not skipped.
        """

        ids = list(dict.fromkeys(int(external_id) for external_id in external_ids))
        if not ids:
            raise ValueError("At least one id is required.")
        if len(ids) > self._settings.fetch_ids_limit:
            raise ValueError(f"At most {self._settings.fetch_ids_limit} ids per request.")

        if not self._run_lock.acquire(blocking=False):
            raise CatalogCrawlerBusyError("A catalog crawl is already running.")
        try:
            self._fetched_in_run = False
            results: list[dict[str, Any]] = []
            added = updated = errors = 0
            with self._session_factory() as db:
                catalog = CatalogRepository(db)
                for offset in range(0, len(ids), self._settings.batch_size):
                    chunk = ids[offset : offset + self._settings.batch_size]
                    try:
                        items = self._fetch(chunk)
                    except ReferenceSourceError as exc:
                        errors += len(chunk)
                        results.extend({"external_id": value, "status": "error", "error": str(exc)} for value in chunk)
                        continue

                    found: set[int] = set()
                    for item in items:
                        found.add(item.external_id)
                        try:
                            with db.begin_nested():
                                _, created = catalog.upsert_entry(item)
                            db.commit()
                        except SQLAlchemyError as exc:
                            db.rollback()
                            errors += 1
                            results.append({"external_id": item.external_id, "status": "error", "error": str(exc)})
                            continue
                        if created:
                            added += 1
                        else:
                            updated += 1
                        results.append(
                            {
                                "external_id": item.external_id,
                                "title": item.title,
                                "status": "added" if created else "updated",
                            }
                        )
                    results.extend(
                        {"external_id": value, "status": "not_found"} for value in chunk if value not in found
                    )
        finally:
            self._run_lock.release()

        return {"added": added, "updated": updated, "errors": errors, "results": results}

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _fetch(self, ids: list[int]) -> list[ReferenceItem]:
        if self._fetched_in_run and self._settings.courtesy_delay_seconds > 0:
            self._sleep(self._settings.courtesy_delay_seconds)
        self._fetched_in_run = True
        return self._client.fetch_things(ids, excluded_categories=self._settings.excluded_categories)

    def _store_items(
        self,
        db: Session,
        items: list[ReferenceItem],
        *,
        skip_ids: set[int],
    ) -> tuple[int, int, str | None]:
        catalog = CatalogRepository(db)
        added = errors = 0
        error_message: str | None = None
        for item in items:
            if item.external_id in skip_ids:
                continue
            try:
                with db.begin_nested():
                    catalog.upsert_entry(item)
                added += 1
            except SQLAlchemyError as exc:
                errors += 1
                error_message = f"{item.external_id} ({item.title}): {exc.__class__.__name__}"
                logger.warning("Failed to upsert catalog entry external_id=%s error=%s", item.external_id, exc)
        db.commit()
        return added, errors, error_message

    def _persist_state(self, db: Session, values: dict[str, Any]) -> bool:
        """
        Write the run's state, falling back to a direct insert when the
        update matched no row, then read it back.
        """

        states = CrawlerStateRepository(db)
        rowcount = states.update_state(values)
        if rowcount == 0:
            logger.warning("Crawler state update matched no rows; inserting directly")
            states.insert_state_direct(values)
        db.commit()

        fresh = states.read_fresh()
        if fresh is None or fresh.next_external_id != values["next_external_id"]:
            logger.error(
                "Crawler state verification failed expected_next_id=%s stored_next_id=%s",
                values["next_external_id"],
                None if fresh is None else fresh.next_external_id,
            )
            return False
        return True


@lru_cache(maxsize=1)
def get_catalog_crawler() -> CatalogCrawler:
    return CatalogCrawler()
