"""
Coordinator for bulk game import jobs.

A job is created synchronously, then executed by an executor (thread pool or
FastAPI background task) independently of the request that started it.
Progress is persisted on the job row after every item and mirrored to the
progress broker for streaming subscribers.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from functools import lru_cache
from typing import Any, Protocol

from fastapi import BackgroundTasks
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.clients.reference_source import BoardGameReferenceClient
from app.clients.text_completion import build_text_completion_adapter
from app.config import (
    ImportSettings,
    get_import_settings,
    get_reference_source_settings,
    get_text_completion_settings,
)
from app.domain.game_records import (
    CanonicalGameRecord,
    game_record_from_payload,
    game_record_to_payload,
    play_record_from_payload,
    play_record_to_payload,
)
from app.domain.import_result import (
    FailureReason,
    ImportResult,
    ImportTally,
    ProgressPhase,
    complete_frame,
    progress_frame,
    start_frame,
)
from app.logging_utils import log_event
from app.parsers import ImportFormat, ImportFormatError, ParseResult, parse
from app.parsers.links import reference_links_to_csv
from app.services.description_rewriter import DescriptionRewriter, DescriptionTarget
from app.services.enhancement import MetadataEnhancer
from app.services.play_history_importer import PlayHistoryImporter, PlayImportSummary
from app.services.progress_broker import ProgressBroker, ProgressChannel, get_progress_broker
from db.models.import_job import ImportJob, ImportJobType
from db.repositories.game_repository import DEFAULT_OVERRIDE_FIELDS, GameRepository
from db.repositories.import_job_repository import ImportJobRepository

logger = logging.getLogger(__name__)

MAX_ERROR_MESSAGE_LENGTH = 2000
INTERRUPTED_JOB_REASON = "Import interrupted and could not be resumed."


class ImportValidationError(ValueError):
    """
    Raised before a job exists when the request cannot be imported.
    """

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {"error": "invalid_import_request", "message": self.message, **self.details}


# ---------------------------------------------------------------------------
# Executors
# ---------------------------------------------------------------------------


class ImportTaskExecutor(Protocol):
    def submit(self, task: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        ...


class FastAPIBackgroundTaskExecutor:
    def __init__(self, background_tasks: BackgroundTasks) -> None:
        self._background_tasks = background_tasks

    def submit(self, task: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        self._background_tasks.add_task(task, *args, **kwargs)


class ThreadPoolTaskExecutor:
    """
    Runs tasks on a process-wide pool so a job outlives the request (and the
    streaming connection) that started it.
    """

    def __init__(self, max_workers: int) -> None:
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="import-job")

    def submit(self, task: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        future = self._pool.submit(task, *args, **kwargs)
        future.add_done_callback(_log_task_failure)

    def shutdown(self, *, wait: bool = True) -> None:
        self._pool.shutdown(wait=wait)


def _log_task_failure(future: Any) -> None:
    exc = future.exception()
    if exc is not None:
        logger.error("Import task raised outside job error handling: %s", exc, exc_info=exc)


_executor_lock = threading.Lock()
_thread_pool_executor: ThreadPoolTaskExecutor | None = None


def get_thread_pool_executor() -> ThreadPoolTaskExecutor:
    global _thread_pool_executor
    with _executor_lock:
        if _thread_pool_executor is None:
            _thread_pool_executor = ThreadPoolTaskExecutor(get_import_settings().worker_threads)
        return _thread_pool_executor


def shutdown_thread_pool_executor(*, wait: bool = True) -> None:
    global _thread_pool_executor
    with _executor_lock:
        executor, _thread_pool_executor = _thread_pool_executor, None
    if executor is not None:
        executor.shutdown(wait=wait)


# ---------------------------------------------------------------------------
# Request model
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ImportOptions:
    enhance_with_reference: bool = False
    rewrite_descriptions: bool = False
    import_plays: bool = False
    update_existing_plays: bool = False
    defaults: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "enhance_with_reference": self.enhance_with_reference,
            "rewrite_descriptions": self.rewrite_descriptions,
            "import_plays": self.import_plays,
            "update_existing_plays": self.update_existing_plays,
            "defaults": {
                key: str(value) if isinstance(value, Decimal) else value for key, value in self.defaults.items()
            },
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "ImportOptions":
        defaults = dict(payload.get("defaults") or {})
        if defaults.get("sale_price") is not None:
            defaults["sale_price"] = Decimal(str(defaults["sale_price"]))
        return cls(
            enhance_with_reference=bool(payload.get("enhance_with_reference")),
            rewrite_descriptions=bool(payload.get("rewrite_descriptions")),
            import_plays=bool(payload.get("import_plays")),
            update_existing_plays=bool(payload.get("update_existing_plays")),
            defaults=defaults,
        )


@dataclass(frozen=True)
class PreparedImport:
    """
    Parsed, validated input for one job. Built before the job row exists.
    """

    library_id: uuid.UUID
    parse_result: ParseResult
    options: ImportOptions
    filename: str | None = None
    invalid_links: tuple[str, ...] = ()

    @property
    def total_items(self) -> int:
        return len(self.parse_result.games)

    def request_payload(self) -> dict[str, Any]:
        return {
            "filename": self.filename,
            "format": self.parse_result.format_tag.value,
            "dialect": self.parse_result.dialect,
            "input_rows": self.parse_result.input_rows,
            "skipped_rows": self.parse_result.skipped_rows,
            "play_records": len(self.parse_result.plays),
            "invalid_links": list(self.invalid_links),
            "options": self.options.to_dict(),
            "records": [game_record_to_payload(record) for record in self.parse_result.games],
            "plays": [play_record_to_payload(record) for record in self.parse_result.plays],
        }

    @classmethod
    def from_request_payload(cls, *, library_id: uuid.UUID, payload: dict[str, Any]) -> "PreparedImport":
        """
        Rebuild a job's input from its stored request payload.

        Raises:
            ValueError: if the payload predates stored records or is malformed.
        """

        if "records" not in payload:
            raise ValueError("Job payload carries no records.")
        try:
            parse_result = ParseResult(
                format_tag=ImportFormat(payload["format"]),
                games=tuple(game_record_from_payload(item) for item in payload["records"]),
                plays=tuple(play_record_from_payload(item) for item in payload.get("plays") or ()),
                skipped_rows=int(payload.get("skipped_rows") or 0),
                input_rows=int(payload.get("input_rows") or 0),
                dialect=payload.get("dialect"),
            )
        except (KeyError, TypeError) as exc:
            raise ValueError(f"Malformed job payload: {exc}") from exc
        return cls(
            library_id=library_id,
            parse_result=parse_result,
            options=ImportOptions.from_dict(payload.get("options") or {}),
            filename=payload.get("filename"),
            invalid_links=tuple(payload.get("invalid_links") or ()),
        )


@dataclass(frozen=True)
class StartedImport:
    job: ImportJob
    channel: ProgressChannel | None = None


# ---------------------------------------------------------------------------
# Coordinator
# ---------------------------------------------------------------------------


class ImportJobCoordinator:
    """
    Owns the import job lifecycle: validation, creation, execution and
    final result.
    """

    def __init__(
        self,
        *,
        session_factory: sessionmaker[Session] | Callable[[], Session] | None = None,
        broker: ProgressBroker | None = None,
        settings: ImportSettings | None = None,
        enhancer_factory: Callable[[], MetadataEnhancer] | None = None,
        rewriter_factory: Callable[[], DescriptionRewriter] | None = None,
        play_importer: PlayHistoryImporter | None = None,
    ) -> None:
        if session_factory is None:
            from db.session import SessionLocal

            self._session_factory = SessionLocal
        else:
            self._session_factory = session_factory

        self._broker = broker or get_progress_broker()
        self._settings = settings or get_import_settings()
        self._enhancer_factory = enhancer_factory or self._default_enhancer
        self._rewriter_factory = rewriter_factory or self._default_rewriter
        self._play_importer = play_importer or PlayHistoryImporter(error_cap=self._settings.error_sample_cap)

    # ------------------------------------------------------------------
    # Pre-flight
    # ------------------------------------------------------------------

    def prepare_upload(
        self,
        *,
        library_id: uuid.UUID,
        content: bytes | str,
        filename: str | None,
        options: ImportOptions,
    ) -> PreparedImport:
        """
        Parse uploaded content.

        Raises:
            ImportValidationError: if the content is unusable or has no games.
        """

        size = len(content.encode("utf-8") if isinstance(content, str) else content)
        if size == 0:
            raise ImportValidationError("Uploaded content is empty.")
        if size > self._settings.max_upload_bytes:
            raise ImportValidationError(
                f"Upload exceeds {self._settings.max_upload_bytes} bytes.",
                details={"size_bytes": size},
            )
        unknown_defaults = sorted(set(options.defaults) - set(DEFAULT_OVERRIDE_FIELDS))
        if unknown_defaults:
            raise ImportValidationError(
                "Unknown default fields.",
                details={"unknown_fields": unknown_defaults},
            )

        try:
            result = parse(content, filename)
        except ImportFormatError as exc:
            raise ImportValidationError(exc.message, details=exc.to_dict()) from exc

        if not result.games:
            raise ImportValidationError(
                "No games found in the uploaded content.",
                details={"format": result.format_tag.value, "skipped_rows": result.skipped_rows},
            )
        return PreparedImport(library_id=library_id, parse_result=result, options=options, filename=filename)

    def prepare_links(
        self,
        *,
        library_id: uuid.UUID,
        links: list[str],
        options: ImportOptions,
    ) -> PreparedImport:
        csv_text, invalid = reference_links_to_csv(links)
        if csv_text.count("\n") == 0:
            raise ImportValidationError("No valid game links found.", details={"invalid_links": invalid})
        # Link imports only carry ids; titles come from the reference lookup.
        options = ImportOptions(
            enhance_with_reference=True,
            rewrite_descriptions=options.rewrite_descriptions,
            defaults=options.defaults,
        )
        prepared = self.prepare_upload(library_id=library_id, content=csv_text, filename="links.csv", options=options)
        return PreparedImport(
            library_id=library_id,
            parse_result=prepared.parse_result,
            options=options,
            filename=None,
            invalid_links=tuple(invalid),
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(
        self,
        *,
        db: Session,
        executor: ImportTaskExecutor,
        prepared: PreparedImport,
        subscribe: bool = False,
    ) -> StartedImport:
        """
        Create the job row and hand execution to `executor`.

        With `subscribe`, a progress channel is opened before submission so
        the caller receives every frame from `start` onward.
        """

        repository = ImportJobRepository(db)
        job = repository.create_job(
            library_id=prepared.library_id,
            total_items=prepared.total_items,
            job_type=ImportJobType.GAME_IMPORT,
            request_payload=prepared.request_payload(),
        )
        db.commit()
        job_id, total = job.id, job.total_items

        channel = self._broker.open(job_id) if subscribe else None
        self._broker.publish(job_id, start_frame(job_id=str(job_id), total=total))

        try:
            executor.submit(self.run_job, job_id, prepared)
        except Exception:
            self._broker.close(job_id)
            repository.mark_failed(job_id=job_id, error_message="Failed to schedule import job.")
            db.commit()
            raise

        log_event(
            logger,
            logging.INFO,
            "import_job_started",
            job_id=job_id,
            library_id=prepared.library_id,
            total=total,
            format=prepared.parse_result.format_tag.value,
        )
        return StartedImport(job=job, channel=channel)

    def resume_stale_jobs(
        self,
        *,
        executor: ImportTaskExecutor,
        stale_after_seconds: float | None = None,
    ) -> list[uuid.UUID]:
        """
        Pick up jobs whose worker went away and continue them from their
        last persisted item.

        A job counts as stale once its row has gone `stale_after_seconds`
        without a write. Live workers write after every item, so jobs still
        owned by another process are left alone. Each stale job is claimed
        atomically before it is resubmitted; a job that cannot be rebuilt
        (play imports, rows created without stored records) is failed.
        Returns the ids of resubmitted jobs.
        """

        window = self._settings.stale_job_seconds if stale_after_seconds is None else stale_after_seconds
        stale_before = datetime.now(timezone.utc) - timedelta(seconds=window)
        resumed: list[uuid.UUID] = []

        with self._session_factory() as db:
            jobs = ImportJobRepository(db)
            candidates = [
                (job.id, job.job_type, job.library_id, job.request_payload)
                for job in jobs.list_stale_jobs(stale_before=stale_before)
            ]
            for job_id, job_type, library_id, payload in candidates:
                if not jobs.claim_stale_job(job_id=job_id, stale_before=stale_before):
                    db.rollback()
                    continue
                db.commit()

                prepared: PreparedImport | None = None
                reason = INTERRUPTED_JOB_REASON
                if job_type == ImportJobType.GAME_IMPORT:
                    try:
                        prepared = PreparedImport.from_request_payload(library_id=library_id, payload=payload or {})
                    except ValueError as exc:
                        reason = f"{INTERRUPTED_JOB_REASON} {exc}"

                if prepared is None:
                    jobs.mark_failed(job_id=job_id, error_message=reason[:MAX_ERROR_MESSAGE_LENGTH])
                    db.commit()
                    log_event(logger, logging.WARNING, "import_job_abandoned", job_id=job_id, job_type=job_type)
                    continue

                try:
                    executor.submit(self.run_job, job_id, prepared, resume=True)
                except Exception:
                    logger.exception("Failed to resubmit import job id=%s", job_id)
                    jobs.mark_failed(job_id=job_id, error_message="Failed to schedule resumed import job.")
                    db.commit()
                    continue
                resumed.append(job_id)
                log_event(logger, logging.INFO, "import_job_resumed", job_id=job_id, total=prepared.total_items)
        return resumed

    def get_job(self, *, db: Session, job_id: uuid.UUID) -> ImportJob | None:
        return ImportJobRepository(db).get_job(job_id)

    def list_jobs(
        self,
        *,
        db: Session,
        library_id: uuid.UUID | None = None,
        status: str | None = None,
        limit: int = 50,
    ) -> list[ImportJob]:
        return ImportJobRepository(db).list_jobs(library_id=library_id, status=status, limit=limit)

    def import_plays(
        self,
        *,
        db: Session,
        library_id: uuid.UUID,
        content: bytes | str,
        filename: str | None,
        update_existing: bool,
    ) -> tuple[uuid.UUID, PlayImportSummary]:
        """
        Run a play-history import synchronously against games already in the
        library, recorded as its own job.

        Raises:
            ImportValidationError: if the content holds no play records.
        """

        try:
            result = parse(content, filename)
        except ImportFormatError as exc:
            raise ImportValidationError(exc.message, details=exc.to_dict()) from exc
        if not result.plays:
            raise ImportValidationError(
                "No play records found in the uploaded content.",
                details={"format": result.format_tag.value},
            )

        jobs = ImportJobRepository(db)
        job = jobs.create_job(
            library_id=library_id,
            total_items=len(result.plays),
            job_type=ImportJobType.PLAY_IMPORT,
            request_payload={"filename": filename, "update_existing": update_existing},
        )
        job_id = job.id
        jobs.mark_running(job_id=job_id)
        db.commit()

        try:
            summary = self._play_importer.import_plays(
                db=db,
                library_id=library_id,
                plays=result.plays,
                update_existing=update_existing,
            )
            jobs.update_progress(
                job_id=job_id,
                processed_items=summary.total,
                successful_items=summary.imported + summary.updated,
                failed_items=summary.failed,
                phase=ProgressPhase.PLAYS,
            )
            jobs.mark_completed(job_id=job_id, result_payload=summary.to_dict())
            db.commit()
        except Exception as exc:
            self._mark_job_failed(db=db, job_id=job_id, exc=exc)
            raise
        return job_id, summary

    def run_job(self, job_id: uuid.UUID, prepared: PreparedImport, *, resume: bool = False) -> ImportResult | None:
        """
        Execute a job to completion. Never raises: failures end up on the
        job row and in the final frame.

        With `resume`, processing continues after the job's persisted
        processed_items and the tally is restored from its checkpoint. The
        item that was in flight when the job stopped is retried; if its game
        was already created it is reported as already_exists.
        """

        records = prepared.parse_result.games
        total = len(records)
        tally = ImportTally(
            error_cap=self._settings.error_sample_cap,
            not_found_cap=self._settings.not_found_sample_cap,
        )
        started = time.monotonic()
        first = 0

        with self._session_factory() as db:
            jobs = ImportJobRepository(db)
            try:
                if resume:
                    job = jobs.get_job(job_id)
                    if job is None:
                        raise RuntimeError(f"Import job not found: {job_id}")
                    first = min(job.processed_items, total)
                    tally = ImportTally.from_checkpoint(
                        job.checkpoint_payload,
                        error_cap=self._settings.error_sample_cap,
                        not_found_cap=self._settings.not_found_sample_cap,
                    )
                if not jobs.mark_running(job_id=job_id):
                    raise RuntimeError(f"Import job not found or already finished: {job_id}")
                db.commit()

                enhancer = self._enhancer_factory() if prepared.options.enhance_with_reference else None
                game_ids: dict[uuid.UUID, uuid.UUID] = {}
                created: list[tuple[CanonicalGameRecord, uuid.UUID]] = []

                for index, record in enumerate(records[first:], start=first + 1):
                    if enhancer is not None:
                        self._emit_progress(job_id, index - 1, total, tally, record.label, ProgressPhase.ENHANCING)
                    phase, final_record = self._import_record(
                        db=db,
                        prepared=prepared,
                        record=record,
                        enhancer=enhancer,
                        tally=tally,
                        game_ids=game_ids,
                        created=created,
                    )
                    jobs.update_progress(
                        job_id=job_id,
                        processed_items=index,
                        successful_items=tally.imported,
                        failed_items=tally.failed,
                        phase=phase,
                        current_item=final_record.label,
                        checkpoint=tally.to_checkpoint(),
                    )
                    db.commit()
                    self._emit_progress(job_id, index, total, tally, final_record.label, phase)

                self._link_expansions(db=db, prepared=prepared, created=created, game_ids=game_ids)

                extra: dict[str, Any] = {
                    "total": total,
                    "skippedRows": prepared.parse_result.skipped_rows,
                }
                if prepared.options.import_plays and prepared.parse_result.plays:
                    jobs.update_phase(job_id=job_id, phase=ProgressPhase.PLAYS)
                    db.commit()
                    self._emit_progress(job_id, total, total, tally, None, ProgressPhase.PLAYS)
                    play_summary = self._play_importer.import_plays(
                        db=db,
                        library_id=prepared.library_id,
                        plays=prepared.parse_result.plays,
                        update_existing=prepared.options.update_existing_plays,
                    )
                    extra["plays"] = play_summary.to_dict()
                elif prepared.parse_result.plays:
                    extra["pendingPlays"] = len(prepared.parse_result.plays)

                if prepared.options.rewrite_descriptions and created:
                    jobs.update_phase(job_id=job_id, phase=ProgressPhase.DESCRIPTIONS)
                    db.commit()
                    self._emit_progress(job_id, total, total, tally, None, ProgressPhase.DESCRIPTIONS)
                    extra["descriptions"] = self._rewrite_descriptions(db=db, job_id=job_id, created=created)

                result = tally.to_result(success=True, **extra)
                if not jobs.mark_completed(job_id=job_id, result_payload=result.to_dict()):
                    raise RuntimeError(f"Import job finished elsewhere: {job_id}")
                db.commit()
            except Exception as exc:
                failed_result = tally.to_result(
                    success=False,
                    total=total,
                    error=f"{type(exc).__name__}: {exc}"[:MAX_ERROR_MESSAGE_LENGTH],
                )
                self._mark_job_failed(db=db, job_id=job_id, exc=exc, result=failed_result)
                self._broker.publish(job_id, complete_frame(failed_result.to_dict()))
                return None

        log_event(
            logger,
            logging.INFO,
            "import_job_completed",
            job_id=job_id,
            imported=result.imported,
            failed=result.failed,
            failure_breakdown=result.failure_breakdown,
            duration_seconds=round(time.monotonic() - started, 3),
        )
        self._broker.publish(job_id, complete_frame(result.to_dict()))
        return result

    # ------------------------------------------------------------------
    # Per-item processing
    # ------------------------------------------------------------------

    def _import_record(
        self,
        *,
        db: Session,
        prepared: PreparedImport,
        record: CanonicalGameRecord,
        enhancer: MetadataEnhancer | None,
        tally: ImportTally,
        game_ids: dict[uuid.UUID, uuid.UUID],
        created: list[tuple[CanonicalGameRecord, uuid.UUID]],
    ) -> tuple[str, CanonicalGameRecord]:
        games = GameRepository(db)
        try:
            if record.identity is None:
                tally.record_failure(FailureReason.MISSING_TITLE, "Row has no title.")
                return ProgressPhase.ERROR, record

            existing = games.find_existing(library_id=prepared.library_id, record=record)
            if existing is None and enhancer is not None:
                outcome = enhancer.enhance(record)
                if outcome.found:
                    if outcome.record.external_id != record.external_id:
                        existing = games.find_existing(library_id=prepared.library_id, record=outcome.record)
                    record = outcome.record
                elif not record.title:
                    tally.record_failure(FailureReason.NOT_FOUND, f"{record.label}: not found in reference source.")
                    tally.not_found.add(record.label)
                    return ProgressPhase.ERROR, record
                elif outcome.error is None:
                    tally.not_found.add(record.title)

            if existing is not None:
                game_ids[record.record_id] = existing.id
                tally.record_failure(FailureReason.ALREADY_EXISTS, f"{record.label}: already in library.")
                return ProgressPhase.SKIPPED, record

            if not record.title:
                tally.record_failure(FailureReason.MISSING_TITLE, f"{record.label}: no title.")
                return ProgressPhase.ERROR, record

            try:
                game = games.create_game(
                    library_id=prepared.library_id,
                    record=record,
                    defaults=prepared.options.defaults,
                )
                game_id = game.id
                db.commit()
            except SQLAlchemyError as exc:
                db.rollback()
                logger.warning("Failed to create game title=%s error=%s", record.title, exc)
                tally.record_failure(FailureReason.CREATE_FAILED, f"{record.label}: {exc.__class__.__name__}")
                return ProgressPhase.ERROR, record

            game_ids[record.record_id] = game_id
            created.append((record, game_id))
            tally.record_success()
            return ProgressPhase.IMPORTED, record
        except Exception as exc:  # noqa: BLE001
            db.rollback()
            logger.exception("Unexpected error importing record=%s", record.label)
            tally.record_failure(FailureReason.EXCEPTION, f"{record.label}: {exc}")
            return ProgressPhase.ERROR, record

    def _link_expansions(
        self,
        *,
        db: Session,
        prepared: PreparedImport,
        created: list[tuple[CanonicalGameRecord, uuid.UUID]],
        game_ids: dict[uuid.UUID, uuid.UUID],
    ) -> None:
        games = GameRepository(db)
        linked = 0
        for record, game_id in created:
            if not record.is_expansion:
                continue
            parent_id = game_ids.get(record.parent_record_id) if record.parent_record_id else None
            if parent_id is None and record.parent_title:
                parent = games.find_existing(
                    library_id=prepared.library_id,
                    record=CanonicalGameRecord(title=record.parent_title),
                )
                parent_id = parent.id if parent is not None else None
            if parent_id is not None and parent_id != game_id:
                games.set_parent(game_id=game_id, parent_game_id=parent_id)
                linked += 1
        if linked:
            db.commit()
            logger.info("Linked expansions count=%s library_id=%s", linked, prepared.library_id)

    def _rewrite_descriptions(
        self,
        *,
        db: Session,
        job_id: uuid.UUID,
        created: list[tuple[CanonicalGameRecord, uuid.UUID]],
    ) -> dict[str, Any]:
        games = GameRepository(db)
        jobs = ImportJobRepository(db)
        targets = [
            DescriptionTarget(game_id=game_id, title=record.title or record.label, description=record.description)
            for record, game_id in created
        ]

        def apply(target: DescriptionTarget, text: str) -> None:
            games.update_description(game_id=target.game_id, description=text)
            jobs.touch(job_id=job_id)
            db.commit()

        try:
            rewriter = self._rewriter_factory()
            summary = rewriter.rewrite(targets, apply=apply)
        except Exception as exc:  # noqa: BLE001
            db.rollback()
            logger.warning("Description rewrite step failed: %s", exc)
            return {"error": str(exc)[:500]}
        return summary.to_dict()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _emit_progress(
        self,
        job_id: uuid.UUID,
        current: int,
        total: int,
        tally: ImportTally,
        current_game: str | None,
        phase: str,
    ) -> None:
        self._broker.publish(
            job_id,
            progress_frame(
                current=current,
                total=total,
                imported=tally.imported,
                failed=tally.failed,
                current_game=current_game,
                phase=phase,
            ),
        )

    def _mark_job_failed(
        self,
        *,
        db: Session,
        job_id: uuid.UUID,
        exc: Exception,
        result: ImportResult | None = None,
    ) -> None:
        repository = ImportJobRepository(db)
        error_message = f"{type(exc).__name__}: {exc}"
        logger.exception("Import job failed id=%s error=%s", job_id, error_message)
        try:
            db.rollback()
            if not repository.mark_failed(
                job_id=job_id,
                error_message=error_message[:MAX_ERROR_MESSAGE_LENGTH],
                result_payload=result.to_dict() if result is not None else None,
            ):
                logger.error("Unable to mark import job as failed; not found or already finished id=%s", job_id)
            db.commit()
        except Exception:
            db.rollback()
            logger.exception("Failed to persist failed import job state id=%s", job_id)

    def _default_enhancer(self) -> MetadataEnhancer:
        client = BoardGameReferenceClient(
            settings=get_reference_source_settings(),
            min_request_interval_seconds=self._settings.enhancement_delay_seconds,
        )
        return MetadataEnhancer(client=client)

    def _default_rewriter(self) -> DescriptionRewriter:
        settings = get_text_completion_settings()
        return DescriptionRewriter(adapter=build_text_completion_adapter(settings), settings=settings)


@lru_cache(maxsize=1)
def get_import_coordinator() -> ImportJobCoordinator:
    return ImportJobCoordinator()
