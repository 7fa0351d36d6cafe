"""
Repository for import job lifecycle persistence and status lookup.

Counter writes go through single UPDATE statements keyed by id so concurrent
readers (stream and poll observers) only ever see committed, whole snapshots.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import Select, func, select, update
from sqlalchemy.orm import Session

from db.models.import_job import ImportJob, ImportJobStatus, ImportJobType

ACTIVE_STATUSES = (ImportJobStatus.PENDING, ImportJobStatus.RUNNING)


class ImportJobRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def create_job(
        self,
        *,
        library_id: uuid.UUID,
        total_items: int,
        job_type: str = ImportJobType.GAME_IMPORT,
        request_payload: dict[str, Any] | None = None,
    ) -> ImportJob:
        job = ImportJob(
            library_id=library_id,
            job_type=job_type,
            status=ImportJobStatus.PENDING,
            total_items=max(0, total_items),
            processed_items=0,
            successful_items=0,
            failed_items=0,
            request_payload=request_payload,
        )
        self._session.add(job)
        self._session.flush()
        self._session.refresh(job)
        return job

    def get_job(self, job_id: uuid.UUID) -> ImportJob | None:
        return self._session.get(ImportJob, job_id)

    def list_jobs(
        self,
        *,
        library_id: uuid.UUID | None = None,
        status: str | None = None,
        limit: int = 50,
    ) -> list[ImportJob]:
        stmt: Select[tuple[ImportJob]] = select(ImportJob)

        if library_id is not None:
            stmt = stmt.where(ImportJob.library_id == library_id)
        if status:
            stmt = stmt.where(ImportJob.status == status)

        stmt = stmt.order_by(ImportJob.created_at.desc()).limit(max(1, limit))
        return list(self._session.scalars(stmt).all())

    def mark_running(self, *, job_id: uuid.UUID) -> bool:
        """Start (or restart after an interruption) a job that has not finished."""
        result = self._session.execute(
            update(ImportJob)
            .where(ImportJob.id == job_id, ImportJob.status.in_(ACTIVE_STATUSES))
            .values(
                status=ImportJobStatus.RUNNING,
                started_at=func.coalesce(ImportJob.started_at, datetime.now(timezone.utc)),
                completed_at=None,
                error_message=None,
            )
        )
        return result.rowcount > 0

    def update_progress(
        self,
        *,
        job_id: uuid.UUID,
        processed_items: int,
        successful_items: int,
        failed_items: int,
        phase: str | None = None,
        current_item: str | None = None,
        checkpoint: dict[str, Any] | None = None,
    ) -> bool:
        """
        Replace the job's counters with the worker's current totals.

        The WHERE clause keeps processed_items monotonic and bounded by
        total_items, and ignores writes to a job that is no longer running.
        """

        if successful_items + failed_items > processed_items:
            raise ValueError("successful_items + failed_items cannot exceed processed_items.")

        result = self._session.execute(
            update(ImportJob)
            .where(
                ImportJob.id == job_id,
                ImportJob.status == ImportJobStatus.RUNNING,
                ImportJob.processed_items <= processed_items,
                ImportJob.total_items >= processed_items,
            )
            .values(
                processed_items=processed_items,
                successful_items=successful_items,
                failed_items=failed_items,
                phase=phase,
                current_item=current_item[:500] if current_item else None,
                checkpoint_payload=checkpoint,
            )
        )
        return result.rowcount > 0

    def update_phase(self, *, job_id: uuid.UUID, phase: str, current_item: str | None = None) -> None:
        self._session.execute(
            update(ImportJob)
            .where(ImportJob.id == job_id)
            .values(phase=phase, current_item=current_item[:500] if current_item else None)
        )

    def touch(self, *, job_id: uuid.UUID) -> None:
        """Record liveness for long phases that write no counters."""
        self._session.execute(
            update(ImportJob)
            .where(ImportJob.id == job_id, ImportJob.status == ImportJobStatus.RUNNING)
            .values(updated_at=datetime.now(timezone.utc))
        )

    def mark_completed(
        self,
        *,
        job_id: uuid.UUID,
        result_payload: dict[str, Any] | None = None,
    ) -> bool:
        result = self._session.execute(
            update(ImportJob)
            .where(ImportJob.id == job_id, ImportJob.status.in_(ACTIVE_STATUSES))
            .values(
                status=ImportJobStatus.COMPLETED,
                completed_at=datetime.now(timezone.utc),
                result_payload=result_payload,
                phase="complete",
                current_item=None,
                error_message=None,
            )
        )
        return result.rowcount > 0

    def mark_failed(
        self,
        *,
        job_id: uuid.UUID,
        error_message: str,
        result_payload: dict[str, Any] | None = None,
    ) -> bool:
        values: dict[str, Any] = {
            "status": ImportJobStatus.FAILED,
            "completed_at": datetime.now(timezone.utc),
            "error_message": error_message,
            "phase": "complete",
        }
        if result_payload is not None:
            values["result_payload"] = result_payload
        result = self._session.execute(
            update(ImportJob)
            .where(ImportJob.id == job_id, ImportJob.status.in_(ACTIVE_STATUSES))
            .values(**values)
        )
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Interrupted jobs
    # ------------------------------------------------------------------

    def list_stale_jobs(self, *, stale_before: datetime, limit: int = 100) -> list[ImportJob]:
        """
        Pending or running jobs with no write since `stale_before`. A live
        worker touches its job after every item, so these have lost theirs.
        """

        stmt = (
            select(ImportJob)
            .where(ImportJob.status.in_(ACTIVE_STATUSES), ImportJob.updated_at < stale_before)
            .order_by(ImportJob.created_at.asc())
            .limit(max(1, limit))
        )
        return list(self._session.scalars(stmt).all())

    def claim_stale_job(self, *, job_id: uuid.UUID, stale_before: datetime) -> bool:
        """
        Take over a stale job. Only one process can win: the claim itself
        refreshes updated_at, so a second claim no longer matches.
        """

        result = self._session.execute(
            update(ImportJob)
            .where(
                ImportJob.id == job_id,
                ImportJob.status.in_(ACTIVE_STATUSES),
                ImportJob.updated_at < stale_before,
            )
            .values(updated_at=datetime.now(timezone.utc), phase="resuming", current_item=None)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0
