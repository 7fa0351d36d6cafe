"""
tests/test_import_job_repository.py

Job row transitions: counters only move forward, finished jobs stay
finished, and a stale job can be claimed by one process only.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import update

from db.models.import_job import ImportJob, ImportJobStatus
from db.repositories.import_job_repository import ImportJobRepository


@pytest.fixture()
def repository(db) -> ImportJobRepository:
    return ImportJobRepository(db)


def _running_job(repository: ImportJobRepository, db, library_id, total: int = 5):
    job = repository.create_job(library_id=library_id, total_items=total)
    repository.mark_running(job_id=job.id)
    db.commit()
    return job.id


def _age(db, job_id, *, minutes: float) -> None:
    db.execute(
        update(ImportJob)
        .where(ImportJob.id == job_id)
        .values(updated_at=datetime.now(timezone.utc) - timedelta(minutes=minutes))
    )
    db.commit()


class TestProgress:
    def test_counters_never_move_backwards(self, repository, db, library_id) -> None:
        job_id = _running_job(repository, db, library_id)

        assert repository.update_progress(job_id=job_id, processed_items=3, successful_items=3, failed_items=0)
        assert not repository.update_progress(job_id=job_id, processed_items=2, successful_items=2, failed_items=0)
        assert not repository.update_progress(job_id=job_id, processed_items=6, successful_items=6, failed_items=0)
        db.commit()

        db.expire_all()
        assert repository.get_job(job_id).processed_items == 3

    def test_outcomes_cannot_exceed_processed(self, repository, db, library_id) -> None:
        job_id = _running_job(repository, db, library_id)
        with pytest.raises(ValueError):
            repository.update_progress(job_id=job_id, processed_items=1, successful_items=1, failed_items=1)

    def test_checkpoint_is_stored_with_counters(self, repository, db, library_id) -> None:
        job_id = _running_job(repository, db, library_id)
        repository.update_progress(
            job_id=job_id,
            processed_items=1,
            successful_items=1,
            failed_items=0,
            checkpoint={"imported": 1, "failed": 0},
        )
        db.commit()

        db.expire_all()
        assert repository.get_job(job_id).checkpoint_payload == {"imported": 1, "failed": 0}


class TestTerminalStates:
    def test_failed_job_is_not_completed_later(self, repository, db, library_id) -> None:
        job_id = _running_job(repository, db, library_id)

        assert repository.mark_failed(job_id=job_id, error_message="Interrupted.")
        assert not repository.mark_completed(job_id=job_id, result_payload={"success": True})
        assert not repository.mark_running(job_id=job_id)
        assert not repository.update_progress(job_id=job_id, processed_items=1, successful_items=1, failed_items=0)
        db.commit()

        db.expire_all()
        job = repository.get_job(job_id)
        assert job.status == ImportJobStatus.FAILED
        assert job.error_message == "Interrupted."
        assert job.result_payload is None
        assert job.processed_items == 0

    def test_completed_job_is_not_failed_later(self, repository, db, library_id) -> None:
        job_id = _running_job(repository, db, library_id)

        assert repository.mark_completed(job_id=job_id, result_payload={"success": True})
        assert not repository.mark_failed(job_id=job_id, error_message="Too late.")
        db.commit()

        db.expire_all()
        assert repository.get_job(job_id).status == ImportJobStatus.COMPLETED

    def test_restart_keeps_original_start_time(self, repository, db, library_id) -> None:
        job_id = _running_job(repository, db, library_id)
        db.expire_all()
        started_at = repository.get_job(job_id).started_at

        assert repository.mark_running(job_id=job_id)
        db.commit()

        db.expire_all()
        assert repository.get_job(job_id).started_at == started_at


class TestStaleJobs:
    def test_only_unwritten_active_jobs_are_stale(self, repository, db, library_id) -> None:
        stale = _running_job(repository, db, library_id)
        live = _running_job(repository, db, library_id)
        finished = _running_job(repository, db, library_id)
        repository.mark_completed(job_id=finished, result_payload={})
        db.commit()
        _age(db, stale, minutes=30)
        _age(db, finished, minutes=30)

        cutoff = datetime.now(timezone.utc) - timedelta(minutes=15)
        stale_ids = [job.id for job in repository.list_stale_jobs(stale_before=cutoff)]
        assert stale_ids == [stale]
        assert live not in stale_ids

    def test_claim_succeeds_once(self, repository, db, library_id) -> None:
        job_id = _running_job(repository, db, library_id)
        _age(db, job_id, minutes=30)
        cutoff = datetime.now(timezone.utc) - timedelta(minutes=15)

        assert repository.claim_stale_job(job_id=job_id, stale_before=cutoff)
        db.commit()
        assert not repository.claim_stale_job(job_id=job_id, stale_before=cutoff)

        db.expire_all()
        job = repository.get_job(job_id)
        assert job.phase == "resuming"
        assert job.status == ImportJobStatus.RUNNING

    def test_touch_keeps_a_job_live(self, repository, db, library_id) -> None:
        job_id = _running_job(repository, db, library_id)
        _age(db, job_id, minutes=30)

        repository.touch(job_id=job_id)
        db.commit()

        cutoff = datetime.now(timezone.utc) - timedelta(minutes=15)
        assert repository.list_stale_jobs(stale_before=cutoff) == []
