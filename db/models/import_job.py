"""
db/models/import_job.py

Bulk import job model. One row per import request, mutated in place as the
worker processes items.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import CheckConstraint, DateTime, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, TimestampMixin


class ImportJobType:
    GAME_IMPORT = "game_import"
    PLAY_IMPORT = "play_import"


class ImportJobStatus:
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    TERMINAL = frozenset({COMPLETED, FAILED})


class ImportJob(Base, TimestampMixin):
    __tablename__ = "import_jobs"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    library_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        nullable=False,
    )
    job_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default=ImportJobType.GAME_IMPORT,
        comment="game_import, play_import",
    )
    status: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default=ImportJobStatus.PENDING,
    )
    total_items: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    processed_items: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    successful_items: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failed_items: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    phase: Mapped[str | None] = mapped_column(String(32), nullable=True)
    current_item: Mapped[str | None] = mapped_column(String(500), nullable=True)
    request_payload: Mapped[dict[str, Any] | None] = mapped_column(
        nullable=True,
        comment="Import flags, filename, detected format, default overrides and the parsed records",
    )
    checkpoint_payload: Mapped[dict[str, Any] | None] = mapped_column(
        nullable=True,
        comment="Running tally, rewritten with every progress update",
    )
    result_payload: Mapped[dict[str, Any] | None] = mapped_column(
        nullable=True,
        comment="Final ImportResult",
    )
    error_message: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )
    started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    __table_args__ = (
        CheckConstraint("processed_items <= total_items", name="ck_import_jobs_processed_le_total"),
        CheckConstraint(
            "successful_items + failed_items <= processed_items",
            name="ck_import_jobs_outcomes_le_processed",
        ),
        Index("ix_import_jobs_library_id", "library_id"),
        Index("ix_import_jobs_status", "status"),
        Index("ix_import_jobs_created_at", "created_at"),
        Index("ix_import_jobs_library_id_status", "library_id", "status"),
        Index("ix_import_jobs_status_updated_at", "status", "updated_at"),
    )
