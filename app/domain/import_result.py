"""
app/domain/import_result.py

Failure taxonomy, final result, and progress frame shapes for bulk imports.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Any


class FailureReason:
    ALREADY_EXISTS = "already_exists"
    MISSING_TITLE = "missing_title"
    CREATE_FAILED = "create_failed"
    EXCEPTION = "exception"
    NOT_FOUND = "not_found"

    ALL = (ALREADY_EXISTS, MISSING_TITLE, CREATE_FAILED, EXCEPTION, NOT_FOUND)


class ProgressPhase:
    ENHANCING = "enhancing"
    IMPORTING = "importing"
    IMPORTED = "imported"
    SKIPPED = "skipped"
    ERROR = "error"
    PLAYS = "plays"
    DESCRIPTIONS = "descriptions"
    COMPLETE = "complete"


class CappedSample:
    """
    Keep the first `cap` values and count the rest.
    """

    def __init__(self, cap: int) -> None:
        self._cap = max(0, cap)
        self.items: list[str] = []
        self.overflow = 0

    def add(self, value: str) -> None:
        if len(self.items) < self._cap:
            self.items.append(value)
        else:
            self.overflow += 1

    def __len__(self) -> int:
        return len(self.items) + self.overflow

    def restore(self, items: list[str], overflow: int) -> None:
        self.items = list(items)[: self._cap]
        self.overflow = max(0, overflow) + max(0, len(items) - self._cap)


@dataclass
class ImportTally:
    """
    Mutable per-job accumulator owned by one worker.
    """

    error_cap: int = 10
    not_found_cap: int = 10
    imported: int = 0
    failed: int = 0
    breakdown: Counter = field(default_factory=Counter)
    errors: CappedSample = field(init=False)
    not_found: CappedSample = field(init=False)

    def __post_init__(self) -> None:
        self.errors = CappedSample(self.error_cap)
        self.not_found = CappedSample(self.not_found_cap)

    def record_success(self) -> None:
        self.imported += 1

    def record_failure(self, reason: str, message: str) -> None:
        if reason not in FailureReason.ALL:
            raise ValueError(f"Unknown failure reason '{reason}'.")
        self.failed += 1
        self.breakdown[reason] += 1
        self.errors.add(message)

    def to_checkpoint(self) -> dict[str, Any]:
        """
        Running totals persisted with every progress write, so a resumed
        job continues its counts instead of restarting them.
        """

        return {
            "imported": self.imported,
            "failed": self.failed,
            "failureBreakdown": dict(self.breakdown),
            "errors": list(self.errors.items),
            "errorsOverflow": self.errors.overflow,
            "notFound": list(self.not_found.items),
            "notFoundOverflow": self.not_found.overflow,
        }

    @classmethod
    def from_checkpoint(
        cls,
        checkpoint: dict[str, Any] | None,
        *,
        error_cap: int,
        not_found_cap: int,
    ) -> "ImportTally":
        tally = cls(error_cap=error_cap, not_found_cap=not_found_cap)
        if not checkpoint:
            return tally
        tally.imported = int(checkpoint.get("imported") or 0)
        tally.failed = int(checkpoint.get("failed") or 0)
        tally.breakdown = Counter(
            {reason: int(count) for reason, count in (checkpoint.get("failureBreakdown") or {}).items() if count}
        )
        tally.errors.restore(checkpoint.get("errors") or [], int(checkpoint.get("errorsOverflow") or 0))
        tally.not_found.restore(checkpoint.get("notFound") or [], int(checkpoint.get("notFoundOverflow") or 0))
        return tally

    def to_result(self, *, success: bool = True, **extra: Any) -> "ImportResult":
        return ImportResult(
            success=success,
            imported=self.imported,
            failed=self.failed,
            failure_breakdown={reason: self.breakdown.get(reason, 0) for reason in FailureReason.ALL},
            errors=list(self.errors.items),
            errors_overflow=self.errors.overflow,
            not_found=list(self.not_found.items),
            not_found_overflow=self.not_found.overflow,
            extra=extra,
        )


@dataclass(frozen=True)
class ImportResult:
    """
    Final outcome of one import job, computed once at completion.
    """

    success: bool
    imported: int
    failed: int
    failure_breakdown: dict[str, int]
    errors: list[str] = field(default_factory=list)
    errors_overflow: int = 0
    not_found: list[str] = field(default_factory=list)
    not_found_overflow: int = 0
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "success": self.success,
            "imported": self.imported,
            "failed": self.failed,
            "failureBreakdown": dict(self.failure_breakdown),
            "errors": list(self.errors),
            "errorsOverflow": self.errors_overflow,
            "notFound": list(self.not_found),
            "notFoundOverflow": self.not_found_overflow,
        }
        payload.update(self.extra)
        return payload


def start_frame(*, job_id: str, total: int) -> dict[str, Any]:
    return {"type": "start", "jobId": job_id, "total": total}


def progress_frame(
    *,
    current: int,
    total: int,
    imported: int,
    failed: int,
    current_game: str | None,
    phase: str,
) -> dict[str, Any]:
    return {
        "type": "progress",
        "current": current,
        "total": total,
        "imported": imported,
        "failed": failed,
        "currentGame": current_game,
        "phase": phase,
    }


def complete_frame(result: dict[str, Any]) -> dict[str, Any]:
    return {"type": "complete", **result}
