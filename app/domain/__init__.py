"""
app/domain package marker.
"""

from app.domain.catalog import CrawlBatchOutcome, CrawlRunSummary, ReferenceItem
from app.domain.game_records import CanonicalGameRecord, CanonicalPlayer, CanonicalPlayRecord, normalize_title
from app.domain.import_result import FailureReason, ImportResult, ImportTally, ProgressPhase

__all__ = [
    "CanonicalGameRecord",
    "CanonicalPlayRecord",
    "CanonicalPlayer",
    "CrawlBatchOutcome",
    "CrawlRunSummary",
    "FailureReason",
    "ImportResult",
    "ImportTally",
    "ProgressPhase",
    "ReferenceItem",
    "normalize_title",
]
