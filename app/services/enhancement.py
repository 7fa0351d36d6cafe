"""
Best-effort metadata enrichment of canonical records from the reference source.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from app.clients.reference_source import BoardGameReferenceClient
from app.domain.catalog import ReferenceItem
from app.domain.game_records import CanonicalGameRecord
from app.parsers.normalization import minutes_to_play_time, weight_to_difficulty

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EnhancementOutcome:
    record: CanonicalGameRecord
    found: bool
    error: str | None = None


def merge_reference_item(record: CanonicalGameRecord, item: ReferenceItem) -> CanonicalGameRecord:
    """
    Fill fields the record does not have from the reference item.
    Values already on the record win.
    """

    return record.with_updates(
        title=record.title or item.title,
        external_id=record.external_id or str(item.external_id),
        external_url=record.external_url or item.external_url,
        image_url=record.image_url or item.image_url,
        description=record.description or item.description,
        min_players=record.min_players or item.min_players,
        max_players=record.max_players or item.max_players,
        play_time=record.play_time or minutes_to_play_time(item.playing_time),
        difficulty=record.difficulty or weight_to_difficulty(item.weight),
        suggested_age=record.suggested_age or item.suggested_age,
        publisher=record.publisher or (item.publishers[0] if item.publishers else None),
        mechanics=record.mechanics or frozenset(item.mechanics),
        is_expansion=record.is_expansion or item.is_expansion,
    )


class MetadataEnhancer:
    """
    Look records up by external id, else by exact title, and merge what the
    reference source knows. Lookup failures never raise.
    """

    def __init__(self, *, client: BoardGameReferenceClient) -> None:
        self._client = client

    def enhance(self, record: CanonicalGameRecord) -> EnhancementOutcome:
        try:
            external_id: int | str | None = record.external_id
            if not external_id and record.title:
                external_id = self._client.search_exact(record.title)
            if not external_id:
                return EnhancementOutcome(record=record, found=False)
            item = self._client.fetch_thing(external_id)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Reference lookup failed record=%s error=%s", record.label, exc)
            return EnhancementOutcome(record=record, found=False, error=str(exc))

        if item is None:
            return EnhancementOutcome(record=record, found=False)
        return EnhancementOutcome(record=merge_reference_item(record, item), found=True)
