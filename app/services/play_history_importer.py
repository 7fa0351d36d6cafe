"""
Attach imported play records to games in a library.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.domain.game_records import CanonicalPlayRecord, normalize_title
from db.models.play_session import PlaySession
from db.repositories.game_repository import GameRepository
from db.repositories.play_session_repository import PlaySessionRepository

logger = logging.getLogger(__name__)


@dataclass
class PlayImportSummary:
    """
    Outcome of one play-history pass. Unmatched plays are listed separately
    and are not counted as failures.
    """

    total: int = 0
    imported: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    unmatched: list[str] = field(default_factory=list)
    unmatched_plays: int = 0
    skipped_duplicates: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "imported": self.imported,
            "updated": self.updated,
            "skipped": self.skipped,
            "failed": self.failed,
            "unmatched": list(self.unmatched),
            "unmatchedPlays": self.unmatched_plays,
            "skippedDuplicates": list(self.skipped_duplicates),
            "errors": list(self.errors),
        }


class PlayHistoryImporter:
    def __init__(self, *, error_cap: int = 10) -> None:
        self._error_cap = error_cap

    def import_plays(
        self,
        *,
        db: Session,
        library_id: uuid.UUID,
        plays: Sequence[CanonicalPlayRecord],
        update_existing: bool = False,
    ) -> PlayImportSummary:
        """
        Match plays to library games (external id first, then normalized
        title) and persist them, committing each play.

        Plays whose source id is already stored are overwritten when
        `update_existing` is set, otherwise skipped as duplicates.
        """

        summary = PlayImportSummary(total=len(plays))
        games = GameRepository(db).list_games(library_id=library_id)
        by_external_id = {game.external_id: game.id for game in games if game.external_id}
        by_title: dict[str, uuid.UUID] = {}
        for game in games:
            by_title.setdefault(game.normalized_title, game.id)

        sessions = PlaySessionRepository(db)
        existing: dict[str, PlaySession] = sessions.find_by_source_ids(
            library_id=library_id,
            source_ids=[play.source_id for play in plays if play.source_id],
        )

        for play in plays:
            game_id = by_external_id.get(play.external_id) if play.external_id else None
            if game_id is None:
                game_id = by_title.get(normalize_title(play.game_title))
            if game_id is None:
                summary.unmatched_plays += 1
                name = play.game_title or f"#{play.external_id}"
                if name not in summary.unmatched:
                    summary.unmatched.append(name)
                continue

            current = existing.get(play.source_id) if play.source_id else None
            if current is not None and not update_existing:
                summary.skipped += 1
                summary.skipped_duplicates.append(play.label)
                continue

            try:
                if current is not None:
                    sessions.overwrite_session(existing=current, game_id=game_id, play=play)
                    db.commit()
                    summary.updated += 1
                else:
                    created = sessions.create_session(library_id=library_id, game_id=game_id, play=play)
                    db.commit()
                    summary.imported += 1
                    if play.source_id:
                        existing[play.source_id] = created
            except SQLAlchemyError as exc:
                db.rollback()
                summary.failed += 1
                if len(summary.errors) < self._error_cap:
                    summary.errors.append(f"{play.label}: {exc.__class__.__name__}")
                logger.warning("Failed to store play play=%s error=%s", play.label, exc)

        logger.info(
            "Play import finished library_id=%s imported=%s updated=%s skipped=%s failed=%s unmatched=%s",
            library_id,
            summary.imported,
            summary.updated,
            summary.skipped,
            summary.failed,
            len(summary.unmatched),
        )
        return summary
