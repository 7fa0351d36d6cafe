"""
Repository for imported play sessions.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.domain.game_records import CanonicalPlayRecord
from db.models.play_session import PlaySession, PlaySessionPlayer


class PlaySessionRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def find_by_source_ids(self, *, library_id: uuid.UUID, source_ids: Iterable[str]) -> dict[str, PlaySession]:
        ids = sorted({source_id for source_id in source_ids if source_id})
        if not ids:
            return {}
        stmt = select(PlaySession).where(PlaySession.library_id == library_id, PlaySession.source_id.in_(ids))
        return {session.source_id: session for session in self._session.scalars(stmt).all() if session.source_id}

    def create_session(
        self,
        *,
        library_id: uuid.UUID,
        game_id: uuid.UUID,
        play: CanonicalPlayRecord,
    ) -> PlaySession:
        session = PlaySession(library_id=library_id, game_id=game_id, source_id=play.source_id)
        self._apply(session, game_id=game_id, play=play)
        self._session.add(session)
        self._session.flush()
        return session

    def overwrite_session(self, *, existing: PlaySession, game_id: uuid.UUID, play: CanonicalPlayRecord) -> PlaySession:
        existing.players.clear()
        self._apply(existing, game_id=game_id, play=play)
        self._session.flush()
        return existing

    @staticmethod
    def _apply(session: PlaySession, *, game_id: uuid.UUID, play: CanonicalPlayRecord) -> None:
        session.game_id = game_id
        session.played_at = play.played_at
        session.duration_minutes = play.duration_minutes
        session.location = play.location
        session.notes = play.notes
        for position, player in enumerate(play.players):
            session.players.append(
                PlaySessionPlayer(
                    position=position,
                    player_name=player.name,
                    score=player.score,
                    is_winner=player.is_winner,
                    is_first_play=player.is_first_play,
                    color=player.color,
                    external_username=player.external_username,
                )
            )
