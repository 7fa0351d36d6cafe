"""
Repository for the reference catalog and its auxiliary entities.
"""

from __future__ import annotations

from collections.abc import Iterable

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.domain.catalog import ReferenceItem
from app.domain.game_records import normalize_title
from db.models.catalog import CatalogContributor, CatalogEntry, CatalogTag, ContributorKind


class CatalogRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def existing_external_ids(self, external_ids: Iterable[int]) -> set[int]:
        ids = sorted(set(external_ids))
        if not ids:
            return set()
        stmt = select(CatalogEntry.external_id).where(CatalogEntry.external_id.in_(ids))
        return {external_id for external_id in self._session.scalars(stmt).all() if external_id is not None}

    def count_entries(self) -> int:
        return int(self._session.scalar(select(func.count()).select_from(CatalogEntry)) or 0)

    def get_by_external_id(self, external_id: int) -> CatalogEntry | None:
        return self._session.scalars(select(CatalogEntry).where(CatalogEntry.external_id == external_id)).first()

    def upsert_entry(self, item: ReferenceItem) -> tuple[CatalogEntry, bool]:
        """
        Insert or update the entry keyed by external id.

        An entry seeded by title only (no external id yet) is adopted instead
        of creating a duplicate. Returns (entry, created).
        """

        created = False
        entry = self.get_by_external_id(item.external_id)
        if entry is None:
            entry = self._session.scalars(
                select(CatalogEntry)
                .where(
                    CatalogEntry.external_id.is_(None),
                    CatalogEntry.normalized_title == normalize_title(item.title),
                )
                .limit(1)
            ).first()
        if entry is None:
            entry = CatalogEntry(external_id=item.external_id)
            self._session.add(entry)
            created = True

        entry.external_id = item.external_id
        entry.title = item.title
        entry.normalized_title = normalize_title(item.title)
        entry.description = item.description
        entry.image_url = item.image_url
        entry.min_players = item.min_players
        entry.max_players = item.max_players
        entry.play_time_minutes = item.playing_time
        entry.suggested_age = item.suggested_age
        entry.year_published = item.year_published
        entry.rating = item.rating
        entry.weight = item.weight
        entry.is_expansion = item.is_expansion
        entry.external_url = item.external_url

        self._link_tags(entry, item.mechanics)
        contributors = (
            [(ContributorKind.PUBLISHER, name) for name in item.publishers]
            + [(ContributorKind.DESIGNER, name) for name in item.designers]
            + [(ContributorKind.ARTIST, name) for name in item.artists]
        )
        self._link_contributors(entry, contributors)

        self._session.flush()
        return entry, created

    def _link_tags(self, entry: CatalogEntry, names: Iterable[str]) -> None:
        linked = {tag.name for tag in entry.tags}
        for name in dict.fromkeys(names):
            if name in linked:
                continue
            entry.tags.append(self._get_or_create_tag(name))
            linked.add(name)

    def _link_contributors(self, entry: CatalogEntry, contributors: Iterable[tuple[str, str]]) -> None:
        linked = {(contributor.kind, contributor.name) for contributor in entry.contributors}
        for kind, name in dict.fromkeys(contributors):
            if (kind, name) in linked:
                continue
            entry.contributors.append(self._get_or_create_contributor(kind, name))
            linked.add((kind, name))

    def _get_or_create_tag(self, name: str) -> CatalogTag:
        tag = self._session.scalars(select(CatalogTag).where(CatalogTag.name == name)).first()
        if tag is None:
            tag = CatalogTag(name=name)
            self._session.add(tag)
            self._session.flush()
        return tag

    def _get_or_create_contributor(self, kind: str, name: str) -> CatalogContributor:
        contributor = self._session.scalars(
            select(CatalogContributor).where(CatalogContributor.kind == kind, CatalogContributor.name == name)
        ).first()
        if contributor is None:
            contributor = CatalogContributor(kind=kind, name=name)
            self._session.add(contributor)
            self._session.flush()
        return contributor
