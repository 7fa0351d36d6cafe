"""
Model package exports.

Import all SQLAlchemy models here so metadata registration and Alembic
autogeneration work without extra imports.
"""

from db.models.catalog import (
    CatalogContributor,
    CatalogEntry,
    CatalogTag,
    ContributorKind,
    CrawlerState,
)
from db.models.game import Game, Mechanic, Publisher
from db.models.import_job import ImportJob, ImportJobStatus, ImportJobType
from db.models.play_session import PlaySession, PlaySessionPlayer

__all__ = [
    "CatalogContributor",
    "CatalogEntry",
    "CatalogTag",
    "ContributorKind",
    "CrawlerState",
    "Game",
    "ImportJob",
    "ImportJobStatus",
    "ImportJobType",
    "Mechanic",
    "PlaySession",
    "PlaySessionPlayer",
    "Publisher",
]
