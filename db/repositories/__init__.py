"""
Repository layer exports.
"""

from db.repositories.catalog_repository import CatalogRepository
from db.repositories.crawler_state_repository import CrawlerStateRepository
from db.repositories.game_repository import GameRepository
from db.repositories.import_job_repository import ImportJobRepository
from db.repositories.play_session_repository import PlaySessionRepository

__all__ = [
    "CatalogRepository",
    "CrawlerStateRepository",
    "GameRepository",
    "ImportJobRepository",
    "PlaySessionRepository",
]
