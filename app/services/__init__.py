"""
app/services package marker.
"""

from app.services.catalog_crawler import (
    CatalogCrawler,
    CatalogCrawlerBusyError,
    get_catalog_crawler,
)
from app.services.import_coordinator import (
    ImportJobCoordinator,
    ImportValidationError,
    get_import_coordinator,
)
from app.services.progress_broker import ProgressBroker, get_progress_broker

__all__ = [
    "CatalogCrawler",
    "CatalogCrawlerBusyError",
    "get_catalog_crawler",
    "ImportJobCoordinator",
    "ImportValidationError",
    "get_import_coordinator",
    "ProgressBroker",
    "get_progress_broker",
]
