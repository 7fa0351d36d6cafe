"""
app/schemas package marker.
"""

from app.schemas.bulk_import import (
    ImportJobAcceptedResponse,
    ImportJobListResponse,
    ImportJobStatusResponse,
    ImportRequest,
    PlayImportResponse,
)
from app.schemas.catalog_crawler import CrawlerStatusResponse, CrawlRunResponse, FetchIdsResponse

__all__ = [
    "CrawlRunResponse",
    "CrawlerStatusResponse",
    "FetchIdsResponse",
    "ImportJobAcceptedResponse",
    "ImportJobListResponse",
    "ImportJobStatusResponse",
    "ImportRequest",
    "PlayImportResponse",
]
