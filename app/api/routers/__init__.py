"""
app/api/routers package marker.
"""

from app.api.routers.bulk_import import router as bulk_import_router
from app.api.routers.catalog_crawler import router as catalog_crawler_router

__all__ = [
    "bulk_import_router",
    "catalog_crawler_router",
]
