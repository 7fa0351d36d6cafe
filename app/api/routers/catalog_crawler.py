"""
Catalog crawler control endpoints, intended for operators and an external
scheduler.
"""

from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException, status

from app.api.dependencies import require_crawler_admin_token
from app.schemas.catalog_crawler import (
    CrawlerResetRequest,
    CrawlerRunRequest,
    CrawlerStatusResponse,
    CrawlRunResponse,
    FetchIdsRequest,
    FetchIdsResponse,
)
from app.services.catalog_crawler import CatalogCrawler, CatalogCrawlerBusyError, get_catalog_crawler

router = APIRouter(
    prefix="/catalog-crawler",
    tags=["catalog-crawler"],
    dependencies=[Depends(require_crawler_admin_token)],
)


@router.get("/status", response_model=CrawlerStatusResponse)
def get_crawler_status(crawler: CatalogCrawler = Depends(get_catalog_crawler)) -> CrawlerStatusResponse:
    return CrawlerStatusResponse(**crawler.status())


@router.post("/enable", response_model=CrawlerStatusResponse)
def enable_crawler(crawler: CatalogCrawler = Depends(get_catalog_crawler)) -> CrawlerStatusResponse:
    return CrawlerStatusResponse(**crawler.set_enabled(True))


@router.post("/disable", response_model=CrawlerStatusResponse)
def disable_crawler(crawler: CatalogCrawler = Depends(get_catalog_crawler)) -> CrawlerStatusResponse:
    return CrawlerStatusResponse(**crawler.set_enabled(False))


@router.post("/reset", response_model=CrawlerStatusResponse)
def reset_crawler(
    payload: CrawlerResetRequest,
    crawler: CatalogCrawler = Depends(get_catalog_crawler),
) -> CrawlerStatusResponse:
    return CrawlerStatusResponse(**crawler.reset(payload.next_external_id))


@router.post("/run", response_model=CrawlRunResponse)
def run_crawler(
    payload: CrawlerRunRequest | None = None,
    crawler: CatalogCrawler = Depends(get_catalog_crawler),
) -> CrawlRunResponse:
    try:
        summary = crawler.run(batches=payload.batches if payload else None)
    except CatalogCrawlerBusyError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return CrawlRunResponse(**asdict(summary))


@router.post("/fetch-ids", response_model=FetchIdsResponse)
def fetch_catalog_ids(
    payload: FetchIdsRequest,
    crawler: CatalogCrawler = Depends(get_catalog_crawler),
) -> FetchIdsResponse:
    try:
        result = crawler.fetch_ids(payload.ids)
    except CatalogCrawlerBusyError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return FetchIdsResponse(**result)
