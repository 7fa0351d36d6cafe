"""
app/schemas/catalog_crawler.py

Schemas for catalog crawler control endpoints.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class CrawlerStatusResponse(BaseModel):
    next_external_id: int = Field(..., ge=1)
    is_enabled: bool
    total_processed: int = Field(..., ge=0)
    total_added: int = Field(..., ge=0)
    total_skipped: int = Field(..., ge=0)
    total_errors: int = Field(..., ge=0)
    last_run_at: datetime | None = None
    last_error: str | None = None
    catalog_size: int = Field(..., ge=0)
    is_running: bool = False


class CrawlerResetRequest(BaseModel):
    next_external_id: int = Field(default=1, ge=1)


class CrawlerRunRequest(BaseModel):
    batches: int | None = Field(default=None, ge=1, le=100)


class CrawlBatchResponse(BaseModel):
    start_id: int
    end_id: int
    processed: int = Field(..., ge=0)
    added: int = Field(..., ge=0)
    skipped: int = Field(..., ge=0)
    errors: int = Field(..., ge=0)
    error_message: str | None = None


class CrawlRunResponse(BaseModel):
    status: str
    start_id: int
    next_external_id: int
    processed: int = Field(..., ge=0)
    added: int = Field(..., ge=0)
    skipped: int = Field(..., ge=0)
    errors: int = Field(..., ge=0)
    batches: list[CrawlBatchResponse] = Field(default_factory=list)
    last_error: str | None = None
    finished_at: datetime | None = None
    state_verified: bool = True


class FetchIdsRequest(BaseModel):
    ids: list[int] = Field(..., min_length=1, max_length=100)


class FetchIdResult(BaseModel):
    external_id: int
    status: str
    title: str | None = None
    error: str | None = None


class FetchIdsResponse(BaseModel):
    added: int = Field(..., ge=0)
    updated: int = Field(..., ge=0)
    errors: int = Field(..., ge=0)
    results: list[FetchIdResult] = Field(default_factory=list)
