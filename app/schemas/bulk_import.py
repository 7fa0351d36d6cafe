"""
app/schemas/bulk_import.py

Request and response schemas for bulk import endpoints.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field, model_validator


class ImportDefaults(BaseModel):
    """
    Values applied to every created game that does not carry its own.
    """

    is_coming_soon: bool | None = None
    is_for_sale: bool | None = None
    sale_price: Decimal | None = Field(default=None, ge=0)
    sale_condition: str | None = Field(default=None, max_length=100)
    location_room: str | None = Field(default=None, max_length=100)
    location_shelf: str | None = Field(default=None, max_length=100)
    location_misc: str | None = Field(default=None, max_length=255)
    sleeved: bool | None = None
    upgraded_components: bool | None = None
    crowdfunded: bool | None = None
    inserts: bool | None = None

    def to_defaults(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class ImportOptionsRequest(BaseModel):
    enhance_with_reference: bool = False
    rewrite_descriptions: bool = False
    import_plays: bool = False
    update_existing_plays: bool = False
    defaults: ImportDefaults = Field(default_factory=ImportDefaults)


class ImportRequest(ImportOptionsRequest):
    """
    Start an import from raw file content or from a list of reference links.
    """

    library_id: UUID
    content: str | None = None
    filename: str | None = Field(default=None, max_length=255)
    links: list[str] | None = Field(default=None, max_length=1000)

    @model_validator(mode="after")
    def _require_one_source(self) -> "ImportRequest":
        if bool(self.content) == bool(self.links):
            raise ValueError("Provide exactly one of 'content' or 'links'.")
        return self


class PlayImportRequest(BaseModel):
    library_id: UUID
    content: str = Field(..., min_length=2)
    filename: str | None = Field(default=None, max_length=255)
    update_existing: bool = False


class ImportJobAcceptedResponse(BaseModel):
    job_id: UUID
    job_type: str
    status: str
    total_items: int = Field(..., ge=0)
    created_at: datetime


class ImportJobStatusResponse(BaseModel):
    job_id: UUID
    library_id: UUID
    job_type: str
    status: str
    total_items: int = Field(..., ge=0)
    processed_items: int = Field(..., ge=0)
    successful_items: int = Field(..., ge=0)
    failed_items: int = Field(..., ge=0)
    phase: str | None = None
    current_item: str | None = None
    error_message: str | None = None
    request_payload: dict[str, Any] | None = None
    result: dict[str, Any] | None = None
    created_at: datetime
    updated_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None


class ImportJobListResponse(BaseModel):
    jobs: list[ImportJobStatusResponse] = Field(default_factory=list)


class PlayImportResponse(BaseModel):
    job_id: UUID
    status: str
    summary: dict[str, Any]
