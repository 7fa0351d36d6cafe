"""
app/api/dependencies.py

Shared FastAPI dependencies for authorization and upload validation.
"""

from __future__ import annotations

import hmac
from pathlib import PurePath

from fastapi import Depends, File, Header, HTTPException, UploadFile, status

from app.config import AuthSettings, get_auth_settings

IMPORT_EXTENSIONS = {".csv", ".tsv", ".txt", ".json", ".bgsplay", ".xlsx", ".xlsm", ".xls"}
IMPORT_CONTENT_TYPES = {
    "text/csv",
    "application/csv",
    "text/plain",
    "text/tab-separated-values",
    "application/json",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}


def _bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def _check_token(authorization: str | None, expected: str | None) -> None:
    if not expected:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Endpoint is not configured with an access token.",
        )
    provided = _bearer_token(authorization)
    if provided is None or not hmac.compare_digest(provided, expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing bearer token.",
            headers={"WWW-Authenticate": "Bearer"},
        )


def require_import_token(
    authorization: str | None = Header(default=None),
    settings: AuthSettings = Depends(get_auth_settings),
) -> None:
    _check_token(authorization, settings.import_api_token)


def require_crawler_admin_token(
    authorization: str | None = Header(default=None),
    settings: AuthSettings = Depends(get_auth_settings),
) -> None:
    _check_token(authorization, settings.crawler_admin_token)


def get_import_upload(file: UploadFile = File(...)) -> UploadFile:
    """
    Validate that the uploaded file is a supported import format by
    extension or MIME type.
    """

    filename = (file.filename or "").strip().lower()
    content_type = (file.content_type or "").strip().lower()

    has_import_extension = PurePath(filename).suffix in IMPORT_EXTENSIONS
    has_import_content_type = content_type in IMPORT_CONTENT_TYPES

    if not has_import_extension and not has_import_content_type:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Only CSV, TSV, JSON export or spreadsheet files are allowed.",
        )

    return file
