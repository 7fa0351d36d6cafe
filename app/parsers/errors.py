"""
Exceptions raised while turning uploaded content into canonical records.

All of them are pre-flight errors: they are raised before an import job
exists and surface to the caller as a 400 response.
"""

from __future__ import annotations

from typing import Any


class ImportFormatError(ValueError):
    """Base class for content that cannot be parsed into canonical records."""

    code = "invalid_import_content"

    def __init__(self, message: str, *, filename: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.filename = filename

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.code,
            "message": self.message,
            "filename": self.filename,
        }


class UnsupportedFormatError(ImportFormatError):
    """Raised when no known format matches the uploaded content."""

    code = "unsupported_format"


class MissingColumnError(ImportFormatError):
    """Raised when a tabular upload has no usable title or id column."""

    code = "missing_required_column"

    def __init__(self, message: str, *, filename: str | None = None, headers: list[str] | None = None) -> None:
        super().__init__(message, filename=filename)
        self.headers = headers or []

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["headers"] = self.headers
        return payload
