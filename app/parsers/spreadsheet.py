"""
Spreadsheet to CSV conversion.
"""

from __future__ import annotations

import io
import logging

import pandas as pd

from app.parsers.errors import UnsupportedFormatError

logger = logging.getLogger(__name__)


def spreadsheet_to_csv(content: bytes, *, filename: str | None = None) -> str:
    """
    Convert the first sheet of a workbook to CSV text, every cell as a string.
    """

    try:
        frame = pd.read_excel(
            io.BytesIO(content),
            sheet_name=0,
            dtype=str,
            keep_default_na=False,
        )
    except (ValueError, ImportError, OSError) as exc:
        raise UnsupportedFormatError(f"Could not read spreadsheet: {exc}", filename=filename) from exc

    frame = frame.dropna(how="all")
    logger.info("Converted spreadsheet rows=%s columns=%s filename=%s", len(frame), len(frame.columns), filename)
    return frame.to_csv(index=False)
