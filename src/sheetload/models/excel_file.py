from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path

from .sheet_process import SheetProcess

"""ExcelFile domain model and FileStatus enum for sheetload.

ExcelFile is the processing context of one workbook (one book) from
discovery through commit or rollback.
"""

__all__ = [
    "FileStatus",
    "ExcelFile",
]


class FileStatus(Enum):
    """Status of a workbook through the import lifecycle.

    pending → processing → (success | failed)
    """
    PENDING = "pending"
    PROCESSING = "processing"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass(frozen=True)
class ExcelFile:
    """Processing context for a single workbook file."""
    path: Path
    name: str
    sheets: list[SheetProcess] = field(default_factory=list)
    start_time: datetime | None = None
    end_time: datetime | None = None
    status: FileStatus = FileStatus.PENDING
    total_rows: int = 0  # inserted rows over all sheets
    updated_rows: int = 0
    rejected_rows: int = 0
    warnings: int = 0
    excluded_sheets: int = 0  # sheets dropped by the scheduler or table validation
    skipped_sheets: int = 0  # mapped sheets missing from the workbook
    error: str | None = None
