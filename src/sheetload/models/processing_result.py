from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

"""Processing result models for sheetload.

ProcessingResult aggregates one run over all workbooks and feeds the
SUMMARY line; FileStat keeps the per-file figures.
"""


@dataclass(frozen=True)
class FileStat:
    """Per-file processing statistics."""
    file_name: str
    status: str  # success/failed
    inserted_rows: int
    elapsed_seconds: float
    updated_rows: int = 0
    rejected_rows: int = 0
    excluded_sheets: int = 0


@dataclass(frozen=True)
class ProcessingResult:
    """Aggregated results and summary output for one run."""
    success_files: int
    failed_files: int
    total_inserted_rows: int
    skipped_sheets: int
    start_time: datetime
    end_time: datetime
    elapsed_seconds: float
    throughput_rows_per_sec: float
    total_updated_rows: int = 0
    rejected_rows: int = 0
    warnings: int = 0
    excluded_sheets: int = 0
    file_stats: list[FileStat] | None = None
