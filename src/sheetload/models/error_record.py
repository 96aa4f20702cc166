from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

from .diagnostics import Diagnostic

"""ErrorRecord model for the JSON Lines error log.

Every diagnostic raised while loading a book ends up as one ErrorRecord.
``row`` is the workbook row number, -1 for file or sheet level records
where no single row applies.

The record layout is fixed by the bundled contract
``sheetload/logging/error_log_schema.json``.
"""

__all__ = [
    "ErrorRecord",
    "UNKNOWN_ROW",
]

UNKNOWN_ROW = -1


@dataclass(frozen=True)
class ErrorRecord:
    """Structured error record for JSON Lines logging.

    Attributes:
        timestamp: ISO8601 UTC timestamp with 'Z' suffix
        file: workbook file name
        sheet: sheet name, "<FILE_LEVEL>" for file level records
        row: workbook row number, -1 when unknown
        severity: "error" or "warning"
        error_type: classification in UPPER_SNAKE_CASE
        message: human readable diagnostic or database message
    """
    timestamp: str
    file: str
    sheet: str
    row: int
    severity: str
    error_type: str
    message: str

    @staticmethod
    def create(
        file: str,
        sheet: str,
        row: int,
        error_type: str,
        message: str,
        severity: str = "error",
    ) -> ErrorRecord:
        """Create a new ErrorRecord stamped with the current UTC time."""
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return ErrorRecord(
            timestamp=ts,
            file=file,
            sheet=sheet,
            row=row,
            severity=severity,
            error_type=error_type,
            message=message,
        )

    @staticmethod
    def from_diagnostic(
        file: str, sheet: str, row: int, error_type: str, diagnostic: Diagnostic
    ) -> ErrorRecord:
        return ErrorRecord.create(
            file=file,
            sheet=sheet,
            row=row,
            error_type=error_type,
            message=diagnostic.text,
            severity=diagnostic.severity.value,
        )

    def to_json_line(self) -> str:
        """Serialize to a single JSON line without extra keys."""
        return json.dumps(asdict(self), ensure_ascii=False)
