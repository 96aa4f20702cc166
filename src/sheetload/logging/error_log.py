from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

from ..models.diagnostics import Diagnostic
from ..models.error_record import ErrorRecord

"""Error log buffering.

- JSON Lines with a fixed key set (see error_log_schema.json)
- one ``logs/errors-YYYYMMDD-HHMMSS.log`` (UTC) per run, created on the
  first flush that has records
- records are buffered in memory and written once per run
"""

__all__ = [
    "ErrorRecord",
    "ErrorLogBuffer",
    "LOGS_DIR",
]

LOGS_DIR = Path("./logs")
TIMESTAMP_FMT = "%Y%m%d-%H%M%S"


class ErrorLogBuffer:
    """In-memory buffer for error records, flush() appends JSON Lines.

    Serial use only.
    """
    def __init__(self, logs_dir: Path | None = None) -> None:
        self._records: list[ErrorRecord] = []
        self._file_path: Path | None = None
        self._logs_dir = logs_dir or LOGS_DIR

    @property
    def file_path(self) -> Path:
        if self._file_path is None:
            self._logs_dir.mkdir(parents=True, exist_ok=True)
            stamp = datetime.now(UTC).strftime(TIMESTAMP_FMT)
            self._file_path = self._logs_dir / f"errors-{stamp}.log"
        return self._file_path

    @property
    def records(self) -> list[ErrorRecord]:
        return list(self._records)

    def append(self, record: ErrorRecord) -> None:
        self._records.append(record)

    def append_diagnostic(
        self, file: str, sheet: str, row: int, error_type: str, diagnostic: Diagnostic
    ) -> None:
        self.append(ErrorRecord.from_diagnostic(file, sheet, row, error_type, diagnostic))

    def __len__(self) -> int:  # pragma: no cover (trivial)
        return len(self._records)

    def flush(self) -> Path | None:
        """Write buffered records, returns the log path or None if nothing was written."""
        if not self._records:
            return None
        fp = self.file_path
        with fp.open("a", encoding="utf-8") as f:
            for r in self._records:
                f.write(r.to_json_line() + "\n")
        self._records.clear()
        return fp
