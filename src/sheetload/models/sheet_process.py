from __future__ import annotations

from dataclasses import dataclass

from .diagnostics import Diagnostics

"""SheetProcess model for sheetload.

SheetProcess is the outcome of loading one sheet into its table across
both the load pass (mandatory columns) and the update pass (optional
columns).
"""

__all__ = [
    "SheetProcess",
]


@dataclass(frozen=True)
class SheetProcess:
    """Processing result for a single sheet.

    ``error`` is set when the sheet could not be loaded at all (table
    validation failed, table not found, statement failure); row level
    problems are counted in ``rejected_rows`` and kept in ``diagnostics``.
    """
    sheet_name: str
    table_name: str
    inserted_rows: int = 0  # rows inserted in the load pass
    updated_rows: int = 0  # rows updated in the update pass
    rejected_rows: int = 0  # rows skipped because of conversion errors
    diagnostics: Diagnostics = Diagnostics()
    error: str | None = None
    excluded: bool = False  # never reached the load pass, the rest of the book continues

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def warning_count(self) -> int:
        return len(self.diagnostics.warnings)
