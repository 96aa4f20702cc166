from __future__ import annotations

from dataclasses import dataclass, field

"""Sheet and Book models for sheetload.

A Book is one workbook file, a Sheet one worksheet of it after header
normalization. Cells are kept as text (or None for empty cells); typed
conversion happens later against the destination table's metadata.
"""

__all__ = [
    "Sheet",
    "Book",
]


@dataclass
class Sheet:
    """Read-only grid of text cells bound to a destination table.

    ``rows`` hold one list per data row in header order.
    """
    name: str  # worksheet name
    table: str  # destination table name
    columns: list[str]  # source column names in file order
    rows: list[list[str | None]] = field(default_factory=list)
    row_numbers: list[int] = field(default_factory=list)  # workbook row number per row

    def __len__(self) -> int:
        return len(self.rows)

    def index_of(self, column: str) -> int:
        """Case-insensitive header position, -1 if unknown."""
        wanted = column.strip().lower()
        for index, name in enumerate(self.columns):
            if name.strip().lower() == wanted:
                return index
        return -1

    def value(self, column: str, row: int) -> str | None:
        """Cell text addressed by (column name, row index)."""
        index = self.index_of(column)
        if index < 0 or row < 0 or row >= len(self.rows):
            return None
        values = self.rows[row]
        return values[index] if index < len(values) else None

    def row_number(self, row: int) -> int:
        """Workbook row number of ``rows[row]`` for error records."""
        if 0 <= row < len(self.row_numbers):
            return self.row_numbers[row]
        return row + 1


@dataclass
class Book:
    """A named collection of sheets, normally one workbook file."""
    name: str
    sheets: list[Sheet] = field(default_factory=list)

    def sheet(self, name: str) -> Sheet | None:
        for sheet in self.sheets:
            if sheet.name == name:
                return sheet
        return None
