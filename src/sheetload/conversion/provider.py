from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from ..models.diagnostics import Diagnostics
from ..models.meta_column import MetaColumn, find_by_column_name
from .column import Column
from .registry import ConverterRegistry

"""ColumnDataProvider: typed row source for one destination table.

Binds the positional headers of a sheet to the table's MetaColumns and
converts one row at a time. Diagnostics of table validation and of every
converted value are folded into the provider's aggregate, which only ever
reflects the most recently supplied row: every header, meta column, table
or row reset starts from an empty aggregate again.

Not safe for concurrent use; give every caller its own provider.
"""

__all__ = [
    "ColumnDataProvider",
    "RowConversion",
]

COLUMN_REQUIRED = 'Table "{table}" requires values for column "{column}".'
COLUMN_MISSING = 'Table "{table}" has no column "{column}".'


@dataclass(frozen=True)
class RowConversion:
    """Converted values of one row keyed by header, plus its diagnostics."""
    values: dict[str, Any] = field(default_factory=dict)
    diagnostics: Diagnostics = Diagnostics()

    @property
    def has_errors(self) -> bool:
        return self.diagnostics.has_errors


class ColumnDataProvider:

    def __init__(
        self,
        table: str | None = None,
        meta_columns: Sequence[MetaColumn] | None = None,
        headers: Sequence[str] | None = None,
        registry: ConverterRegistry | None = None,
    ) -> None:
        self._registry = registry or ConverterRegistry.default()
        self._table = table
        self._meta_columns: list[MetaColumn] = list(meta_columns or [])
        self._headers: list[str] = []
        self._indices: dict[str, int] = {}
        self._values: list[str | None] = []
        self._columns: list[Column] | None = None
        self._diagnostics = Diagnostics()
        if headers is not None:
            self.headers = headers

    # -- table / metadata / headers -------------------------------------

    @property
    def table(self) -> str:
        return self._table or "unknown"

    @table.setter
    def table(self, table: str | None) -> None:
        self._table = table
        self._diagnostics = Diagnostics()

    @property
    def meta_columns(self) -> list[MetaColumn]:
        return list(self._meta_columns)

    @meta_columns.setter
    def meta_columns(self, meta_columns: Sequence[MetaColumn] | None) -> None:
        self._meta_columns = list(meta_columns or [])
        self._columns = None
        self._diagnostics = Diagnostics()

    @property
    def headers(self) -> list[str]:
        return list(self._headers)

    @headers.setter
    def headers(self, headers: Sequence[str] | None) -> None:
        self._headers = [str(h) for h in headers] if headers is not None else []
        self._indices = {h.strip().lower(): i for i, h in enumerate(self._headers)}
        self._values = [None] * len(self._headers)
        self._columns = None
        self._diagnostics = Diagnostics()

    @property
    def values(self) -> list[str | None]:
        """Raw values of the current row in header order."""
        return list(self._values)

    def get_meta_column(self, column_name: str | None) -> MetaColumn | None:
        return find_by_column_name(column_name, self._meta_columns)

    def index_of(self, header: str | None) -> int:
        if header is None:
            return -1
        return self._indices.get(header.strip().lower(), -1)

    def _bound_headers(self) -> list[tuple[str, MetaColumn]]:
        bound = []
        for header in self._headers:
            meta = self.get_meta_column(header)
            if meta is not None:
                bound.append((header, meta))
        return bound

    def mandatory_headers(self) -> list[str]:
        """Headers bound to primary key or not-null columns."""
        return [h for h, meta in self._bound_headers() if meta.mandatory]

    def optional_headers(self) -> list[str]:
        return [h for h, meta in self._bound_headers() if not meta.mandatory]

    def primary_headers(self) -> list[str]:
        return [h for h, meta in self._bound_headers() if meta.primary]

    # -- validation -----------------------------------------------------

    def validate_table(self) -> Diagnostics:
        """Structural check of headers against the table's columns.

        One error per mandatory column missing from the headers and one per
        header the table does not have. Independent of row data.
        """
        errors = Diagnostics()
        if not self._meta_columns or not self._headers:
            return errors
        for meta in self._meta_columns:
            if meta.not_nullable and self.index_of(meta.name) < 0:
                errors += Diagnostics.error(COLUMN_REQUIRED.format(table=self.table, column=meta.name))
        for header in self._headers:
            if self.get_meta_column(header) is None:
                errors += Diagnostics.error(COLUMN_MISSING.format(table=self.table, column=header))
        self._diagnostics += errors
        return errors

    def validate(self) -> Diagnostics:
        """Aggregate diagnostics since the last reset."""
        return self._diagnostics

    # -- row access -----------------------------------------------------

    def _get_columns(self) -> list[Column]:
        if self._columns is None:
            self._columns = [
                Column(self.get_meta_column(header), registry=self._registry) for header in self._headers
            ]
        return self._columns

    def get_value_at(self, index: int) -> Any:
        """Converted value of the current row at ``index``, None if out of range."""
        columns = self._get_columns()
        if index < 0 or index >= len(columns) or index >= len(self._values):
            return None
        column = columns[index]
        column.value = self._values[index]
        value = column.get_object()
        self._diagnostics += column.validate()
        return value

    def get_value(self, header: str) -> Any:
        return self.get_value_at(self.index_of(header))

    def get_values(self) -> list[Any]:
        return [self.get_value_at(index) for index in range(len(self._headers))]

    def convert_row(self, headers: Sequence[str] | None = None) -> RowConversion:
        """Convert the current row (or the given subset of headers).

        Headers without a matching column are skipped. The returned
        diagnostics cover this call only.
        """
        before = len(self._diagnostics)
        values: dict[str, Any] = {}
        for header in headers if headers is not None else self._headers:
            index = self.index_of(header)
            if index < 0 or self.get_meta_column(header) is None:
                continue
            values[self._headers[index]] = self.get_value_at(index)
        return RowConversion(values, Diagnostics(self._diagnostics.items[before:]))

    # -- row mutation ---------------------------------------------------

    def clear(self) -> None:
        """Drop the current row values but keep headers and metadata."""
        self._values = [None] * len(self._headers)
        self._diagnostics = Diagnostics()

    def set_value_at(self, index: int, value: str | None) -> None:
        self._diagnostics = Diagnostics()
        if 0 <= index < len(self._values):
            self._values[index] = value

    def set_value(self, header: str, value: str | None) -> None:
        self.set_value_at(self.index_of(header), value)

    def set_values(self, values: Sequence[str | None] | Mapping[str, str | None] | None) -> None:
        """Replace the current row; missing positions become None."""
        self.clear()
        if values is None:
            return
        if isinstance(values, Mapping):
            for header, value in values.items():
                index = self.index_of(header)
                if index >= 0:
                    self._values[index] = value
            return
        for index, value in enumerate(values[: len(self._values)]):
            self._values[index] = value
