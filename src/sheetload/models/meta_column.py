from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum

"""Destination column metadata for sheetload.

A MetaColumn describes one column of an existing database table as reported
by the schema introspector: its native type tag, size/precision/fraction,
nullability and primary key membership. MetaType is the conversion class
derived from the native type and selects the value converter.
"""

__all__ = [
    "MetaType",
    "MetaColumn",
    "NUMERIC_TYPE_NAMES",
    "classify",
    "find_by_column_name",
]


# PostgreSQL type names (information_schema.columns.data_type / udt_name)
# that carry numeric values.
NUMERIC_TYPE_NAMES = frozenset({
    "smallint",
    "integer",
    "bigint",
    "int2",
    "int4",
    "int8",
    "numeric",
    "decimal",
    "real",
    "double precision",
    "float4",
    "float8",
    "smallserial",
    "serial",
    "bigserial",
    "money",
})


class MetaType(Enum):
    """Conversion class of a destination column.

    - DATE: a date without time part
    - TIMESTAMP: a date with time part
    - NUMBER: any numeric value
    - STRING: everything else that has a known type
    """
    DATE = "date"
    TIMESTAMP = "timestamp"
    NUMBER = "number"
    STRING = "string"


def _simple_type(type_name: str | None) -> str:
    if type_name is None or not type_name.strip():
        return "ANY"
    return type_name.strip().rsplit(".", 1)[-1]


def classify(type_name: str | None, numeric: bool = False) -> MetaType | None:
    """Map a native type tag to its MetaType (first match wins).

    Returns None when the type is entirely unknown.
    """
    simple = _simple_type(type_name).lower()
    if simple.startswith("timestamp"):
        return MetaType.TIMESTAMP
    if simple == "date":
        return MetaType.DATE
    if numeric:
        return MetaType.NUMBER
    if simple != "any":
        return MetaType.STRING
    return None


@dataclass(frozen=True, eq=False)
class MetaColumn:
    """Database metadata for a single destination column.

    Identity is (table, name) case-insensitively. Two columns are equal when
    their canonical renderings match, see __str__.
    """
    name: str
    table: str | None = None
    schema: str | None = None
    label: str | None = None
    type_name: str | None = None  # native type tag, e.g. "character varying"
    numeric: bool = False  # supplied by the introspector, not derived from the name
    size: int | None = None  # max string length / display size of numbers
    precision: int | None = None  # integral digits of numbers
    fraction: int | None = None  # decimal digits of numbers
    nullable: bool = True
    primary: bool = False

    @property
    def meta_type(self) -> MetaType | None:
        return classify(self.type_name, self.numeric)

    @property
    def simple_type(self) -> str:
        return _simple_type(self.type_name)

    @property
    def not_nullable(self) -> bool:
        return not self.nullable

    @property
    def mandatory(self) -> bool:
        """True if a value must be supplied on insert (primary key or not null)."""
        return self.primary or not self.nullable

    def is_date(self) -> bool:
        return self.meta_type in (MetaType.DATE, MetaType.TIMESTAMP)

    def is_timestamp(self) -> bool:
        return self.meta_type is MetaType.TIMESTAMP

    def is_numeric(self) -> bool:
        return self.meta_type is MetaType.NUMBER

    def qualified_name(self) -> str:
        """table.column as used in diagnostics."""
        return f"{self.table or '<table>'}.{self.name}"

    def __str__(self) -> str:
        parts = []
        if self.schema:
            parts.append(f"{self.schema}.")
        if self.table:
            parts.append(f"{self.table}.")
        parts.append(self.name or "<column>")
        parts.append("[")
        parts.append(self.simple_type)
        if self.is_numeric():
            parts.append(f"({self.precision}")
            if self.fraction:
                parts.append(f",{self.fraction}")
            parts.append(")")
        elif not self.is_date() and self.size:
            parts.append(f"({self.size})")
        parts.append("]")
        parts.append("!" if self.primary else ("" if self.nullable else "*"))
        return "".join(parts)

    def __eq__(self, other: object) -> bool:
        if self is other:
            return True
        if not isinstance(other, MetaColumn):
            return NotImplemented
        return str(self) == str(other)

    def __hash__(self) -> int:
        return hash(f"{self.table or ''}.{self.name or ''}".lower())


def find_by_column_name(name: str | None, columns: Iterable[MetaColumn] | None) -> MetaColumn | None:
    """Case-insensitive lookup of a column by name, None if not found."""
    if name is None or not name.strip() or not columns:
        return None
    wanted = name.strip().lower()
    for column in columns:
        if column.name and column.name.lower() == wanted:
            return column
    return None
