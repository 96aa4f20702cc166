from __future__ import annotations

from typing import Any

import psycopg2

from ..models.meta_column import NUMERIC_TYPE_NAMES, MetaColumn, find_by_column_name

"""PostgreSQL schema introspection over information_schema.

Supplies what conversion and scheduling need to know about an existing
table: its columns (MetaColumn list with primary key flags), its primary
key, the tables it references through foreign keys and the subset of
those referenced through a not-null foreign key column.

Every call is a bounded round-trip on the given psycopg2 cursor; nothing
is cached, so results always reflect the current schema.
"""

__all__ = [
    "SchemaIntrospector",
    "TableNotFoundError",
]


class TableNotFoundError(Exception):
    """Raised when a table does not exist or cannot be accessed."""

    def __init__(self, table: str | None, cause: BaseException | None = None) -> None:
        self.table = table or "?"
        self.cause = cause
        message = f'No such table "{self.table}".'
        if cause is not None:
            message = f"{message} {cause}"
        super().__init__(message)


COLUMNS_SQL = """
SELECT c.table_schema, c.table_name, c.column_name, c.data_type,
       c.character_maximum_length, c.numeric_precision, c.numeric_scale,
       c.is_nullable
FROM information_schema.columns c
WHERE c.table_schema = %s AND lower(c.table_name) = lower(%s)
ORDER BY c.ordinal_position
"""

PRIMARY_KEYS_SQL = """
SELECT kcu.column_name
FROM information_schema.table_constraints tc
JOIN information_schema.key_column_usage kcu
  ON kcu.constraint_name = tc.constraint_name
 AND kcu.constraint_schema = tc.constraint_schema
WHERE tc.constraint_type = 'PRIMARY KEY'
  AND tc.table_schema = %s AND lower(tc.table_name) = lower(%s)
ORDER BY kcu.ordinal_position
"""

FOREIGN_KEYS_SQL = """
SELECT kcu.column_name, ccu.table_name
FROM information_schema.table_constraints tc
JOIN information_schema.key_column_usage kcu
  ON kcu.constraint_name = tc.constraint_name
 AND kcu.constraint_schema = tc.constraint_schema
JOIN information_schema.constraint_column_usage ccu
  ON ccu.constraint_name = tc.constraint_name
 AND ccu.constraint_schema = tc.constraint_schema
WHERE tc.constraint_type = 'FOREIGN KEY'
  AND tc.table_schema = %s AND lower(tc.table_name) = lower(%s)
"""

# decimal digits of the integer types
_INTEGER_DIGITS = {
    "smallint": 5,
    "smallserial": 5,
    "integer": 10,
    "serial": 10,
    "bigint": 19,
    "bigserial": 19,
}


def _numeric_shape(data_type: str, precision: int | None, scale: int | None) -> tuple[int | None, int | None, int | None]:
    """(size, integral precision, fraction) for a numeric column; size counts all digits."""
    if data_type in _INTEGER_DIGITS:
        digits = _INTEGER_DIGITS[data_type]
        return digits, digits, 0
    if data_type in ("numeric", "decimal") and precision is not None:
        fraction = scale or 0
        return precision, precision - fraction, fraction
    # floating point, money and unconstrained numeric: no digit limits
    return None, None, scale


def meta_column_from_row(row: tuple[Any, ...], primary_keys: list[str]) -> MetaColumn:
    schema, table, name, data_type, char_length, precision, scale, is_nullable = row
    type_name = str(data_type).lower()
    numeric = type_name in NUMERIC_TYPE_NAMES
    if numeric:
        size, integral, fraction = _numeric_shape(type_name, precision, scale)
    else:
        size, integral, fraction = char_length, None, None
    keys = {k.lower() for k in primary_keys}
    return MetaColumn(
        name=name,
        table=table,
        schema=schema,
        label=name,
        type_name=type_name,
        numeric=numeric,
        size=size,
        precision=integral,
        fraction=fraction,
        nullable=str(is_nullable).upper() == "YES",
        primary=name.lower() in keys,
    )


class SchemaIntrospector:
    """Schema introspection collaborator bound to one cursor and DB schema."""

    def __init__(self, cursor: Any, schema: str = "public") -> None:
        self.cursor = cursor
        self.schema = schema

    def _fetchall(self, table: str, sql: str) -> list[tuple[Any, ...]]:
        try:
            self.cursor.execute(sql, (self.schema, table))
            return list(self.cursor.fetchall())
        except psycopg2.Error as e:
            raise TableNotFoundError(table, e) from e

    def primary_keys(self, table: str) -> list[str]:
        """Primary key column names in key order, empty if there is none."""
        return [r[0] for r in self._fetchall(table, PRIMARY_KEYS_SQL)]

    def meta_columns(self, table: str) -> list[MetaColumn]:
        """Column metadata in ordinal order.

        Raises:
            TableNotFoundError: table absent, inaccessible or without columns
        """
        rows = self._fetchall(table, COLUMNS_SQL)
        if not rows:
            raise TableNotFoundError(table)
        keys = self.primary_keys(table)
        return [meta_column_from_row(r, keys) for r in rows]

    def _foreign_keys(self, table: str) -> list[tuple[str, str]]:
        return [(r[0], r[1]) for r in self._fetchall(table, FOREIGN_KEYS_SQL)]

    def depends_on(self, table: str) -> set[str]:
        """Names of all tables referenced by foreign keys of ``table``."""
        return {referenced for _, referenced in self._foreign_keys(table)}

    def depends_mandatory_on(self, table: str) -> set[str]:
        """Referenced tables whose local foreign key column is not nullable."""
        columns = self.meta_columns(table)
        tables = set()
        for fk_column, referenced in self._foreign_keys(table):
            meta = find_by_column_name(fk_column, columns)
            if meta is not None and meta.not_nullable:
                tables.add(referenced)
        return tables
