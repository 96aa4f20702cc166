from __future__ import annotations

import time
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any

from psycopg2.extras import execute_batch, execute_values

"""Batched INSERT / UPDATE statements over a psycopg2 cursor.

The load pass inserts rows with psycopg2.extras.execute_values, the update
pass updates optional columns keyed on the primary key with
psycopg2.extras.execute_batch. Transaction boundaries stay with the caller.
Driver errors are wrapped into BatchInsertError / BatchUpdateError.
"""

__all__ = [
    "BatchInsertError",
    "BatchUpdateError",
    "InsertResult",
    "UpdateResult",
    "StatementExecutor",
    "batch_insert",
    "batch_update",
    "quote_identifier",
    "qualified_table",
]


class BatchInsertError(Exception):
    pass


class BatchUpdateError(Exception):
    pass


@dataclass(frozen=True)
class InsertResult:
    inserted_rows: int
    elapsed_seconds: float = 0.0


@dataclass(frozen=True)
class UpdateResult:
    updated_rows: int
    elapsed_seconds: float = 0.0


def quote_identifier(identifier: str) -> str:
    escaped = identifier.replace('"', '""')
    return f'"{escaped}"'


def qualified_table(table: str, schema: str | None = None) -> str:
    if schema:
        return f"{quote_identifier(schema)}.{quote_identifier(table)}"
    return quote_identifier(table)


def batch_insert(
    cursor: Any,
    table: str,
    columns: Sequence[str],
    rows: Iterable[Sequence[Any]],
    page_size: int = 1000,
) -> InsertResult:
    """Perform a batched INSERT using psycopg2.extras.execute_values.

    Parameters
    ----------
    cursor: psycopg2 cursor
    table: target table, already quoted/qualified (see qualified_table)
    columns: column names to insert
    rows: row values in column order
    page_size: execute_values page size
    """
    rows_list = [list(r) for r in rows]
    if not rows_list:
        return InsertResult(inserted_rows=0)
    if not columns:
        raise BatchInsertError(f"no columns to insert into {table}")

    cols_sql = ",".join(quote_identifier(c) for c in columns)
    sql = f"INSERT INTO {table} ({cols_sql}) VALUES %s"

    start_time = time.time()
    try:
        execute_values(cursor, sql, rows_list, page_size=page_size)
    except Exception as e:
        raise BatchInsertError(str(e)) from e
    return InsertResult(inserted_rows=len(rows_list), elapsed_seconds=time.time() - start_time)


def batch_update(
    cursor: Any,
    table: str,
    set_columns: Sequence[str],
    key_columns: Sequence[str],
    rows: Iterable[Sequence[Any]],
    page_size: int = 1000,
) -> UpdateResult:
    """Perform a batched UPDATE ... WHERE key = ... using execute_batch.

    Each row holds the ``set_columns`` values followed by the
    ``key_columns`` values.
    """
    rows_list = [list(r) for r in rows]
    if not rows_list or not set_columns:
        return UpdateResult(updated_rows=0)
    if not key_columns:
        raise BatchUpdateError(f"cannot update {table} without key columns")

    assignments = ", ".join(f"{quote_identifier(c)} = %s" for c in set_columns)
    condition = " AND ".join(f"{quote_identifier(c)} = %s" for c in key_columns)
    sql = f"UPDATE {table} SET {assignments} WHERE {condition}"

    start_time = time.time()
    try:
        execute_batch(cursor, sql, rows_list, page_size=page_size)
    except Exception as e:
        raise BatchUpdateError(str(e)) from e
    return UpdateResult(updated_rows=len(rows_list), elapsed_seconds=time.time() - start_time)


class StatementExecutor:
    """Statement executor collaborator used by the sheet loader."""

    def __init__(self, cursor: Any, schema: str | None = None, page_size: int = 1000) -> None:
        self.cursor = cursor
        self.schema = schema
        self.page_size = page_size

    def insert(self, table: str, columns: Sequence[str], rows: Iterable[Sequence[Any]]) -> InsertResult:
        return batch_insert(
            self.cursor, qualified_table(table, self.schema), columns, rows, page_size=self.page_size
        )

    def update(
        self,
        table: str,
        set_columns: Sequence[str],
        key_columns: Sequence[str],
        rows: Iterable[Sequence[Any]],
    ) -> UpdateResult:
        return batch_update(
            self.cursor,
            qualified_table(table, self.schema),
            set_columns,
            key_columns,
            rows,
            page_size=self.page_size,
        )
