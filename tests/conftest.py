# Shared pytest fixtures
from __future__ import annotations

import tempfile
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import pandas as pd
import pytest

from sheetload.db.batch_statements import InsertResult, UpdateResult
from sheetload.db.introspect import TableNotFoundError, meta_column_from_row
from sheetload.models.meta_column import MetaColumn


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        yield p


@pytest.fixture()
def sample_config_yaml() -> str:
    return """source_directory: ./data
schema: public
header_row: 2
sheet_mappings:
  Customers:
    table: customers
  Orders:
    table: orders
    ignore_columns: [note]
null_sentinels: ["NULL", "n/a"]
database:
  host: localhost
  port: 5432
  user: appuser
  password: secret
  database: appdb
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "import.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


def write_workbook(path: Path, sheets: dict[str, list[list[Any]]], title: str = "exported") -> Path:
    """Write a workbook whose first row is a title row and second row the header."""
    with pd.ExcelWriter(path, engine="openpyxl") as writer:
        for name, rows in sheets.items():
            frame = pd.DataFrame([[title]] + rows)
            frame.to_excel(writer, sheet_name=name, header=False, index=False)
    return path


@pytest.fixture()
def make_workbook(temp_workdir: Path):
    def _make(name: str, sheets: dict[str, list[list[Any]]]) -> Path:
        return write_workbook(temp_workdir / "data" / name, sheets)
    return _make


TAG_ROWS = [
    ("public", "tag", "name", "character varying", 20, None, None, "NO"),
    ("public", "tag", "married", "boolean", None, None, None, "YES"),
    ("public", "tag", "age", "integer", None, 32, 0, "YES"),
    ("public", "tag", "born", "date", None, None, None, "YES"),
    ("public", "tag", "altered", "timestamp without time zone", None, None, None, "NO"),
    ("public", "tag", "salary", "numeric", None, 8, 2, "YES"),
]


def tag_columns() -> list[MetaColumn]:
    """tag(name PK not null, married, age, born, altered not null, salary numeric(8,2)).

    Built from ``information_schema.columns`` rows the way the introspector does.
    """
    return [meta_column_from_row(row, ["name"]) for row in TAG_ROWS]


@pytest.fixture(name="tag_columns")
def tag_columns_fixture() -> list[MetaColumn]:
    return tag_columns()


class FakeIntrospector:
    """In-memory schema: table -> meta columns and foreign keys.

    ``foreign_keys`` maps table -> {local column: referenced table}; the
    mandatory subset follows the nullability of the local column.
    """

    def __init__(
        self,
        tables: dict[str, list[MetaColumn]],
        foreign_keys: dict[str, dict[str, str]] | None = None,
        broken: set[str] | None = None,
    ) -> None:
        self.tables = {k.lower(): v for k, v in tables.items()}
        self.foreign_keys = {k.lower(): v for k, v in (foreign_keys or {}).items()}
        self.broken = {b.lower() for b in (broken or set())}
        self.calls: list[tuple[str, str]] = []

    def meta_columns(self, table: str) -> list[MetaColumn]:
        self.calls.append(("meta_columns", table))
        if table.lower() in self.broken or table.lower() not in self.tables:
            raise TableNotFoundError(table)
        return self.tables[table.lower()]

    def depends_on(self, table: str) -> set[str]:
        self.calls.append(("depends_on", table))
        if table.lower() in self.broken:
            raise TableNotFoundError(table)
        return set(self.foreign_keys.get(table.lower(), {}).values())

    def depends_mandatory_on(self, table: str) -> set[str]:
        self.calls.append(("depends_mandatory_on", table))
        columns = self.meta_columns(table)
        result = set()
        for column, referenced in self.foreign_keys.get(table.lower(), {}).items():
            meta = next((c for c in columns if c.name.lower() == column.lower()), None)
            if meta is not None and meta.not_nullable:
                result.add(referenced)
        return result


class RecordingExecutor:
    """Statement executor double recording every insert / update."""

    def __init__(self, fail_on: set[str] | None = None) -> None:
        self.inserts: list[tuple[str, list[str], list[list[Any]]]] = []
        self.updates: list[tuple[str, list[str], list[str], list[list[Any]]]] = []
        self.fail_on = fail_on or set()

    def insert(self, table: str, columns: Sequence[str], rows: Sequence[Sequence[Any]]) -> InsertResult:
        from sheetload.db.batch_statements import BatchInsertError

        if table in self.fail_on:
            raise BatchInsertError(f'duplicate key value violates unique constraint "{table}_pkey"')
        self.inserts.append((table, list(columns), [list(r) for r in rows]))
        return InsertResult(inserted_rows=len(rows))

    def update(
        self,
        table: str,
        set_columns: Sequence[str],
        key_columns: Sequence[str],
        rows: Sequence[Sequence[Any]],
    ) -> UpdateResult:
        self.updates.append((table, list(set_columns), list(key_columns), [list(r) for r in rows]))
        return UpdateResult(updated_rows=len(rows))
