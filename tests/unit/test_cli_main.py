from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from unittest.mock import MagicMock, patch

import psycopg2
import pytest
from conftest import FakeIntrospector, RecordingExecutor

from sheetload.cli.__main__ import EXIT_FATAL, EXIT_PARTIAL_FAILURE, EXIT_SUCCESS_ALL, _dsn, main
from sheetload.config.loader import DatabaseConfig, ImportConfig
from sheetload.logging.init import reset_logging
from sheetload.models.meta_column import MetaColumn


@pytest.fixture(autouse=True)
def _clean_logging(monkeypatch):
    reset_logging()
    for name in ("DATABASE_URL", "PGDSN", "PGHOST", "PGPORT", "PGUSER", "PGPASSWORD", "PGDATABASE"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("DISABLE_DB_CONNECT", "1")
    yield
    reset_logging()


def _customer_columns() -> list[MetaColumn]:
    return [
        MetaColumn("id", table="customers", type_name="integer", numeric=True, primary=True, nullable=False),
        MetaColumn("name", table="customers", type_name="text"),
    ]


def test_cli_no_files_success(write_config: Path, capsys) -> None:
    code = main([])
    out = capsys.readouterr().out
    assert code == EXIT_SUCCESS_ALL
    assert "SUMMARY files=0/0 success=0 failed=0 rows=0" in out


def test_cli_directory_missing(write_config: Path, capsys) -> None:
    text = write_config.read_text(encoding="utf-8").replace("./data", "./missing_dir")
    write_config.write_text(text, encoding="utf-8")
    code = main([])
    out = capsys.readouterr().out
    assert code == EXIT_FATAL
    assert "ERROR directory not found:" in out


def test_cli_config_error(temp_workdir: Path, capsys) -> None:
    (temp_workdir / "config" / "import.yml").write_text("schema: public\n", encoding="utf-8")
    code = main([])
    out = capsys.readouterr().out
    assert code == EXIT_FATAL
    assert "ERROR config: config validation failed" in out
    assert "SUMMARY" not in out


def test_cli_explicit_config_path(temp_workdir: Path, sample_config_yaml: str, capsys) -> None:
    other = temp_workdir / "other.yml"
    other.write_text(sample_config_yaml, encoding="utf-8")
    assert main(["--config", str(other)]) == EXIT_SUCCESS_ALL
    assert main(["--config", str(temp_workdir / "nope.yml")]) == EXIT_FATAL
    assert "config file not found" in capsys.readouterr().out


def test_cli_mock_mode_counts_rows(write_config: Path, make_workbook, capsys) -> None:
    make_workbook("customers.xlsx", {"Customers": [["id", "name"], [1, "Ada"], [2, "Bob"]]})
    code = main([])
    out = capsys.readouterr().out
    assert code == EXIT_SUCCESS_ALL
    assert "mode=mock total_rows=2" in out
    assert "SUMMARY files=1/1 success=1 failed=0 rows=2" in out


def test_cli_partial_failure_exit_code(write_config: Path, make_workbook, temp_workdir: Path, capsys) -> None:
    make_workbook("customers.xlsx", {"Customers": [["id"], [1]]})
    (temp_workdir / "data" / "broken.xlsx").write_bytes(b"not a workbook")
    code = main([])
    out = capsys.readouterr().out
    assert code == EXIT_PARTIAL_FAILURE
    assert "SUMMARY files=2/2 success=1 failed=1" in out


def test_cli_debug_flag(write_config: Path, capsys) -> None:
    assert main(["--debug"]) == EXIT_SUCCESS_ALL
    assert "DEBUG debug mode enabled" in capsys.readouterr().out


def test_cli_inspect_data(write_config: Path, make_workbook, capsys) -> None:
    make_workbook("customers.xlsx", {"Customers": [["id", "name"], [1, "Ada"]], "Unmapped": [["x"], [1]]})
    code = main(["--inspect-data"])
    out = capsys.readouterr().out
    assert code == EXIT_SUCCESS_ALL
    assert "FILE: customers.xlsx" in out
    assert "SHEET: Customers table=customers cols=['id', 'name']" in out
    assert "sample_rows= [['1', 'Ada']]" in out
    assert "Unmapped" not in out
    assert "SUMMARY" not in out


def test_cli_plan_mock_keeps_sheet_order(write_config: Path, make_workbook, capsys) -> None:
    make_workbook("book.xlsx", {"Orders": [["id"], [1]], "Customers": [["id"], [1]]})
    code = main(["--plan"])
    out = capsys.readouterr().out
    assert code == EXIT_SUCCESS_ALL
    assert "  1. Orders -> orders" in out
    assert "  2. Customers -> customers" in out
    assert "SUMMARY" not in out


@contextmanager
def _fake_connection(cfg):
    yield MagicMock()


def test_cli_plan_live_reports_exclusions(write_config: Path, make_workbook, monkeypatch, capsys) -> None:
    monkeypatch.delenv("DISABLE_DB_CONNECT")
    introspector = FakeIntrospector(
        {
            "customers": _customer_columns(),
            "orders": [
                MetaColumn("id", table="orders", type_name="integer", numeric=True, primary=True, nullable=False),
                MetaColumn("customer_id", table="orders", type_name="integer", numeric=True, nullable=False),
            ],
        },
        {"orders": {"customer_id": "customers"}},
    )
    make_workbook("book.xlsx", {"Orders": [["id", "customer_id"], [1, 1]]})
    with patch("sheetload.cli.__main__._db_connection", _fake_connection), \
            patch("sheetload.services.orchestrator.SchemaIntrospector", return_value=introspector):
        code = main(["--plan"])
    out = capsys.readouterr().out
    assert code == EXIT_PARTIAL_FAILURE
    assert "excluded: orders" in out
    assert 'Table "orders" depends on table' in out
    assert "which is not provided" in out


def test_cli_live_mode(write_config: Path, make_workbook, monkeypatch, capsys) -> None:
    monkeypatch.delenv("DISABLE_DB_CONNECT")
    introspector = FakeIntrospector({"customers": _customer_columns()})
    executor = RecordingExecutor()
    make_workbook("customers.xlsx", {"Customers": [["id", "name"], [1, "Ada"], [2, None]]})
    with patch("sheetload.cli.__main__._db_connection", _fake_connection), \
            patch("sheetload.services.orchestrator.SchemaIntrospector", return_value=introspector), \
            patch("sheetload.services.orchestrator.StatementExecutor", return_value=executor):
        code = main([])
    out = capsys.readouterr().out
    assert code == EXIT_SUCCESS_ALL
    assert "mode=live total_rows=2" in out
    assert "SUMMARY files=1/1 success=1 failed=0 rows=2 updated=1" in out
    assert executor.inserts == [("customers", ["id"], [[1], [2]])]
    assert executor.updates == [("customers", ["name"], ["id"], [["Ada", 1]])]


def test_cli_connection_failure_falls_back_to_mock(write_config: Path, make_workbook, monkeypatch, capsys) -> None:
    monkeypatch.delenv("DISABLE_DB_CONNECT")
    make_workbook("customers.xlsx", {"Customers": [["id"], [1]]})
    with patch("sheetload.cli.__main__.psycopg2.connect", side_effect=psycopg2.OperationalError("refused")):
        code = main([])
    out = capsys.readouterr().out
    assert code == EXIT_SUCCESS_ALL
    assert "WARN DB connection failed -> fallback to mock mode: refused" in out
    assert "mode=mock total_rows=1" in out


def test_dsn_precedence(monkeypatch) -> None:
    cfg = ImportConfig(source_directory="data", database=DatabaseConfig(host="db", port=6543, user="u",
                                                                        password="pw", database="app"))
    assert _dsn(cfg) == "host=db port=6543 user=u dbname=app password=pw"

    monkeypatch.setenv("PGHOST", "envhost")
    monkeypatch.setenv("PGPASSWORD", "")
    assert _dsn(cfg) == "host=envhost port=6543 user=u dbname=app"

    monkeypatch.setenv("DATABASE_URL", "postgresql://x@y/z")
    assert _dsn(cfg) == "postgresql://x@y/z"


def test_dsn_defaults() -> None:
    assert _dsn(ImportConfig(source_directory="data")) == "host=localhost port=5432 user=postgres dbname=postgres"
