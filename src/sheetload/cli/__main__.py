from __future__ import annotations

import argparse
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import psycopg2
from dotenv import load_dotenv

from sheetload.config.loader import DEFAULT_CONFIG_PATH, ConfigError, ImportConfig, load_config
from sheetload.logging.init import log_summary, set_debug, setup_logging
from sheetload.models.processing_result import ProcessingResult
from sheetload.services.orchestrator import (
    ProcessingError,
    plan_book,
    process_all,
    read_config_book,
    scan_excel_files,
)
from sheetload.services.summary import render_summary_line

"""CLI entrypoint.

sheetload [--config PATH] [--debug] [--inspect-data] [--plan]

- loads .env (connection settings override the config file)
- loads and validates the YAML config
- loads every workbook of the source directory, one transaction per file
- ends with one SUMMARY line

Exit codes: 0 all files loaded, 2 at least one file failed, 1 fatal.
DISABLE_DB_CONNECT=1 forces mock mode (no connection, rows counted only).
"""

EXIT_SUCCESS_ALL = 0
EXIT_PARTIAL_FAILURE = 2
EXIT_FATAL = 1


def _dsn(cfg: ImportConfig) -> str:
    """Connection string: DATABASE_URL / PGDSN, then PG* variables, then the config."""
    db_cfg = cfg.database
    dsn = os.getenv("DATABASE_URL") or os.getenv("PGDSN") or db_cfg.dsn
    if dsn:
        return dsn
    host = os.getenv("PGHOST", db_cfg.host or "localhost")
    port = os.getenv("PGPORT", str(db_cfg.port) if db_cfg.port else "5432")
    user = os.getenv("PGUSER", db_cfg.user or "postgres")
    password = os.getenv("PGPASSWORD", db_cfg.password or "")
    database = os.getenv("PGDATABASE", db_cfg.database or "postgres")
    dsn = f"host={host} port={port} user={user} dbname={database}"
    if password:
        dsn += f" password={password}"
    return dsn


@contextmanager
def _db_connection(cfg: ImportConfig) -> Iterator[Any]:  # pragma: no cover (thin wrapper)
    """psycopg2 cursor; transaction boundaries are issued by the orchestrator."""
    conn = psycopg2.connect(_dsn(cfg))
    conn.autocommit = True  # BEGIN / COMMIT / ROLLBACK are explicit statements
    try:
        with conn.cursor() as cur:
            yield cur
    finally:
        conn.close()


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env with python-dotenv, its values win over the environment."""
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="sheetload", description="Excel workbooks -> PostgreSQL tables loader")
    p.add_argument("--config", type=Path, default=DEFAULT_CONFIG_PATH, help="YAML config file")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    p.add_argument("--inspect-data", action="store_true", help="Print sheet headers & first rows then exit")
    p.add_argument("--plan", action="store_true", help="Print the load order of every workbook then exit")
    return p.parse_args(argv)


def _inspect_data(cfg: ImportConfig) -> int:
    try:
        excel_files = scan_excel_files(Path(cfg.source_directory))
    except ProcessingError as e:
        print(f"inspect: {e}")
        return EXIT_FATAL
    if not excel_files:
        print("inspect: no .xlsx files")
        return EXIT_SUCCESS_ALL
    for f in excel_files:
        print(f"FILE: {f.name}")
        try:
            book = read_config_book(f, cfg)
        except Exception as e:  # unreadable workbook, reported per file
            print(f"  read_error: {e}")
            continue
        for sheet in book.sheets:
            print(f"  SHEET: {sheet.name} table={sheet.table} cols={sheet.columns}")
            print("    sample_rows=", sheet.rows[:3])
    return EXIT_SUCCESS_ALL


def _plan(cfg: ImportConfig, cursor: Any) -> int:
    """Print the scheduled load order and scheduling faults per workbook."""
    try:
        excel_files = scan_excel_files(Path(cfg.source_directory))
    except ProcessingError as e:
        print(f"plan: {e}")
        return EXIT_FATAL
    exit_code = EXIT_SUCCESS_ALL
    for f in excel_files:
        print(f"FILE: {f.name}")
        try:
            book = read_config_book(f, cfg)
        except Exception as e:  # unreadable workbook, reported per file
            print(f"  read_error: {e}")
            exit_code = EXIT_PARTIAL_FAILURE
            continue
        schedule = plan_book(book, cursor, cfg)
        for position, sheet in enumerate(schedule.ordered, start=1):
            print(f"  {position}. {sheet.name} -> {sheet.table}")
        for table in schedule.excluded:
            print(f"  excluded: {table}")
        for diagnostic in schedule.diagnostics:
            print(f"  {diagnostic}")
        if schedule.excluded:
            exit_code = EXIT_PARTIAL_FAILURE
    return exit_code


def _run(cfg: ImportConfig, args: argparse.Namespace, cursor: Any) -> ProcessingResult | int:
    """Exit code for --plan, ProcessingResult for a load run."""
    if args.plan:
        return _plan(cfg, cursor)
    return process_all(cfg, cursor=cursor)


def main(argv: list[str] | None = None) -> int:
    logger = setup_logging()

    # None only: an explicit [] must not fall back to sys.argv (pytest arguments)
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    _load_env_file(Path(".env"), override=True)

    try:
        cfg = load_config(args.config)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    directory = Path(cfg.source_directory)
    if not directory.exists():
        logger.error(f"directory not found: {directory}")
        return EXIT_FATAL

    if args.debug:
        set_debug()
        logger.debug("debug mode enabled")

    logger.info(f"Processing files from: {directory}")

    if args.inspect_data:
        return _inspect_data(cfg)

    db_mode = "mock"
    try:
        if os.getenv("DISABLE_DB_CONNECT") == "1":
            logger.debug("DB connect disabled via DISABLE_DB_CONNECT=1 -> mock mode")
            outcome = _run(cfg, args, cursor=None)
        else:
            try:
                with _db_connection(cfg) as cur:
                    db_mode = "live"
                    outcome = _run(cfg, args, cursor=cur)
            except psycopg2.OperationalError as db_e:
                if db_mode == "live":
                    raise
                logger.warning(f"DB connection failed -> fallback to mock mode: {db_e}")
                outcome = _run(cfg, args, cursor=None)
    except ProcessingError as e:
        logger.error(f"processing({db_mode}): {e}")
        return EXIT_FATAL
    except psycopg2.Error as e:
        logger.error(f"database({db_mode}): {e}")
        return EXIT_FATAL

    if isinstance(outcome, int):
        return outcome
    result = outcome

    logger.info(f"mode={db_mode} total_rows={result.total_inserted_rows}")

    total_files = result.success_files + result.failed_files
    summary_line = render_summary_line(total_files, result)
    # log_summary adds the "SUMMARY " label itself
    log_summary(summary_line[len("SUMMARY "):])

    if result.failed_files > 0:
        return EXIT_PARTIAL_FAILURE
    return EXIT_SUCCESS_ALL


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
