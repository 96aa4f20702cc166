from __future__ import annotations

import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from ..config.loader import ImportConfig
from ..conversion.registry import ConverterRegistry
from ..db.batch_statements import StatementExecutor
from ..db.introspect import SchemaIntrospector
from ..excel.reader import read_book
from ..logging.error_log import ErrorLogBuffer, ErrorRecord
from ..models.error_record import UNKNOWN_ROW
from ..models.excel_file import ExcelFile, FileStatus
from ..models.processing_result import FileStat, ProcessingResult
from ..models.sheet import Book
from ..models.sheet_process import SheetProcess
from .loader import SheetLoader
from .progress import ProgressTracker, SheetProgressIndicator
from .scheduler import DependencyScheduler, ScheduleResult, SimpleScheduler

"""Run orchestration: workbooks in a directory -> PostgreSQL tables.

Every .xlsx file of the source directory is one book, loaded in its own
transaction:

1. read the book (mapped sheets only, when a mapping is configured)
2. schedule its sheets by mandatory foreign key dependencies and validate
   them against their tables, outside the transaction
3. BEGIN, load pass then update pass through the SheetLoader
4. COMMIT, or ROLLBACK when a statement failed or rows were rejected
   with ``on_row_error: fail``

Without a cursor (mock mode) the book keeps its sheet order and rows are
only counted. Every diagnostic ends up in the JSON Lines error log, which
is flushed once per run.
"""

__all__ = [
    "ProcessingError",
    "scan_excel_files",
    "process_all",
    "read_config_book",
    "plan_book",
]

logger = logging.getLogger(__name__)

FILE_LEVEL = "<FILE_LEVEL>"


class ProcessingError(Exception):
    """Fatal error that prevents the run from starting."""


def scan_excel_files(directory: Path) -> list[Path]:
    """Sorted .xlsx files of ``directory`` (non-recursive).

    Raises:
        ProcessingError: directory missing, not a directory or unreadable
    """
    if not directory.exists():
        raise ProcessingError(f"Directory not found: {directory}")

    if not directory.is_dir():
        raise ProcessingError(f"Path is not a directory: {directory}")

    try:
        return sorted(p for p in directory.iterdir() if p.is_file() and p.suffix == ".xlsx")
    except OSError as e:
        raise ProcessingError(f"Error reading directory {directory}: {e}") from e


def read_config_book(file_path: Path, config: ImportConfig) -> Book:
    return read_book(
        file_path,
        sheet_tables=config.sheet_tables(),
        header_row=config.header_row,
        ignore_columns=config.ignore_columns(),
        null_sentinels=set(config.null_sentinels) or None,
    )


def plan_book(book: Book, cursor: Any, config: ImportConfig) -> ScheduleResult:
    """Load order of ``book``; input order in mock mode."""
    if cursor is None:
        return SimpleScheduler().schedule(book.sheets)
    return DependencyScheduler(SchemaIntrospector(cursor, schema=config.schema)).schedule(book.sheets)


def process_all(
    config: ImportConfig, cursor: Any = None, registry: ConverterRegistry | None = None
) -> ProcessingResult:
    """Load every workbook of ``config.source_directory``.

    Args:
        config: import configuration
        cursor: psycopg2 cursor (None = mock mode)
        registry: converter registry, default registry when None

    Raises:
        ProcessingError: for fatal errors that prevent processing
    """
    start_time = datetime.now(UTC)
    error_log = ErrorLogBuffer()

    file_paths = scan_excel_files(Path(config.source_directory))

    if not file_paths:
        end_time = datetime.now(UTC)
        return ProcessingResult(
            success_files=0,
            failed_files=0,
            total_inserted_rows=0,
            skipped_sheets=0,
            start_time=start_time,
            end_time=end_time,
            elapsed_seconds=(end_time - start_time).total_seconds(),
            throughput_rows_per_sec=0.0,
            file_stats=[],
        )

    file_stats: list[FileStat] = []
    success_count = 0
    failed_count = 0
    total_rows = 0
    total_updated = 0
    total_rejected = 0
    total_warnings = 0
    total_excluded = 0
    total_skipped_sheets = 0

    with ProgressTracker(len(file_paths)) as progress:
        for file_path in file_paths:
            progress.start_file(file_path)

            file_result = _process_single_file(file_path, config, cursor, error_log, registry)
            succeeded = file_result.status == FileStatus.SUCCESS

            if succeeded:
                success_count += 1
                total_rows += file_result.total_rows
                total_updated += file_result.updated_rows
            else:
                failed_count += 1
                logger.error("file=%s failed: %s", file_path.name, file_result.error)
            total_rejected += file_result.rejected_rows
            total_warnings += file_result.warnings
            total_excluded += file_result.excluded_sheets
            total_skipped_sheets += file_result.skipped_sheets

            progress.set_postfix(success=success_count, failed=failed_count, rows=total_rows)
            progress.finish_file(success=succeeded)

            elapsed = 0.0
            if file_result.start_time and file_result.end_time:
                elapsed = (file_result.end_time - file_result.start_time).total_seconds()
            file_stats.append(
                FileStat(
                    file_name=file_path.name,
                    status=file_result.status.value,
                    inserted_rows=file_result.total_rows if succeeded else 0,
                    elapsed_seconds=elapsed,
                    updated_rows=file_result.updated_rows if succeeded else 0,
                    rejected_rows=file_result.rejected_rows,
                    excluded_sheets=file_result.excluded_sheets,
                )
            )

    try:
        log_path = error_log.flush()
    except OSError as e:
        logger.warning("failed to write error log: %s", e)
    else:
        if log_path is not None:
            logger.info("error log written: %s", log_path)

    end_time = datetime.now(UTC)
    elapsed_seconds = (end_time - start_time).total_seconds()
    throughput_rps = total_rows / elapsed_seconds if elapsed_seconds > 0 else 0.0

    return ProcessingResult(
        success_files=success_count,
        failed_files=failed_count,
        total_inserted_rows=total_rows,
        skipped_sheets=total_skipped_sheets,
        start_time=start_time,
        end_time=end_time,
        elapsed_seconds=elapsed_seconds,
        throughput_rows_per_sec=throughput_rps,
        total_updated_rows=total_updated,
        rejected_rows=total_rejected,
        warnings=total_warnings,
        excluded_sheets=total_excluded,
        file_stats=file_stats,
    )


def _rollback(cursor: Any, file_name: str, error_log: ErrorLogBuffer) -> None:
    try:
        cursor.execute("ROLLBACK")
    except Exception as e:
        error_log.append(
            ErrorRecord.create(file_name, FILE_LEVEL, UNKNOWN_ROW, "TRANSACTION_ROLLBACK_ERROR", str(e))
        )


def _failed(
    file_path: Path,
    start_time: datetime,
    error: str,
    sheets: list[SheetProcess] | None = None,
    skipped_sheets: int = 0,
    excluded_sheets: int = 0,
) -> ExcelFile:
    sheets = sheets or []
    return ExcelFile(
        path=file_path,
        name=file_path.name,
        sheets=sheets,
        start_time=start_time,
        end_time=datetime.now(UTC),
        status=FileStatus.FAILED,
        total_rows=sum(s.inserted_rows for s in sheets),
        updated_rows=sum(s.updated_rows for s in sheets),
        rejected_rows=sum(s.rejected_rows for s in sheets),
        warnings=sum(s.warning_count for s in sheets),
        excluded_sheets=excluded_sheets,
        skipped_sheets=skipped_sheets,
        error=error,
    )


def _process_single_file(
    file_path: Path,
    config: ImportConfig,
    cursor: Any,
    error_log: ErrorLogBuffer,
    registry: ConverterRegistry | None = None,
) -> ExcelFile:
    """Load one workbook inside its own transaction.

    Schema reads (scheduling, table validation) run on the autocommit
    connection before BEGIN, so an introspection failure never aborts the
    file's transaction. On success the transaction is committed; on any
    failure it is rolled back and the next file is processed.
    """
    start_time = datetime.now(UTC)
    file_name = file_path.name
    in_transaction = False

    try:
        book = read_config_book(file_path, config)
        present = {sheet.name for sheet in book.sheets}
        skipped_sheets = sum(1 for name in config.sheet_mappings if name not in present)

        schedule = plan_book(book, cursor, config)
        for diagnostic in schedule.diagnostics:
            logger.warning("file=%s %s", file_name, diagnostic.text)
            error_log.append_diagnostic(file_name, FILE_LEVEL, UNKNOWN_ROW, "SCHEDULE_ERROR", diagnostic)
        excluded_sheets = len(book.sheets) - len(schedule.ordered)

        sheet_progress = SheetProgressIndicator(file_name=file_name, total_sheets=len(schedule.ordered))
        if cursor is None:
            sheet_processes = _count_sheets(schedule, sheet_progress)
        else:
            loader = SheetLoader(
                SchemaIntrospector(cursor, schema=config.schema),
                StatementExecutor(cursor, schema=config.schema, page_size=config.page_size),
                registry=registry,
                update_pass=config.update_pass,
                on_row_error=config.on_row_error,
                reporter=lambda sheet, row, error_type, diagnostic: error_log.append_diagnostic(
                    file_name, sheet, row, error_type, diagnostic
                ),
            )
            prepared_sheets = loader.prepare_sheets(schedule.ordered, schedule)

            try:
                cursor.execute("BEGIN")
            except Exception as e:
                error_log.append(
                    ErrorRecord.create(file_name, FILE_LEVEL, UNKNOWN_ROW, "TRANSACTION_BEGIN_ERROR", str(e))
                )
                return _failed(
                    file_path,
                    start_time,
                    f"Failed to begin transaction: {e}",
                    skipped_sheets=skipped_sheets,
                    excluded_sheets=excluded_sheets,
                )
            in_transaction = True
            sheet_processes = loader.write(prepared_sheets, progress=sheet_progress)
        excluded_sheets += sum(1 for s in sheet_processes if s.excluded)

        failure = next((s for s in sheet_processes if s.error is not None and not s.excluded), None)
        if failure is not None:
            if in_transaction:
                _rollback(cursor, file_name, error_log)
            return _failed(
                file_path,
                start_time,
                f"sheet {failure.sheet_name} failed: {failure.error}",
                sheets=sheet_processes,
                skipped_sheets=skipped_sheets,
                excluded_sheets=excluded_sheets,
            )

        if in_transaction:
            try:
                cursor.execute("COMMIT")
            except Exception as e:
                _rollback(cursor, file_name, error_log)
                error_log.append(
                    ErrorRecord.create(file_name, FILE_LEVEL, UNKNOWN_ROW, "TRANSACTION_COMMIT_ERROR", str(e))
                )
                return _failed(
                    file_path,
                    start_time,
                    f"commit failed: {e}",
                    sheets=sheet_processes,
                    skipped_sheets=skipped_sheets,
                    excluded_sheets=excluded_sheets,
                )

        return ExcelFile(
            path=file_path,
            name=file_name,
            sheets=sheet_processes,
            start_time=start_time,
            end_time=datetime.now(UTC),
            status=FileStatus.SUCCESS,
            total_rows=sum(s.inserted_rows for s in sheet_processes),
            updated_rows=sum(s.updated_rows for s in sheet_processes),
            rejected_rows=sum(s.rejected_rows for s in sheet_processes),
            warnings=sum(s.warning_count for s in sheet_processes),
            excluded_sheets=excluded_sheets,
            skipped_sheets=skipped_sheets,
        )

    except Exception as e:
        if in_transaction:
            _rollback(cursor, file_name, error_log)
        error_log.append(ErrorRecord.create(file_name, FILE_LEVEL, UNKNOWN_ROW, "PROCESSING_ERROR", str(e)))
        return _failed(file_path, start_time, str(e))


def _count_sheets(schedule: ScheduleResult, progress: SheetProgressIndicator) -> list[SheetProcess]:
    """Mock mode: count the rows of every scheduled sheet."""
    processes = []
    for sheet in schedule.ordered:
        progress.start_sheet(sheet.name)
        processes.append(SheetProcess(sheet_name=sheet.name, table_name=sheet.table, inserted_rows=len(sheet)))
        progress.finish_sheet(rows_processed=len(sheet))
    return processes
