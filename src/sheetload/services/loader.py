from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

from ..conversion.provider import ColumnDataProvider
from ..conversion.registry import ConverterRegistry
from ..db.batch_statements import BatchInsertError, BatchUpdateError, InsertResult, UpdateResult
from ..db.introspect import TableNotFoundError
from ..models.diagnostics import Diagnostic, Diagnostics
from ..models.error_record import UNKNOWN_ROW
from ..models.meta_column import MetaColumn
from ..models.sheet import Sheet
from ..models.sheet_process import SheetProcess
from .scheduler import DEPENDS_ON_REMOVED, ScheduleResult

"""Two-pass sheet loader.

Every scheduled sheet is bound to a ColumnDataProvider and validated
against its table before any row is converted. Accepted rows are then
written in two passes over the whole schedule:

1. load pass: insert the mandatory columns (primary key and not null) of
   every accepted row, sheet by sheet in schedule order;
2. update pass: once every sheet is inserted, update the optional columns
   keyed on the primary key. Optional foreign keys therefore never depend
   on the load order.

Tables without a primary key, or runs with the update pass disabled, get
every column inserted in the load pass. A sheet excluded during
preparation takes every sheet that mandatorily depends on it along.

Statement failures (BatchInsertError / BatchUpdateError) stop the run;
the caller rolls back the transaction.
"""

__all__ = [
    "SheetLoader",
    "PreparedSheet",
    "Reporter",
    "ON_ROW_ERROR_CHOICES",
]

logger = logging.getLogger(__name__)

ON_ROW_ERROR_CHOICES = ("skip", "fail")

# reporter(sheet name, workbook row, error type, diagnostic)
Reporter = Callable[[str, int, str, Diagnostic], None]


class MetaColumnSource(Protocol):
    def meta_columns(self, table: str) -> list[MetaColumn]: ...


class SheetProgress(Protocol):
    def start_sheet(self, sheet_name: str, phase: str = "load") -> None: ...

    def finish_sheet(self, success: bool = True, rows_processed: int = 0) -> None: ...


class StatementSink(Protocol):
    def insert(self, table: str, columns: Sequence[str], rows: Sequence[Sequence[Any]]) -> InsertResult: ...

    def update(
        self,
        table: str,
        set_columns: Sequence[str],
        key_columns: Sequence[str],
        rows: Sequence[Sequence[Any]],
    ) -> UpdateResult: ...


@dataclass
class PreparedSheet:
    """A validated sheet with its converted rows, ready for both passes."""
    sheet: Sheet
    insert_headers: list[str] = field(default_factory=list)
    update_headers: list[str] = field(default_factory=list)
    key_headers: list[str] = field(default_factory=list)
    column_names: dict[str, str] = field(default_factory=dict)  # header -> table column name
    rows: list[dict[str, Any]] = field(default_factory=list)
    rejected_rows: int = 0
    diagnostics: Diagnostics = Diagnostics()
    error: str | None = None
    inserted_rows: int = 0
    updated_rows: int = 0
    dropped: bool = False  # a mandatory parent sheet was excluded

    @property
    def excluded(self) -> bool:
        """True when the sheet never reached the load pass."""
        return self.dropped or (self.error is not None and not self.insert_headers)

    def insert_rows(self) -> list[list[Any]]:
        return [[row.get(h) for h in self.insert_headers] for row in self.rows]

    def update_rows(self) -> list[list[Any]]:
        rows = []
        for row in self.rows:
            values = [row.get(h) for h in self.update_headers]
            if all(v is None for v in values):
                continue
            rows.append(values + [row.get(k) for k in self.key_headers])
        return rows

    def columns(self, headers: Sequence[str]) -> list[str]:
        return [self.column_names[h] for h in headers]

    def to_process(self) -> SheetProcess:
        return SheetProcess(
            sheet_name=self.sheet.name,
            table_name=self.sheet.table,
            inserted_rows=self.inserted_rows,
            updated_rows=self.updated_rows,
            rejected_rows=self.rejected_rows,
            diagnostics=self.diagnostics,
            error=self.error,
            excluded=self.excluded,
        )


def _ignore(sheet: str, row: int, error_type: str, diagnostic: Diagnostic) -> None:
    pass


class SheetLoader:
    """Loads ordered sheets through a meta column source and a statement sink.

    Args:
        introspector: supplies ``meta_columns(table)``
        executor: supplies ``insert`` / ``update`` (see StatementExecutor)
        registry: converter registry, default registry when None
        update_pass: when False every column is inserted in the load pass
        on_row_error: "skip" rejects rows with conversion errors,
            "fail" fails the sheet (and with it the file)
        reporter: receives every diagnostic with its row number
    """

    def __init__(
        self,
        introspector: MetaColumnSource,
        executor: StatementSink,
        registry: ConverterRegistry | None = None,
        update_pass: bool = True,
        on_row_error: str = "skip",
        reporter: Reporter | None = None,
    ) -> None:
        if on_row_error not in ON_ROW_ERROR_CHOICES:
            raise ValueError(f"on_row_error must be one of {ON_ROW_ERROR_CHOICES}, got {on_row_error!r}")
        self.introspector = introspector
        self.executor = executor
        self.registry = registry or ConverterRegistry.default()
        self.update_pass = update_pass
        self.on_row_error = on_row_error
        self.reporter = reporter or _ignore

    def _report(self, prepared: PreparedSheet, row: int, error_type: str, diagnostics: Diagnostics) -> None:
        for diagnostic in diagnostics:
            self.reporter(prepared.sheet.name, row, error_type, diagnostic)
        prepared.diagnostics += diagnostics

    def prepare(self, sheet: Sheet) -> PreparedSheet:
        """Validate ``sheet`` against its table and convert every row."""
        prepared = PreparedSheet(sheet=sheet)
        try:
            metas = self.introspector.meta_columns(sheet.table)
        except TableNotFoundError as e:
            self._report(prepared, UNKNOWN_ROW, "TABLE_NOT_FOUND", Diagnostics.error(str(e)))
            prepared.error = str(e)
            return prepared

        provider = ColumnDataProvider(sheet.table, metas, sheet.columns, registry=self.registry)
        structural = provider.validate_table()
        if structural.has_errors:
            self._report(prepared, UNKNOWN_ROW, "TABLE_VALIDATION_ERROR", structural)
            prepared.error = f"table validation failed for {sheet.table}"
            return prepared

        headers = provider.headers
        prepared.column_names = {h: provider.get_meta_column(h).name for h in headers}
        keys = provider.primary_headers()
        optional = provider.optional_headers()
        if self.update_pass and keys and optional:
            prepared.insert_headers = provider.mandatory_headers()
            prepared.update_headers = optional
            prepared.key_headers = keys
        else:
            prepared.insert_headers = headers

        for index, values in enumerate(sheet.rows):
            provider.set_values(values)
            conversion = provider.convert_row()
            row_number = sheet.row_number(index)
            self._report(prepared, row_number, "CONVERSION_ERROR", Diagnostics(conversion.diagnostics.errors))
            self._report(prepared, row_number, "CONVERSION_WARNING", Diagnostics(conversion.diagnostics.warnings))
            if conversion.has_errors:
                prepared.rejected_rows += 1
                continue
            prepared.rows.append(conversion.values)

        if prepared.rejected_rows:
            logger.warning(
                "sheet=%s table=%s rejected_rows=%d", sheet.name, sheet.table, prepared.rejected_rows
            )
            if self.on_row_error == "fail":
                prepared.error = f"{prepared.rejected_rows} rows rejected in sheet {sheet.name}"
        return prepared

    def load(self, prepared: PreparedSheet) -> int:
        """Load pass for one prepared sheet, returns inserted rows."""
        rows = prepared.insert_rows()
        logger.debug(
            "load sheet=%s table=%s columns=%s rows=%d",
            prepared.sheet.name,
            prepared.sheet.table,
            prepared.insert_headers,
            len(rows),
        )
        result = self.executor.insert(prepared.sheet.table, prepared.columns(prepared.insert_headers), rows)
        prepared.inserted_rows = result.inserted_rows
        return result.inserted_rows

    def update(self, prepared: PreparedSheet) -> int:
        """Update pass for one prepared sheet, returns updated rows."""
        if not prepared.update_headers:
            return 0
        rows = prepared.update_rows()
        if not rows:
            return 0
        logger.debug(
            "update sheet=%s table=%s columns=%s keys=%s rows=%d",
            prepared.sheet.name,
            prepared.sheet.table,
            prepared.update_headers,
            prepared.key_headers,
            len(rows),
        )
        result = self.executor.update(
            prepared.sheet.table,
            prepared.columns(prepared.update_headers),
            prepared.columns(prepared.key_headers),
            rows,
        )
        prepared.updated_rows = result.updated_rows
        return result.updated_rows

    def prepare_sheets(self, sheets: Sequence[Sheet], schedule: ScheduleResult | None = None) -> list[PreparedSheet]:
        """Prepare ``sheets`` (already in load order); reads metadata only.

        A sheet failing preparation is excluded. With a ``schedule``, every
        sheet whose table needs an excluded table through mandatory foreign
        keys is excluded as well.
        """
        prepared_sheets = [self.prepare(sheet) for sheet in sheets]
        if schedule is None:
            return prepared_sheets

        failed = {p.sheet.table for p in prepared_sheets if p.excluded}
        for dependent, dependency in schedule.dependents_of(failed):
            text = DEPENDS_ON_REMOVED.format(table=dependent, removed=dependency)
            for prepared in prepared_sheets:
                if prepared.sheet.table.strip().upper() != dependent.strip().upper():
                    continue
                logger.warning("sheet=%s %s", prepared.sheet.name, text)
                self._report(prepared, UNKNOWN_ROW, "SCHEDULE_ERROR", Diagnostics.error(text))
                prepared.error = prepared.error or text
                prepared.dropped = True
        return prepared_sheets

    def load_sheets(
        self,
        sheets: Sequence[Sheet],
        progress: SheetProgress | None = None,
        schedule: ScheduleResult | None = None,
    ) -> list[SheetProcess]:
        """Prepare, load and update ``sheets`` (already in load order)."""
        return self.write(self.prepare_sheets(sheets, schedule), progress)

    def write(
        self, prepared_sheets: Sequence[PreparedSheet], progress: SheetProgress | None = None
    ) -> list[SheetProcess]:
        """Load pass then update pass over the non-excluded sheets.

        With ``on_row_error="fail"`` a sheet with rejected rows stops the run
        before any statement. A statement failure is recorded on its sheet
        and stops the run.
        """
        if any(p.error is not None and not p.excluded for p in prepared_sheets):
            return [p.to_process() for p in prepared_sheets]

        active = [p for p in prepared_sheets if not p.excluded]
        try:
            for prepared in active:
                if progress is not None:
                    progress.start_sheet(prepared.sheet.name, "load")
                self.load(prepared)
                if progress is not None:
                    progress.finish_sheet(rows_processed=prepared.inserted_rows)
            for prepared in active:
                if not prepared.update_headers:
                    continue
                if progress is not None:
                    progress.start_sheet(prepared.sheet.name, "update")
                self.update(prepared)
                if progress is not None:
                    progress.finish_sheet(rows_processed=prepared.updated_rows)
        except BatchInsertError as e:
            self._fail(prepared, "INSERT_ERROR", e)
            if progress is not None:
                progress.finish_sheet(success=False)
        except BatchUpdateError as e:
            self._fail(prepared, "UPDATE_ERROR", e)
            if progress is not None:
                progress.finish_sheet(success=False)
        return [p.to_process() for p in prepared_sheets]

    def _fail(self, prepared: PreparedSheet, error_type: str, error: Exception) -> None:
        logger.error("sheet=%s table=%s %s: %s", prepared.sheet.name, prepared.sheet.table, error_type, error)
        self._report(prepared, UNKNOWN_ROW, error_type, Diagnostics.error(str(error)))
        prepared.error = str(error)
