from __future__ import annotations

from datetime import datetime
from decimal import Decimal

import pytest
from conftest import FakeIntrospector, RecordingExecutor, tag_columns

from sheetload.models.diagnostics import Severity
from sheetload.models.meta_column import MetaColumn
from sheetload.models.sheet import Sheet
from sheetload.services.loader import SheetLoader
from sheetload.services.scheduler import DependencyScheduler

HEADERS = ["name", "married", "age", "born", "altered", "salary"]
ALTERED = "2024-01-02 03:04:05"


def _tag_sheet(rows, headers=HEADERS) -> Sheet:
    return Sheet(name="Tags", table="tag", columns=list(headers), rows=rows, row_numbers=[3 + i for i in range(len(rows))])


def _loader(executor=None, reports=None, **kwargs) -> SheetLoader:
    introspector = FakeIntrospector({"tag": tag_columns()})

    def report(sheet, row, error_type, diagnostic):
        if reports is not None:
            reports.append((sheet, row, error_type, diagnostic.severity, diagnostic.text))

    return SheetLoader(introspector, executor or RecordingExecutor(), reporter=report, **kwargs)


def test_two_pass_load_inserts_mandatory_then_updates_optional():
    executor = RecordingExecutor()
    rows = [
        ["Ada", "yes", "36", "1815-12-10", ALTERED, "100.5"],
        ["Bob", None, None, None, ALTERED, None],
    ]
    [process] = _loader(executor).load_sheets([_tag_sheet(rows)])

    assert process.ok
    assert (process.inserted_rows, process.updated_rows, process.rejected_rows) == (2, 1, 0)
    assert executor.inserts == [
        ("tag", ["name", "altered"], [["Ada", datetime(2024, 1, 2, 3, 4, 5)], ["Bob", datetime(2024, 1, 2, 3, 4, 5)]]),
    ]
    [(table, set_columns, keys, update_rows)] = executor.updates
    assert (table, set_columns, keys) == ("tag", ["married", "age", "born", "salary"], ["name"])
    # Bob has no optional values and is not updated
    assert len(update_rows) == 1
    assert update_rows[0][-1] == "Ada"
    assert update_rows[0][3] == Decimal("100.5")


def test_rows_with_errors_are_rejected_and_reported():
    reports: list = []
    executor = RecordingExecutor()
    rows = [
        ["", None, None, None, ALTERED, None],
        ["Ada", None, "old", None, ALTERED, None],
        ["Bob", None, "7", None, ALTERED, "12345.678"],
    ]
    [process] = _loader(executor, reports).load_sheets([_tag_sheet(rows)])

    assert process.ok
    assert process.rejected_rows == 2
    assert process.inserted_rows == 1
    assert executor.inserts[0][2] == [["Bob", datetime(2024, 1, 2, 3, 4, 5)]]
    assert reports[0] == ("Tags", 3, "CONVERSION_ERROR", Severity.ERROR, "Value for tag.name is required.")
    assert reports[1][:3] == ("Tags", 4, "CONVERSION_ERROR")
    assert reports[2][:4] == ("Tags", 5, "CONVERSION_WARNING", Severity.WARNING)
    assert process.warning_count == 1


def test_on_row_error_fail_fails_the_sheet_before_any_statement():
    executor = RecordingExecutor()
    rows = [["", None, None, None, ALTERED, None], ["Ada", None, None, None, ALTERED, None]]
    [process] = _loader(executor, on_row_error="fail").load_sheets([_tag_sheet(rows)])
    assert not process.ok
    assert not process.excluded
    assert "1 rows rejected" in process.error
    assert executor.inserts == []


def test_table_validation_failure_excludes_only_that_sheet():
    reports: list = []
    executor = RecordingExecutor()
    bad = Sheet(name="Bad", table="tag", columns=["name", "nickname"], rows=[["Ada", "A"]])
    good = _tag_sheet([["Ada", None, None, None, ALTERED, None]])
    processes = _loader(executor, reports).load_sheets([bad, good])

    assert [p.excluded for p in processes] == [True, False]
    assert processes[1].inserted_rows == 1
    texts = [r[4] for r in reports if r[0] == "Bad"]
    assert texts == [
        'Table "tag" requires values for column "altered".',
        'Table "tag" has no column "nickname".',
    ]
    assert all(r[1] == -1 and r[2] == "TABLE_VALIDATION_ERROR" for r in reports if r[0] == "Bad")


def test_unknown_table_is_excluded():
    reports: list = []
    ghost = Sheet(name="Ghost", table="ghost", columns=["id"], rows=[["1"]])
    [process] = _loader(reports=reports).load_sheets([ghost])
    assert process.excluded
    assert reports == [("Ghost", -1, "TABLE_NOT_FOUND", Severity.ERROR, 'No such table "ghost".')]


def test_update_pass_disabled_inserts_every_column():
    executor = RecordingExecutor()
    rows = [["Ada", "yes", "36", None, ALTERED, None]]
    _loader(executor, update_pass=False).load_sheets([_tag_sheet(rows)])
    assert executor.inserts[0][1] == HEADERS
    assert executor.updates == []


def test_table_without_primary_key_inserts_every_column():
    columns = [
        MetaColumn("line", table="log", type_name="text", nullable=False),
        MetaColumn("level", table="log", type_name="text"),
    ]
    executor = RecordingExecutor()
    loader = SheetLoader(FakeIntrospector({"log": columns}), executor)
    sheet = Sheet(name="Log", table="log", columns=["level", "line"], rows=[["INFO", "started"]])
    [process] = loader.load_sheets([sheet])
    assert process.inserted_rows == 1
    assert executor.inserts == [("log", ["level", "line"], [["INFO", "started"]])]
    assert executor.updates == []


def test_headers_are_mapped_to_table_column_names():
    executor = RecordingExecutor()
    sheet = _tag_sheet([["Ada", None, None, None, ALTERED, None]], headers=[h.upper() for h in HEADERS])
    _loader(executor).load_sheets([sheet])
    assert executor.inserts[0][1] == ["name", "altered"]


def test_statement_failure_is_recorded_on_its_sheet():
    reports: list = []
    executor = RecordingExecutor(fail_on={"tag"})
    [process] = _loader(executor, reports).load_sheets([_tag_sheet([["Ada", None, None, None, ALTERED, None]])])
    assert not process.ok
    assert not process.excluded
    assert "duplicate key" in process.error
    assert reports[-1][2] == "INSERT_ERROR"


def test_every_load_precedes_every_update():
    events: list[str] = []

    class OrderedExecutor(RecordingExecutor):
        def insert(self, table, columns, rows):
            events.append(f"insert {table}")
            return super().insert(table, columns, rows)

        def update(self, table, set_columns, key_columns, rows):
            events.append(f"update {table}")
            return super().update(table, set_columns, key_columns, rows)

    owner = [
        MetaColumn("id", table="owner", type_name="integer", numeric=True, primary=True, nullable=False),
        MetaColumn("label", table="owner", type_name="text"),
    ]
    introspector = FakeIntrospector({"tag": tag_columns(), "owner": owner})
    loader = SheetLoader(introspector, OrderedExecutor())
    sheets = [
        Sheet(name="Owners", table="owner", columns=["id", "label"], rows=[["1", "first"]]),
        _tag_sheet([["Ada", None, "36", None, ALTERED, None]]),
    ]
    loader.load_sheets(sheets)
    assert events == ["insert owner", "insert tag", "update owner", "update tag"]


def test_invalid_on_row_error_is_rejected():
    with pytest.raises(ValueError, match="on_row_error"):
        _loader(on_row_error="ignore")


def test_sheets_needing_an_excluded_parent_are_excluded_too():
    owner = [
        MetaColumn("id", table="owner", type_name="integer", numeric=True, primary=True, nullable=False),
        MetaColumn("label", table="owner", type_name="text"),
    ]
    tag = tag_columns() + [MetaColumn("owner_id", table="tag", type_name="integer", numeric=True, nullable=False)]
    note = [MetaColumn("id", table="note", type_name="integer", numeric=True, primary=True, nullable=False)]
    introspector = FakeIntrospector({"owner": owner, "tag": tag, "note": note}, {"tag": {"owner_id": "owner"}})
    sheets = [
        _tag_sheet([["Ada", None, None, None, ALTERED, None, "1"]], HEADERS + ["owner_id"]),
        # nickname is no column of owner: the sheet fails table validation
        Sheet(name="Owners", table="owner", columns=["id", "nickname"], rows=[["1", "x"]]),
        Sheet(name="Notes", table="note", columns=["id"], rows=[["7"]]),
    ]
    schedule = DependencyScheduler(introspector).schedule(sheets)
    assert [s.name for s in schedule.ordered] == ["Owners", "Notes", "Tags"]

    executor = RecordingExecutor()
    reports = []
    loader = SheetLoader(
        introspector,
        executor,
        reporter=lambda sheet, row, error_type, d: reports.append((sheet, row, error_type, d.severity, d.text)),
    )
    processes = {p.sheet_name: p for p in loader.load_sheets(schedule.ordered, schedule=schedule)}

    assert processes["Owners"].excluded
    assert processes["Tags"].excluded
    assert processes["Tags"].error == 'Table "tag" depends on removed table "owner".'
    assert not processes["Notes"].excluded
    assert [i[0] for i in executor.inserts] == ["note"]
    assert ("Tags", -1, "SCHEDULE_ERROR", Severity.ERROR, 'Table "tag" depends on removed table "owner".') in reports


def test_prepare_sheets_issues_no_statement():
    executor = RecordingExecutor()
    [prepared] = _loader(executor).prepare_sheets([_tag_sheet([["Ada", None, None, None, ALTERED, None]])])
    assert prepared.rows and not prepared.excluded
    assert executor.inserts == [] and executor.updates == []
