from __future__ import annotations

import re
from datetime import UTC, datetime

from sheetload.models.processing_result import ProcessingResult
from sheetload.services.summary import render_summary_line

"""SUMMARY line format contract."""

SUMMARY_PATTERN = re.compile(
    r"^SUMMARY\s+files=([0-9]+)/(\1)\s+success=([0-9]+)\s+failed=([0-9]+)\s+"
    r"rows=([0-9]+)\s+updated=([0-9]+)\s+rejected_rows=([0-9]+)\s+warnings=([0-9]+)\s+"
    r"excluded_sheets=([0-9]+)\s+skipped_sheets=([0-9]+)\s+"
    r"elapsed_sec=([0-9]+\.?[0-9]*)\s+throughput_rps=([0-9]+\.?[0-9]*)$"
)


def _result(**overrides) -> ProcessingResult:
    start = datetime(2025, 1, 1, 12, 0, 0, tzinfo=UTC)
    values = dict(
        success_files=1,
        failed_files=0,
        total_inserted_rows=4,
        skipped_sheets=0,
        start_time=start,
        end_time=start,
        elapsed_seconds=0.84,
        throughput_rows_per_sec=4761.9,
    )
    values.update(overrides)
    return ProcessingResult(**values)


def test_summary_pattern_example_line() -> None:
    line = (
        "SUMMARY files=1/1 success=1 failed=0 rows=4 updated=2 rejected_rows=0 warnings=1 "
        "excluded_sheets=0 skipped_sheets=0 elapsed_sec=0.84 throughput_rps=4761.9"
    )
    assert SUMMARY_PATTERN.match(line)


def test_rendered_line_matches_contract() -> None:
    line = render_summary_line(1, _result(total_updated_rows=2, warnings=1))
    match = SUMMARY_PATTERN.match(line)
    assert match, line
    assert match.group(5) == "4"
    assert match.group(6) == "2"


def test_rendered_line_with_failures_and_zero_elapsed() -> None:
    line = render_summary_line(
        3,
        _result(success_files=1, failed_files=2, rejected_rows=5, excluded_sheets=1,
                skipped_sheets=2, elapsed_seconds=0.0, throughput_rows_per_sec=0.0),
    )
    match = SUMMARY_PATTERN.match(line)
    assert match, line
    assert line.endswith("elapsed_sec=0 throughput_rps=0")
    assert "rejected_rows=5 warnings=0 excluded_sheets=1 skipped_sheets=2" in line


def test_tiny_elapsed_has_no_exponent() -> None:
    line = render_summary_line(1, _result(elapsed_seconds=0.000012, throughput_rows_per_sec=333333.5))
    assert "e-" not in line
    assert SUMMARY_PATTERN.match(line)
