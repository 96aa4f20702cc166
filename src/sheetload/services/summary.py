from __future__ import annotations

from ..models.processing_result import ProcessingResult

"""SUMMARY line rendering.

Format (one line, space separated key=value pairs):

SUMMARY files={total}/{total} success={success} failed={failed} rows={inserted}
updated={updated} rejected_rows={rejected} warnings={warnings}
excluded_sheets={excluded} skipped_sheets={skipped} elapsed_sec={elapsed}
throughput_rps={throughput}
"""

__all__ = [
    "render_summary_line",
    "format_number",
]


def format_number(value: float) -> str:
    """Integral values without decimals, small values without exponent."""
    if value == 0:
        return "0"
    if value == int(value):
        return str(int(value))
    if value < 0.01:
        return f"{value:.6f}".rstrip("0").rstrip(".")
    return str(value)


def render_summary_line(total_files: int, result: ProcessingResult) -> str:
    """Render the SUMMARY line of a run.

    >>> from datetime import datetime, timezone
    >>> start = datetime(2023, 1, 1, 10, 0, 0, tzinfo=timezone.utc)
    >>> end = datetime(2023, 1, 1, 10, 0, 2, tzinfo=timezone.utc)
    >>> result = ProcessingResult(
    ...     success_files=1, failed_files=0, total_inserted_rows=1000,
    ...     skipped_sheets=0, start_time=start, end_time=end,
    ...     elapsed_seconds=2.0, throughput_rows_per_sec=500.0
    ... )
    >>> render_summary_line(1, result)  # doctest: +ELLIPSIS
    'SUMMARY files=1/1 success=1 failed=0 rows=1000 updated=0 ...'
    """
    return (
        f"SUMMARY files={total_files}/{total_files} "
        f"success={result.success_files} "
        f"failed={result.failed_files} "
        f"rows={result.total_inserted_rows} "
        f"updated={result.total_updated_rows} "
        f"rejected_rows={result.rejected_rows} "
        f"warnings={result.warnings} "
        f"excluded_sheets={result.excluded_sheets} "
        f"skipped_sheets={result.skipped_sheets} "
        f"elapsed_sec={format_number(result.elapsed_seconds)} "
        f"throughput_rps={format_number(result.throughput_rows_per_sec)}"
    )
