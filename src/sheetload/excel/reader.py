from __future__ import annotations

from collections.abc import Iterable
from datetime import date, datetime
from pathlib import Path
from typing import Any

import pandas as pd

from ..models.sheet import Book, Sheet

"""Workbook reader: .xlsx -> Book of text-cell Sheets.

The header row is configurable (1-based, default 2: the first row is a
title row). Data rows follow the header; completely empty rows are
dropped. Every cell is turned into text so that typed conversion can be
done later against the destination table's metadata.
"""

__all__ = [
    "SheetHeaderError",
    "read_excel_file",
    "normalize_sheet",
    "read_book",
    "cell_text",
]


class SheetHeaderError(Exception):
    """Raised when the header row is missing or empty."""


def read_excel_file(
    path: Path, target_sheets: Iterable[str] | None = None, keep_na_strings: list[str] | None = None
) -> dict[str, pd.DataFrame]:
    """Read a workbook returning raw DataFrames keyed by sheet name.

    Parameters
    ----------
    path: workbook path
    target_sheets: restrict to these sheets (None for all)
    keep_na_strings: strings pandas must not turn into NaN (e.g. ['NA'])
    """
    import pandas._libs.parsers as parsers

    if keep_na_strings:
        na_values = list(parsers.STR_NA_VALUES - set(keep_na_strings))
        keep_default_na = False
    else:
        na_values = None
        keep_default_na = True

    targets = set(target_sheets) if target_sheets is not None else None
    dfs: dict[str, pd.DataFrame] = {}
    with pd.ExcelFile(path) as xls:
        for name in xls.sheet_names:
            if targets is not None and str(name) not in targets:
                continue
            # raw read without header, the header row is applied in normalize_sheet
            df = xls.parse(name, header=None, keep_default_na=keep_default_na, na_values=na_values, dtype=object)
            dfs[str(name)] = df
    return dfs


def cell_text(value: Any, null_sentinels: set[str] | None = None) -> str | None:
    """Text representation of a cell, None for empty cells and NULL sentinels."""
    if value is None:
        return None
    try:
        if pd.isna(value):
            return None
    except (TypeError, ValueError):
        pass
    if isinstance(value, str):
        if null_sentinels and value.strip().upper() in null_sentinels:
            return None
        return value
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, (pd.Timestamp, datetime)):
        if value.tzinfo is not None:
            value = value.replace(tzinfo=None)
        return value.isoformat(sep=" ")
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def normalize_sheet(
    df: pd.DataFrame,
    sheet_name: str,
    table: str | None = None,
    header_row: int = 2,
    ignore_columns: set[str] | None = None,
    null_sentinels: set[str] | None = None,
) -> Sheet:
    """Normalize a raw DataFrame into a Sheet of text cells.

    Steps:
    1. Validate the header row exists
    2. Take column names from the header row, dropping blank headers and
       ``ignore_columns`` (case-insensitive)
    3. Turn every following non-empty row into text cells
    """
    header_index = header_row - 1
    if header_index < 0 or df.shape[0] <= header_index:
        raise SheetHeaderError(f"sheet '{sheet_name}' lacks header row {header_row}")
    header_series = df.iloc[header_index]

    ignored = {c.strip().lower() for c in ignore_columns} if ignore_columns else set()
    positions: list[int] = []
    columns: list[str] = []
    for position, raw in enumerate(header_series.tolist()):
        name = cell_text(raw)
        if name is None or not name.strip() or name.strip().lower() in ignored:
            continue
        positions.append(position)
        columns.append(name.strip())
    if not columns:
        raise SheetHeaderError(f"sheet '{sheet_name}' has an empty header row {header_row}")

    rows: list[list[str | None]] = []
    row_numbers: list[int] = []
    data_part = df.iloc[header_index + 1:]
    for offset, (_, raw) in enumerate(data_part.iterrows()):
        if raw.isna().all():
            continue
        row_numbers.append(header_row + 1 + offset)
        values = raw.tolist()
        rows.append([cell_text(values[p], null_sentinels) if p < len(values) else None for p in positions])

    return Sheet(
        name=sheet_name,
        table=table or sheet_name,
        columns=columns,
        rows=rows,
        row_numbers=row_numbers,
    )


def read_book(
    path: Path,
    sheet_tables: dict[str, str] | None = None,
    header_row: int = 2,
    ignore_columns: dict[str, set[str]] | None = None,
    null_sentinels: set[str] | None = None,
) -> Book:
    """Read a workbook into a Book.

    ``sheet_tables`` maps sheet name -> table name; when given only those
    sheets are read. Otherwise every sheet is read and loaded into the
    table of the same name.
    """
    targets = set(sheet_tables) if sheet_tables else None
    raw = read_excel_file(path, target_sheets=targets)
    sheets = []
    for name, df in raw.items():
        table = sheet_tables.get(name, name) if sheet_tables else name
        ignored = ignore_columns.get(name) if ignore_columns else None
        sheets.append(
            normalize_sheet(
                df,
                name,
                table=table,
                header_row=header_row,
                ignore_columns=ignored,
                null_sentinels=null_sentinels,
            )
        )
    return Book(name=path.name, sheets=sheets)
