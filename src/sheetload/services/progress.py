from __future__ import annotations

import sys
from pathlib import Path
from typing import Any

from tqdm import tqdm

"""Progress display with tqdm (TTY only).

One tqdm bar over the workbooks of a run; sheet progress inside a
workbook is a plain status line. Both are disabled when stdout is not a
TTY so that CI logs stay free of control sequences.
"""

__all__ = [
    "ProgressTracker",
    "is_tty_enabled",
    "SheetProgressIndicator",
]


def is_tty_enabled() -> bool:
    return sys.stdout.isatty()


class ProgressTracker:
    """File-level progress bar, usable as a context manager."""

    def __init__(self, total_files: int, *, description: str = "Loading books") -> None:
        self.total_files = total_files
        self.description = description
        self.current_file = 0

        self.enabled = is_tty_enabled()
        self.pbar: tqdm | None
        if self.enabled:
            self.pbar = tqdm(
                total=total_files,
                desc=description,
                unit="file",
                leave=True,
                position=0,
                ncols=80,
                ascii=True,
            )
        else:
            self.pbar = None

    def start_file(self, file_path: Path) -> None:
        self.current_file += 1
        if self.pbar is not None:
            self.pbar.set_description(f"{self.description} ({file_path.name})")

    def finish_file(self, success: bool = True) -> None:
        if self.pbar is not None:
            self.pbar.update(1)
            self.pbar.set_description(self.description)

    def set_postfix(self, **kwargs: Any) -> None:
        if self.pbar is not None:
            self.pbar.set_postfix(**kwargs)

    def close(self) -> None:
        if self.pbar is not None:
            self.pbar.close()
            self.pbar = None

    def __enter__(self) -> ProgressTracker:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()


class SheetProgressIndicator:
    """Sheet status lines within one workbook.

    ``phase`` tells the load pass from the update pass.
    """

    def __init__(self, file_name: str, total_sheets: int) -> None:
        self.file_name = file_name
        self.total_sheets = total_sheets
        self.current_sheet = 0
        self.phase = "load"
        self.enabled = is_tty_enabled()

    def start_sheet(self, sheet_name: str, phase: str = "load") -> None:
        if phase != self.phase:
            self.phase = phase
            self.current_sheet = 0
        self.current_sheet += 1
        if self.enabled:
            tqdm.write(f"  [{phase}] Sheet {self.current_sheet}/{self.total_sheets}: {sheet_name}", end="")

    def finish_sheet(self, success: bool = True, rows_processed: int = 0) -> None:
        if self.enabled:
            status = "ok" if success else "failed"
            if rows_processed > 0:
                tqdm.write(f" - {rows_processed} rows {status}")
            else:
                tqdm.write(f" {status}")
