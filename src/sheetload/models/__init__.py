"""Domain models for sheetload.

Schema-shape types (MetaType, MetaColumn), diagnostics, the sheet/book
source model and the processing result models.
"""

from .diagnostics import ConversionResult, Diagnostic, Diagnostics, Severity
from .meta_column import MetaColumn, MetaType, classify, find_by_column_name
from .sheet import Book, Sheet
from .sheet_process import SheetProcess

__all__ = [
    # Schema metadata
    "MetaColumn",
    "MetaType",
    "classify",
    "find_by_column_name",
    # Diagnostics
    "ConversionResult",
    "Diagnostic",
    "Diagnostics",
    "Severity",
    # Source data
    "Book",
    "Sheet",
    # Processing models
    "SheetProcess",
]
