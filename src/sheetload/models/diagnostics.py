from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from enum import Enum
from typing import Any

"""Validation diagnostics for conversion, table validation and scheduling.

Diagnostics are immutable values: every operation returns a fresh
Diagnostics instance and callers compose them with ``+``. There is no
shared message object that has to be cleared between rows.
"""

__all__ = [
    "Severity",
    "Diagnostic",
    "Diagnostics",
    "ConversionResult",
]


class Severity(Enum):
    """Diagnostic severity.

    - ERROR: the value/row/table cannot be loaded as-is
    - WARNING: the value was coerced and is usable but degraded
    """
    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True)
class Diagnostic:
    severity: Severity
    text: str

    @property
    def is_error(self) -> bool:
        return self.severity is Severity.ERROR

    @property
    def is_warning(self) -> bool:
        return self.severity is Severity.WARNING

    def __str__(self) -> str:
        return self.text


@dataclass(frozen=True)
class Diagnostics:
    """Ordered collection of diagnostics with value semantics."""
    items: tuple[Diagnostic, ...] = ()

    @staticmethod
    def error(text: str) -> Diagnostics:
        return Diagnostics((Diagnostic(Severity.ERROR, text),))

    @staticmethod
    def warning(text: str) -> Diagnostics:
        return Diagnostics((Diagnostic(Severity.WARNING, text),))

    @staticmethod
    def combine(parts: Iterable[Diagnostics]) -> Diagnostics:
        items: list[Diagnostic] = []
        for part in parts:
            items.extend(part.items)
        return Diagnostics(tuple(items))

    def __add__(self, other: Diagnostics) -> Diagnostics:
        if not isinstance(other, Diagnostics):
            return NotImplemented
        if not other.items:
            return self
        return Diagnostics(self.items + other.items)

    def __iter__(self) -> Iterator[Diagnostic]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)

    def __bool__(self) -> bool:
        return bool(self.items)

    @property
    def errors(self) -> tuple[Diagnostic, ...]:
        return tuple(d for d in self.items if d.is_error)

    @property
    def warnings(self) -> tuple[Diagnostic, ...]:
        return tuple(d for d in self.items if d.is_warning)

    @property
    def has_errors(self) -> bool:
        return any(d.is_error for d in self.items)

    @property
    def has_warnings(self) -> bool:
        return any(d.is_warning for d in self.items)

    @property
    def texts(self) -> list[str]:
        return [d.text for d in self.items]

    def text(self, separator: str = " ") -> str:
        return separator.join(self.texts)


@dataclass(frozen=True)
class ConversionResult:
    """Typed value (None when absent) plus the diagnostics of one conversion."""
    value: Any
    diagnostics: Diagnostics = Diagnostics()

    @property
    def is_valid(self) -> bool:
        return not self.diagnostics
