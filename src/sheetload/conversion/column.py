from __future__ import annotations

from typing import Any

from ..models.diagnostics import Diagnostics
from ..models.meta_column import MetaColumn
from .registry import ConverterRegistry

"""Column: one cell's raw text paired with its destination MetaColumn.

e.g. ``customer.name = "x-root"``. The typed value is produced on demand;
the diagnostics of the last conversion are cached until either the meta
column or the raw value is reassigned.
"""

__all__ = [
    "Column",
]


class Column:

    def __init__(
        self,
        meta: MetaColumn | None = None,
        value: str | None = None,
        registry: ConverterRegistry | None = None,
    ) -> None:
        self._meta = meta
        self._value = value
        self._registry = registry or ConverterRegistry.default()
        self._diagnostics: Diagnostics | None = None

    @property
    def meta(self) -> MetaColumn | None:
        return self._meta

    @meta.setter
    def meta(self, meta: MetaColumn | None) -> None:
        self._meta = meta
        self._diagnostics = None

    @property
    def value(self) -> str | None:
        """Current raw value as plain text."""
        return self._value

    @value.setter
    def value(self, value: str | None) -> None:
        self._value = value
        self._diagnostics = None

    def get_object(self) -> Any:
        """Typed value, None if absent or invalid.

        Converts on every call and replaces the cached diagnostics.
        """
        result = self._registry.convert(self._meta, self._value)
        self._diagnostics = result.diagnostics
        return result.value

    def validate(self) -> Diagnostics:
        """Diagnostics of the current value, converting once if needed."""
        if self._diagnostics is None:
            self.get_object()
        assert self._diagnostics is not None
        return self._diagnostics

    def is_valid(self) -> bool:
        return not self.validate()

    def is_empty(self) -> bool:
        # no meta column means nothing to convert into
        return self._value is None or not self._value.strip() or self._meta is None

    def __repr__(self) -> str:
        return f"Column(meta={self._meta!s}, value={self._value!r})"
