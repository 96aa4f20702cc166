from __future__ import annotations

from collections.abc import Mapping

from ..models.diagnostics import ConversionResult
from ..models.meta_column import MetaColumn, MetaType
from .converters import ToDate, ToNull, ToNumber, ToString, ToTimestamp, ValueConverter

"""Explicit MetaType -> converter table.

The registry is an ordinary object built once and handed to whoever
converts values (Column, ColumnDataProvider). Tests can pass their own
table of converters.
"""

__all__ = [
    "ConverterRegistry",
]


class ConverterRegistry:
    """Dispatches a conversion to the converter registered for the column's MetaType."""

    def __init__(
        self,
        converters: Mapping[MetaType, ValueConverter],
        fallback: ValueConverter | None = None,
    ) -> None:
        self._converters = dict(converters)
        self._fallback = fallback or ToNull()

    @classmethod
    def default(cls) -> ConverterRegistry:
        return cls(
            {
                MetaType.DATE: ToDate(),
                MetaType.TIMESTAMP: ToTimestamp(),
                MetaType.NUMBER: ToNumber(),
                MetaType.STRING: ToString(),
            },
            fallback=ToNull(),
        )

    def converter_for(self, meta: MetaColumn | None) -> ValueConverter:
        if meta is None:
            return self._fallback
        meta_type = meta.meta_type
        if meta_type is None:
            return self._fallback
        return self._converters.get(meta_type, self._fallback)

    def convert(self, meta: MetaColumn | None, value: str | None) -> ConversionResult:
        """convert(meta, raw) -> (typed value, diagnostics)."""
        return self.converter_for(meta).convert(meta, value)
