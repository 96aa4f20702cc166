from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from ..models.diagnostics import ConversionResult, Diagnostics
from ..models.meta_column import MetaColumn

"""Value converters: raw cell text -> typed value plus diagnostics.

One strategy per MetaType and a null-object fallback. The shared base
handles blank input (required check) and trimming; subclasses only see
non-blank, trimmed text. Conversion never raises for bad data, it returns
ConversionResult(value=None, diagnostics=...) instead.
"""

__all__ = [
    "ValueConverter",
    "ToDate",
    "ToTimestamp",
    "ToNumber",
    "ToString",
    "ToNull",
    "parse_timestamp",
    "parse_day",
    "TIMESTAMP_FORMATS",
    "DAY_FORMATS",
]

REQUIRED = "Value for {table}.{column} is required."
NO_RULE = 'Cannot import "{value}" into {table}.{column} as no conversion rule is known.'
TRUNCATE = (
    'Value "{value}" is too large for {table}.{column}'
    " and will be truncated from {length} to {size} characters."
)
NOT_A_NUMBER = '"{value}" is not a valid number for {table}.{column} and will be ignored.'
OVERFLOW = 'Value "{value}" is too large for {table}.{column} and will be ignored.'
ROUNDED = 'Mantissa of "{value}" is too large for {table}.{column}. Will round value to {fraction} digits.'
NOT_A_DATE = '"{value}" is not a valid date for {table}.{column} and will be ignored.'
NOT_A_TIMESTAMP = '"{value}" is not a valid time stamp for {table}.{column} and will be ignored.'

TIMESTAMP_FORMATS = (
    "%Y-%m-%d %H:%M:%S.%f",
    "%Y-%m-%dT%H:%M:%S.%f",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%dT%H:%M",
    "%d.%m.%Y %H:%M:%S",
    "%d.%m.%Y %H:%M",
)
DAY_FORMATS = (
    "%Y-%m-%d",
    "%d.%m.%Y",
    "%Y/%m/%d",
    "%Y%m%d",
)


def _parse(value: str, formats: tuple[str, ...]) -> datetime | None:
    for fmt in formats:
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    return None


def parse_timestamp(value: str) -> datetime | None:
    """Timestamp precision parse, None if no format matches."""
    return _parse(value, TIMESTAMP_FORMATS)


def parse_day(value: str) -> datetime | None:
    """Day precision parse, None if no format matches."""
    return _parse(value, DAY_FORMATS)


class ValueConverter(ABC):
    """Converts the raw text of one cell for a given destination column."""

    def convert(self, meta: MetaColumn | None, value: str | None) -> ConversionResult:
        if value is None or not value.strip():
            # blank is never coerced to a default, nullable or not
            if meta is not None and meta.not_nullable:
                return ConversionResult(None, Diagnostics.error(self.message(REQUIRED, meta, value)))
            return ConversionResult(None)
        if meta is None:
            return ConversionResult(None)
        return self.convert_text(meta, value.strip())

    @abstractmethod
    def convert_text(self, meta: MetaColumn, value: str) -> ConversionResult:
        """Convert non-blank, trimmed text."""

    @staticmethod
    def message(template: str, meta: MetaColumn, value: Any, **extra: Any) -> str:
        params = {
            "table": meta.table or "<table>",
            "column": meta.name,
            "value": value,
            "size": meta.size,
            "precision": meta.precision,
            "fraction": meta.fraction,
        }
        params.update(extra)
        return template.format(**params)


class ToNull(ValueConverter):
    """Fallback when no conversion rule applies to the column type."""

    def convert_text(self, meta: MetaColumn, value: str) -> ConversionResult:
        return ConversionResult(None, Diagnostics.warning(self.message(NO_RULE, meta, value)))


class ToString(ValueConverter):

    def convert_text(self, meta: MetaColumn, value: str) -> ConversionResult:
        if meta.size is not None and len(value) > meta.size:
            text = self.message(TRUNCATE, meta, value, length=len(value))
            return ConversionResult(value[: meta.size], Diagnostics.warning(text))
        return ConversionResult(value)


class ToNumber(ValueConverter):
    """Locale-neutral number parsing with overflow and mantissa checks.

    Overflow (more integral digits than ``precision``) discards the value
    with an error. A value longer than ``size`` only gets a warning that the
    database will round it to ``fraction`` digits; the value is returned
    unchanged.
    """

    def convert_text(self, meta: MetaColumn, value: str) -> ConversionResult:
        if not meta.is_numeric():
            return ConversionResult(None)
        number = self.parse(value)
        if number is None:
            return ConversionResult(None, Diagnostics.error(self.message(NOT_A_NUMBER, meta, value)))
        if meta.precision is not None and self.integral_digits(number) > meta.precision:
            return ConversionResult(None, Diagnostics.error(self.message(OVERFLOW, meta, number)))
        if meta.size is not None and len(str(number).lstrip("-")) > meta.size:
            return ConversionResult(number, Diagnostics.warning(self.message(ROUNDED, meta, number)))
        return ConversionResult(number)

    @staticmethod
    def parse(value: str) -> int | Decimal | None:
        try:
            number = Decimal(value)
        except InvalidOperation:
            return None
        if not number.is_finite():
            return None
        if len(value) <= 30 and "." not in value and "e" not in value.lower():
            return int(number)
        return number

    @staticmethod
    def integral_digits(number: int | Decimal) -> int:
        """Digit count of the integral part, sign excluded, at least 1."""
        magnitude = abs(Decimal(number))
        if magnitude < 1:
            return 1
        return magnitude.adjusted() + 1


class ToDate(ValueConverter):

    def convert_text(self, meta: MetaColumn, value: str) -> ConversionResult:
        if not meta.is_date():
            return ConversionResult(None)
        parsed = parse_timestamp(value) or parse_day(value)
        if parsed is None:
            return ConversionResult(None, Diagnostics.warning(self.message(NOT_A_DATE, meta, value)))
        return ConversionResult(self.narrow(meta, parsed))

    @staticmethod
    def narrow(meta: MetaColumn, parsed: datetime) -> date | datetime:
        return parsed if meta.is_timestamp() else parsed.date()


class ToTimestamp(ValueConverter):

    def convert_text(self, meta: MetaColumn, value: str) -> ConversionResult:
        if not meta.is_timestamp():
            return ConversionResult(None)
        parsed = parse_timestamp(value)
        if parsed is None:
            return ConversionResult(None, Diagnostics.warning(self.message(NOT_A_TIMESTAMP, meta, value)))
        return ConversionResult(parsed)
