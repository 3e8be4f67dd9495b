"""Parsing of textual filter values into typed query values.

Filter values arrive as strings. Depending on the parameter's declared type
a value is parsed into a scalar (enum member name, boolean, number, UUID,
date or the literal string) or, when it uses the ``lower..upper`` syntax,
into :class:`RangeBounds`. A leading ``!`` negates a value.
"""

import calendar
import re
import uuid
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from math import isfinite

from .exceptions import InvalidFilterValueError
from .parameters import SearchParameter, ValueType
from .predicates import TypedValue

RANGE_SEPARATOR = ".."
WILDCARD = "*"
NEGATION_PREFIX = "!"

_PARTIAL_DATE = re.compile(r"^(\d{4})(?:-(\d{1,2})(?:-(\d{1,2}))?)?$")
_TRUE_VALUES = {"true"}
_FALSE_VALUES = {"false"}


@dataclass(frozen=True)
class RangeBounds:
    """Inclusive range bounds; None means unbounded."""

    lower: TypedValue | None = None
    upper: TypedValue | None = None


@dataclass(frozen=True)
class ParsedValue:
    """A parsed filter value and whether it was negated."""

    value: TypedValue | RangeBounds
    negated: bool = False

    @property
    def is_range(self) -> bool:
        return isinstance(self.value, RangeBounds)


def is_range(value: str) -> bool:
    """Check whether a raw value uses the range syntax."""
    return value.count(RANGE_SEPARATOR) == 1


def _normalize_enum_literal(value: str) -> str:
    return re.sub(r"[\s\-]+", "_", value.strip()).upper()


def lookup_enum(vocabulary: type[Enum], value: str) -> Enum | None:
    """Find an enum member by name or value, tolerating case, blanks and dashes."""
    wanted = _normalize_enum_literal(value)
    for member in vocabulary:
        if member.name.upper() == wanted:
            return member
        if isinstance(member.value, str) and (
            _normalize_enum_literal(member.value) == wanted
        ):
            return member
    return None


def parse_partial_date(value: str, upper: bool = False) -> date:
    """Parse an ISO date that may omit the month or day.

    A missing month or day is filled with the first day of the period, or
    with the last day when ``upper`` is set, so that ``2010`` as an upper
    bound means 2010-12-31.

    Raises:
        ValueError: If the value is not a valid (partial) ISO date
    """
    match = _PARTIAL_DATE.match(value.strip())
    if not match:
        parsed = datetime.fromisoformat(value.strip())
        return parsed.date()

    year = int(match.group(1))
    month = match.group(2)
    day = match.group(3)

    if month is None:
        return date(year, 12, 31) if upper else date(year, 1, 1)

    month_number = int(month)
    if day is None:
        if not 1 <= month_number <= 12:
            raise ValueError(f"month must be in 1..12, not {month_number}")
        last_day = calendar.monthrange(year, month_number)[1]
        return date(year, month_number, last_day if upper else 1)

    return date(year, month_number, int(day))


def _date_precision(value: str) -> int:
    """Number of date components given (1: year, 2: year-month, 3: full)."""
    match = _PARTIAL_DATE.match(value.strip())
    if not match:
        return 3
    return 3 - [match.group(2), match.group(3)].count(None)


class ValueParser:
    """Converts raw filter values into typed values or range bounds."""

    def parse_filter(
        self, raw: str, parameter: SearchParameter, date_field: bool = False
    ) -> ParsedValue:
        """Parse a raw filter value, honouring the negation prefix.

        Args:
            raw: Raw filter value, optionally prefixed with ``!``
            parameter: Parameter the value belongs to
            date_field: Whether the backing field holds dates

        Returns:
            The parsed value with its negation flag

        Raises:
            InvalidFilterValueError: If the value does not match the type
        """
        negated = raw.startswith(NEGATION_PREFIX)
        if negated:
            raw = raw[len(NEGATION_PREFIX) :]
        return ParsedValue(self.parse(raw, parameter, date_field), negated)

    def parse(
        self, raw: str, parameter: SearchParameter, date_field: bool = False
    ) -> TypedValue | RangeBounds:
        """Parse a raw value into a typed value or range bounds.

        Ranges are recognised for numeric and date parameters. A single
        year or year-month date widens to the range covering that period;
        a full date stays a single value.

        Raises:
            InvalidFilterValueError: If the value does not match the type
        """
        value_type = parameter.value_type
        is_date = date_field or value_type == ValueType.DATE

        if (is_date or value_type.is_numeric) and is_range(raw):
            lower, upper = raw.split(RANGE_SEPARATOR)
            return RangeBounds(
                self._parse_bound(lower, parameter, is_date, upper=False),
                self._parse_bound(upper, parameter, is_date, upper=True),
            )

        if is_date:
            return self._parse_single_date(raw, parameter)

        return self.parse_scalar(raw, parameter)

    def parse_scalar(self, raw: str, parameter: SearchParameter) -> TypedValue:
        """Parse a non-range value according to the parameter's type."""
        value_type = parameter.value_type

        try:
            if value_type == ValueType.ENUM and parameter.vocabulary is not None:
                member = lookup_enum(parameter.vocabulary, raw)
                if member is None:
                    raise ValueError(f"not a {parameter.vocabulary.__name__} member")
                return member.name

            if value_type == ValueType.BOOLEAN:
                normalized = raw.strip().lower()
                if normalized in _TRUE_VALUES:
                    return True
                if normalized in _FALSE_VALUES:
                    return False
                raise ValueError("expected true or false")

            if value_type in (ValueType.INTEGER, ValueType.LONG):
                return int(raw.strip())

            if value_type in (ValueType.DOUBLE, ValueType.FLOAT):
                number = float(raw.strip())
                if not isfinite(number):
                    raise ValueError("expected a finite number")
                return number

            if value_type == ValueType.UUID:
                return str(uuid.UUID(raw.strip()))

        except ValueError as e:
            raise InvalidFilterValueError(parameter.name, raw, str(e)) from e

        return raw

    def _parse_bound(
        self, raw: str, parameter: SearchParameter, is_date: bool, upper: bool
    ) -> TypedValue | None:
        raw = raw.strip()
        if not raw or raw == WILDCARD:
            return None
        if not is_date:
            return self.parse_scalar(raw, parameter)
        try:
            return parse_partial_date(raw, upper=upper)
        except ValueError as e:
            raise InvalidFilterValueError(parameter.name, raw, str(e)) from e

    def _parse_single_date(
        self, raw: str, parameter: SearchParameter
    ) -> date | RangeBounds:
        try:
            lower = parse_partial_date(raw, upper=False)
            if _date_precision(raw) == 3:
                return lower
            return RangeBounds(lower, parse_partial_date(raw, upper=True))
        except ValueError as e:
            raise InvalidFilterValueError(parameter.name, raw, str(e)) from e
