"""
Guardrails for compiled queries.

Hard limits enforced regardless of caller intent: the span of the
date range and the number of rows a query may return.
"""

import re
from dataclasses import dataclass
from datetime import date

from packages.core.query_plan.models import DateRange
from packages.core.semantic_compiler.errors import CompilerError, CompilerErrorCode

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


@dataclass(frozen=True)
class CheckedDateRange:
    """A date range that passed the span guardrail."""

    start: date
    end: date

    @property
    def days(self) -> int:
        """Inclusive number of calendar days covered."""
        return (self.end - self.start).days + 1


def parse_calendar_date(value: str, label: str) -> date:
    """
    Parse a ``YYYY-MM-DD`` calendar date.

    Raises:
        CompilerError: INVALID_DATE_RANGE if the value is not a real date.
    """
    if not isinstance(value, str) or not _ISO_DATE.match(value):
        raise CompilerError(
            CompilerErrorCode.INVALID_DATE_RANGE,
            f"Invalid {label} date '{value}': expected YYYY-MM-DD",
        )
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise CompilerError(
            CompilerErrorCode.INVALID_DATE_RANGE,
            f"Invalid {label} date '{value}': {exc}",
        ) from exc


def check_date_range(date_range: DateRange, max_days: int) -> CheckedDateRange:
    """
    Validate a date range against the span guardrail.

    Args:
        date_range: Caller-supplied range with raw string bounds.
        max_days: Largest inclusive span allowed.

    Returns:
        The parsed range.

    Raises:
        CompilerError: INVALID_DATE_RANGE for unparsable or inverted bounds,
            DATE_RANGE_TOO_LARGE when the span exceeds ``max_days``.
    """
    start = parse_calendar_date(date_range.start, "start")
    end = parse_calendar_date(date_range.end, "end")

    if end < start:
        raise CompilerError(
            CompilerErrorCode.INVALID_DATE_RANGE,
            f"Date range end {end.isoformat()} is before start {start.isoformat()}",
        )

    checked = CheckedDateRange(start=start, end=end)
    if checked.days > max_days:
        raise CompilerError(
            CompilerErrorCode.DATE_RANGE_TOO_LARGE,
            f"Date range spans {checked.days} days; narrow it to {max_days} days or fewer",
        )
    return checked


def clamp_limit(requested: int | None, default: int, ceiling: int) -> int:
    """Resolve the effective row limit: default when unset, within [1, ceiling]."""
    if requested is None:
        return min(default, ceiling)
    return max(1, min(requested, ceiling))
