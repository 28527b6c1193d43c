"""Next-occurrence date calculation for recurrence patterns.

Pure functions: a pattern plus a reference date always yields the same date.
"Next" is strictly after the reference date. Month-based frequencies clamp
the target day to the last day of shorter months.
"""

import calendar
from datetime import date, timedelta
from typing import Any, Mapping, Union

from dateutil.relativedelta import relativedelta

from recurra.domain.errors import OutOfRangeError
from recurra.domain.models import (
    DailyPattern,
    MonthlyDayPattern,
    MonthlyWeekdayPattern,
    QuarterlyPattern,
    RecurrencePattern,
    WeeklyPattern,
    YearlyPattern,
)
from recurra.domain.recurrence import build_pattern

PatternLike = Union[RecurrencePattern, Mapping[str, Any]]


def weekday_index(day: date) -> int:
    """Weekday of a date with Sunday=0 .. Saturday=6."""
    return (day.weekday() + 1) % 7


def clamped_date(year: int, month: int, day: int) -> date:
    """Build a date, lowering the day to the month's last day if needed.

    Example:
        >>> clamped_date(2024, 4, 31)
        datetime.date(2024, 4, 30)
    """
    last = calendar.monthrange(year, month)[1]
    return date(year, month, min(day, last))


def nth_weekday(year: int, month: int, day_of_week: int, week_of_month: int) -> date:
    """Resolve the Nth given weekday of a month.

    Args:
        year: Calendar year
        month: Calendar month (1-12)
        day_of_week: Weekday with Sunday=0
        week_of_month: 1-4 for first..fourth, 5 for the last one in the month

    Returns:
        The matching date. Week 5 is the latest matching date in the month,
        which is the 4th occurrence in months that only have four.
    """
    if week_of_month == 5:
        last = date(year, month, calendar.monthrange(year, month)[1])
        return last - timedelta(days=(weekday_index(last) - day_of_week) % 7)

    first = date(year, month, 1)
    offset = (day_of_week - weekday_index(first)) % 7
    return first + timedelta(days=offset + 7 * (week_of_month - 1))


def compute_next(pattern: PatternLike, after: date) -> date:
    """Calculate the next occurrence strictly after a reference date.

    Args:
        pattern: Pattern variant, or stored fields to validate and build one from
        after: Reference date (usually the previous occurrence)

    Returns:
        Next occurrence date, never before ``pattern.start_date``

    Raises:
        InvalidPatternError: If the pattern fails validation
        OutOfRangeError: If the next date falls after ``pattern.end_date``

    Example:
        >>> weekly = WeeklyPattern(start_date=date(2024, 1, 5), day_of_week=5)
        >>> compute_next(weekly, date(2024, 1, 5))
        datetime.date(2024, 1, 12)
    """
    pattern = _as_pattern(pattern)
    candidate = _advance(pattern, after)

    if candidate < pattern.start_date:
        candidate = _on_or_after(pattern, pattern.start_date)

    _check_end(pattern, candidate)
    return candidate


def first_on_or_after(pattern: PatternLike, day: date) -> date:
    """Find the earliest occurrence on or after a date.

    Used to seed a walk over a window: the seed itself counts when it is a
    valid occurrence, unlike ``compute_next``.

    Args:
        pattern: Pattern variant, or stored fields to validate and build one from
        day: Earliest acceptable date (raised to ``pattern.start_date`` if earlier)

    Returns:
        First occurrence date >= max(day, start_date)

    Raises:
        InvalidPatternError: If the pattern fails validation
        OutOfRangeError: If that date falls after ``pattern.end_date``
    """
    pattern = _as_pattern(pattern)
    candidate = _on_or_after(pattern, max(day, pattern.start_date))
    _check_end(pattern, candidate)
    return candidate


def _as_pattern(pattern: PatternLike) -> RecurrencePattern:
    if isinstance(pattern, RecurrencePattern):
        return pattern
    return build_pattern(pattern)


def _check_end(pattern: RecurrencePattern, candidate: date) -> None:
    if pattern.end_date is not None and candidate > pattern.end_date:
        raise OutOfRangeError(pattern.end_date, candidate)


def _advance(pattern: RecurrencePattern, after: date) -> date:
    """Next date strictly after ``after``, ignoring start and end bounds."""
    if isinstance(pattern, DailyPattern):
        return after + timedelta(days=1)

    if isinstance(pattern, WeeklyPattern):
        days = (pattern.day_of_week - weekday_index(after)) % 7
        return after + timedelta(days=days or 7)

    month_start = after.replace(day=1)

    if isinstance(pattern, MonthlyDayPattern):
        target = month_start + relativedelta(months=1)
        return clamped_date(target.year, target.month, pattern.day_of_month)

    if isinstance(pattern, MonthlyWeekdayPattern):
        target = month_start + relativedelta(months=1)
        return nth_weekday(target.year, target.month, pattern.day_of_week, pattern.week_of_month)

    if isinstance(pattern, QuarterlyPattern):
        target = month_start + relativedelta(months=3)
        return clamped_date(target.year, target.month, pattern.day_of_month)

    if isinstance(pattern, YearlyPattern):
        return clamped_date(after.year + 1, pattern.month_of_year, pattern.day_of_month)

    raise ValueError(f"Unknown pattern type: {type(pattern).__name__}")


def _on_or_after(pattern: RecurrencePattern, day: date) -> date:
    """Earliest date >= ``day`` matching the pattern, ignoring the end bound."""
    if isinstance(pattern, DailyPattern):
        return day

    if isinstance(pattern, WeeklyPattern):
        return day + timedelta(days=(pattern.day_of_week - weekday_index(day)) % 7)

    if isinstance(pattern, MonthlyDayPattern):
        candidate = clamped_date(day.year, day.month, pattern.day_of_month)
        return candidate if candidate >= day else _advance(pattern, day)

    if isinstance(pattern, MonthlyWeekdayPattern):
        candidate = nth_weekday(day.year, day.month, pattern.day_of_week, pattern.week_of_month)
        return candidate if candidate >= day else _advance(pattern, day)

    if isinstance(pattern, QuarterlyPattern):
        # Only months in phase with the start month are due
        behind = (day.month - pattern.start_date.month) % 3
        month_start = day.replace(day=1) + relativedelta(months=(3 - behind) % 3)
        candidate = clamped_date(month_start.year, month_start.month, pattern.day_of_month)
        return candidate if candidate >= day else _advance(pattern, candidate)

    if isinstance(pattern, YearlyPattern):
        candidate = clamped_date(day.year, pattern.month_of_year, pattern.day_of_month)
        return candidate if candidate >= day else _advance(pattern, day)

    raise ValueError(f"Unknown pattern type: {type(pattern).__name__}")
