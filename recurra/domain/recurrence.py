"""Recurrence pattern validation and construction.

The expense layer stores a recurrence pattern as a flat set of fields. This
module checks those fields against the rules for their frequency and turns
them into the matching pattern variant.
"""

import calendar
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Any, Mapping, Optional, Union

from recurra.domain.errors import InvalidPatternError
from recurra.domain.models import (
    DailyPattern,
    Frequency,
    MonthlyDayPattern,
    MonthlyRecurrenceType,
    MonthlyWeekdayPattern,
    QuarterlyPattern,
    RecurrencePattern,
    WeeklyPattern,
    YearlyPattern,
)


@dataclass(frozen=True, slots=True)
class ValidationError:
    """A single rule violation on one pattern field."""

    field: str
    message: str

    def __str__(self) -> str:
        return f"{self.field}: {self.message}"


# Fields each variant needs, keyed by (frequency, monthly type)
REQUIRED_FIELDS: dict[tuple[Frequency, Optional[MonthlyRecurrenceType]], tuple[str, ...]] = {
    (Frequency.DAILY, None): (),
    (Frequency.WEEKLY, None): ("day_of_week",),
    (Frequency.MONTHLY, MonthlyRecurrenceType.DAY_OF_MONTH): ("day_of_month",),
    (Frequency.MONTHLY, MonthlyRecurrenceType.DAY_OF_WEEK): ("week_of_month", "day_of_week"),
    (Frequency.QUARTERLY, None): ("day_of_month",),
    (Frequency.YEARLY, None): ("month_of_year", "day_of_month"),
}

# Inclusive bounds for integer fields
FIELD_RANGES: dict[str, tuple[int, int]] = {
    "day_of_week": (0, 6),  # 0 = Sunday
    "day_of_month": (1, 31),
    "week_of_month": (1, 5),  # 5 = last week
    "month_of_year": (1, 12),
}

# Leap year, so February allows the 29th
_LEAP_YEAR = 2000


def validate(pattern: Union[RecurrencePattern, Mapping[str, Any]]) -> list[ValidationError]:
    """Check a pattern against the rules for its frequency.

    Args:
        pattern: A pattern variant, or the flat field mapping stored by the
                 expense layer

    Returns:
        List of violations; empty if the pattern is valid

    Example:
        >>> validate({"frequency": "weekly", "start_date": "2024-01-05"})
        [ValidationError(field='day_of_week', message='required for weekly recurrence')]
    """
    if isinstance(pattern, RecurrencePattern):
        pattern = pattern.to_fields()
    _, errors = _normalize(pattern)
    return errors


def build_pattern(fields: Mapping[str, Any]) -> RecurrencePattern:
    """Validate stored fields and build the matching pattern variant.

    Args:
        fields: Flat field mapping (``frequency``, ``start_date``, ...)

    Returns:
        RecurrencePattern variant for the frequency

    Raises:
        InvalidPatternError: If any rule is violated
    """
    values, errors = _normalize(fields)
    if errors:
        raise InvalidPatternError(errors)

    common = {
        "start_date": values["start_date"],
        "end_date": values.get("end_date"),
        "reminder_days": values.get("reminder_days"),
    }
    frequency = values["frequency"]

    if frequency == Frequency.DAILY:
        return DailyPattern(time_of_day=values.get("time_of_day"), **common)
    if frequency == Frequency.WEEKLY:
        return WeeklyPattern(day_of_week=values["day_of_week"], **common)
    if frequency == Frequency.MONTHLY:
        if values["monthly_recurrence_type"] == MonthlyRecurrenceType.DAY_OF_MONTH:
            return MonthlyDayPattern(day_of_month=values["day_of_month"], **common)
        return MonthlyWeekdayPattern(
            week_of_month=values["week_of_month"],
            day_of_week=values["day_of_week"],
            **common,
        )
    if frequency == Frequency.QUARTERLY:
        return QuarterlyPattern(day_of_month=values["day_of_month"], **common)
    return YearlyPattern(
        month_of_year=values["month_of_year"],
        day_of_month=values["day_of_month"],
        **common,
    )


def _normalize(fields: Mapping[str, Any]) -> tuple[dict[str, Any], list[ValidationError]]:
    """Coerce raw field values and collect every rule violation."""
    errors: list[ValidationError] = []
    values: dict[str, Any] = {}

    frequency = _parse_enum(Frequency, fields.get("frequency"))
    if frequency is None:
        errors.append(ValidationError("frequency", _enum_message(Frequency, fields.get("frequency"))))
    values["frequency"] = frequency

    monthly_type = None
    if frequency == Frequency.MONTHLY:
        monthly_type = _parse_enum(MonthlyRecurrenceType, fields.get("monthly_recurrence_type"))
        if monthly_type is None:
            errors.append(
                ValidationError(
                    "monthly_recurrence_type",
                    _enum_message(MonthlyRecurrenceType, fields.get("monthly_recurrence_type")),
                )
            )
    values["monthly_recurrence_type"] = monthly_type

    for name in ("start_date", "end_date"):
        raw = fields.get(name)
        if raw is None:
            values[name] = None
            continue
        parsed = _parse_date(raw)
        if parsed is None:
            errors.append(ValidationError(name, f"not a valid date: {raw!r}"))
        values[name] = parsed

    if fields.get("start_date") is None:
        errors.append(ValidationError("start_date", "required"))

    start, end = values["start_date"], values["end_date"]
    if start is not None and end is not None and end <= start:
        errors.append(ValidationError("end_date", "must be after start_date"))

    for name, (low, high) in FIELD_RANGES.items():
        raw = fields.get(name)
        if raw is None:
            values[name] = None
            continue
        number = _parse_int(raw)
        if number is None:
            errors.append(ValidationError(name, f"must be an integer, got {raw!r}"))
        elif not low <= number <= high:
            errors.append(ValidationError(name, f"must be between {low} and {high}"))
            number = None
        values[name] = number

    raw_reminder = fields.get("reminder_days")
    values["reminder_days"] = None
    if raw_reminder is not None:
        reminder = _parse_int(raw_reminder)
        if reminder is None or reminder < 0:
            errors.append(ValidationError("reminder_days", "must be a non-negative integer"))
        else:
            values["reminder_days"] = reminder

    raw_time = fields.get("time_of_day")
    values["time_of_day"] = None
    if raw_time is not None:
        parsed_time = _parse_time(raw_time)
        if parsed_time is None:
            errors.append(ValidationError("time_of_day", f"not a valid time: {raw_time!r}"))
        values["time_of_day"] = parsed_time

    required = REQUIRED_FIELDS.get((frequency, monthly_type), ())
    for name in required:
        if fields.get(name) is None:
            errors.append(ValidationError(name, f"required for {_describe(frequency, monthly_type)} recurrence"))

    if frequency == Frequency.YEARLY:
        month, day = values.get("month_of_year"), values.get("day_of_month")
        if month is not None and day is not None:
            longest = calendar.monthrange(_LEAP_YEAR, month)[1]
            if day > longest:
                errors.append(
                    ValidationError(
                        "day_of_month",
                        f"{calendar.month_name[month]} never has {day} days",
                    )
                )

    return values, errors


def _describe(frequency: Optional[Frequency], monthly_type: Optional[MonthlyRecurrenceType]) -> str:
    if frequency is None:
        return "this"
    if monthly_type is not None:
        return f"{frequency.value} ({monthly_type.value})"
    return frequency.value


def _enum_message(enum_cls: type, raw: Any) -> str:
    allowed = ", ".join(member.value for member in enum_cls)
    if raw is None:
        return f"required (one of {allowed})"
    return f"unknown value {raw!r} (one of {allowed})"


def _parse_enum(enum_cls: type, raw: Any) -> Any:
    if isinstance(raw, enum_cls):
        return raw
    try:
        return enum_cls(raw)
    except ValueError:
        return None


def _parse_date(raw: Any) -> Optional[date]:
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    if isinstance(raw, str):
        try:
            return date.fromisoformat(raw[:10])
        except ValueError:
            return None
    return None


def _parse_time(raw: Any) -> Optional[time]:
    if isinstance(raw, time):
        return raw
    if isinstance(raw, str):
        try:
            return time.fromisoformat(raw)
        except ValueError:
            return None
    return None


def _parse_int(raw: Any) -> Optional[int]:
    # bool is an int subclass but never a valid field value
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    if not isinstance(raw, str):
        return None
    try:
        return int(raw.strip())
    except ValueError:
        return None
