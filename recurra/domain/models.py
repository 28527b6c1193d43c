"""Domain models for the Recurra occurrence engine.

All models are immutable (frozen dataclasses). Recurrence patterns are a
tagged union keyed by frequency: each variant only carries the fields its
frequency needs.
"""

from dataclasses import asdict, dataclass, field
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any, ClassVar, Optional, Union
from uuid import UUID, uuid4


class Frequency(Enum):
    """Recurrence frequency of a recurring expense."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class MonthlyRecurrenceType(Enum):
    """Disambiguates the two monthly variants."""

    DAY_OF_MONTH = "day_of_month"  # e.g. the 15th
    DAY_OF_WEEK = "day_of_week"  # e.g. the last Monday


class OccurrenceStatus(Enum):
    """Tracking status of a single occurrence."""

    PENDING = "pending"
    COMPLETED = "completed"
    SKIPPED = "skipped"


@dataclass(frozen=True, slots=True, kw_only=True)
class RecurrencePattern:
    """Fields shared by every recurrence variant.

    Not instantiated directly; use one of the frequency variants below or
    build one from stored fields with ``recurra.domain.recurrence.build_pattern``.
    Construction validates the pattern and raises InvalidPatternError.
    """

    frequency: ClassVar[Frequency]

    start_date: date
    end_date: Optional[date] = None
    reminder_days: Optional[int] = None  # Advisory only

    def __post_init__(self) -> None:
        """Validate pattern data."""
        from recurra.domain.errors import InvalidPatternError
        from recurra.domain.recurrence import validate

        errors = validate(self.to_fields())
        if errors:
            raise InvalidPatternError(errors)

    @property
    def monthly_recurrence_type(self) -> Optional[MonthlyRecurrenceType]:
        return None

    def to_fields(self) -> dict[str, Any]:
        """Flatten into the field mapping the expense layer stores.

        Returns:
            Dict with ``frequency`` plus every field of this variant
        """
        fields = {
            "frequency": self.frequency.value,
            "start_date": self.start_date,
            "end_date": self.end_date,
            "reminder_days": self.reminder_days,
        }
        fields.update(self._variant_fields())
        return fields

    def _variant_fields(self) -> dict[str, Any]:
        return {}


@dataclass(frozen=True, slots=True, kw_only=True)
class DailyPattern(RecurrencePattern):
    """Recurs every day. ``time_of_day`` is metadata, never used in date math."""

    frequency: ClassVar[Frequency] = Frequency.DAILY

    time_of_day: Optional[time] = None

    def _variant_fields(self) -> dict[str, Any]:
        return {"time_of_day": self.time_of_day}


@dataclass(frozen=True, slots=True, kw_only=True)
class WeeklyPattern(RecurrencePattern):
    """Recurs on one weekday every week (Sunday=0 .. Saturday=6)."""

    frequency: ClassVar[Frequency] = Frequency.WEEKLY

    day_of_week: int

    def _variant_fields(self) -> dict[str, Any]:
        return {"day_of_week": self.day_of_week}


@dataclass(frozen=True, slots=True, kw_only=True)
class MonthlyDayPattern(RecurrencePattern):
    """Recurs on a fixed day of every month, clamped in shorter months."""

    frequency: ClassVar[Frequency] = Frequency.MONTHLY

    day_of_month: int

    @property
    def monthly_recurrence_type(self) -> Optional[MonthlyRecurrenceType]:
        return MonthlyRecurrenceType.DAY_OF_MONTH

    def _variant_fields(self) -> dict[str, Any]:
        return {
            "monthly_recurrence_type": MonthlyRecurrenceType.DAY_OF_MONTH.value,
            "day_of_month": self.day_of_month,
        }


@dataclass(frozen=True, slots=True, kw_only=True)
class MonthlyWeekdayPattern(RecurrencePattern):
    """Recurs on the Nth weekday of every month (week_of_month 5 = last)."""

    frequency: ClassVar[Frequency] = Frequency.MONTHLY

    week_of_month: int
    day_of_week: int

    @property
    def monthly_recurrence_type(self) -> Optional[MonthlyRecurrenceType]:
        return MonthlyRecurrenceType.DAY_OF_WEEK

    @property
    def is_last_week(self) -> bool:
        return self.week_of_month == 5

    def _variant_fields(self) -> dict[str, Any]:
        return {
            "monthly_recurrence_type": MonthlyRecurrenceType.DAY_OF_WEEK.value,
            "week_of_month": self.week_of_month,
            "day_of_week": self.day_of_week,
        }


@dataclass(frozen=True, slots=True, kw_only=True)
class QuarterlyPattern(RecurrencePattern):
    """Recurs every three months on a fixed day, in phase with start_date."""

    frequency: ClassVar[Frequency] = Frequency.QUARTERLY

    day_of_month: int

    def _variant_fields(self) -> dict[str, Any]:
        return {"day_of_month": self.day_of_month}


@dataclass(frozen=True, slots=True, kw_only=True)
class YearlyPattern(RecurrencePattern):
    """Recurs once a year on month_of_year/day_of_month.

    Feb 29 is allowed and falls on Feb 28 in non-leap years.
    """

    frequency: ClassVar[Frequency] = Frequency.YEARLY

    month_of_year: int
    day_of_month: int

    def _variant_fields(self) -> dict[str, Any]:
        return {
            "month_of_year": self.month_of_year,
            "day_of_month": self.day_of_month,
        }


@dataclass(frozen=True, slots=True)
class DateRange:
    """Inclusive calendar date range."""

    start: date
    end: date

    def __post_init__(self) -> None:
        """Validate range bounds."""
        if self.end < self.start:
            raise ValueError("Range end cannot be before range start")

    def contains(self, day: date) -> bool:
        """Check if a date falls within the range (inclusive)."""
        return self.start <= day <= self.end


@dataclass(frozen=True, slots=True)
class RecurringExpense:
    """Read model of a recurring expense owned by the expense layer.

    The engine never writes these; it only reads the fields it needs to
    generate occurrences and to mirror them into concrete expenses.
    ``recurrence`` holds the stored pattern fields as-is, so an expense with
    a broken pattern can still be loaded and reported on its own.
    """

    id: UUID
    item_name: str
    category: str  # "fixed" or "variable"
    total_amount: Decimal
    recurrence: dict[str, Any]
    description: Optional[str] = None
    quantity: Decimal = Decimal("1")
    unit_cost: Optional[Decimal] = None
    created_by: Optional[str] = None

    def __post_init__(self) -> None:
        """Validate expense data."""
        if self.total_amount <= 0:
            raise ValueError("Amount must be positive")

        if not self.item_name.strip():
            raise ValueError("Item name cannot be empty")

    @property
    def pattern(self) -> RecurrencePattern:
        """Recurrence pattern built from the stored fields.

        Raises:
            InvalidPatternError: If the stored fields are not a valid pattern
        """
        from recurra.domain.recurrence import build_pattern

        return build_pattern(self.recurrence)

    @classmethod
    def create(
        cls,
        item_name: str,
        category: str,
        total_amount: Decimal,
        pattern: Union[RecurrencePattern, dict[str, Any]],
        **kwargs: Any,
    ) -> "RecurringExpense":
        """Factory method with a fresh ID.

        Args:
            item_name: Name of the expense item
            category: Expense category ("fixed" or "variable")
            total_amount: Amount due on every occurrence
            pattern: Recurrence pattern, or raw stored pattern fields
            **kwargs: Optional fields (description, quantity, unit_cost, created_by)

        Returns:
            New RecurringExpense instance

        Example:
            >>> expense = RecurringExpense.create(
            ...     item_name="Office rent",
            ...     category="fixed",
            ...     total_amount=Decimal("1200.00"),
            ...     pattern=MonthlyDayPattern(start_date=date(2024, 1, 1), day_of_month=1),
            ... )
        """
        recurrence = pattern.to_fields() if isinstance(pattern, RecurrencePattern) else dict(pattern)
        return cls(
            id=uuid4(),
            item_name=item_name,
            category=category,
            total_amount=total_amount,
            recurrence=recurrence,
            **kwargs,
        )


@dataclass(frozen=True, slots=True)
class Occurrence:
    """One datable instance of a recurring expense.

    ``(parent_expense_id, occurrence_date)`` is unique. ``linked_expense_id``
    is only ever set once, on completion, and survives a reset to pending.
    """

    id: UUID
    parent_expense_id: UUID
    occurrence_date: date
    status: OccurrenceStatus = OccurrenceStatus.PENDING
    linked_expense_id: Optional[UUID] = None
    completed_date: Optional[datetime] = None
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: Optional[datetime] = None

    @property
    def key(self) -> tuple[UUID, date]:
        """Uniqueness key of this occurrence."""
        return (self.parent_expense_id, self.occurrence_date)

    def with_updates(self, **changes: Any) -> "Occurrence":
        """Create new instance with updated fields.

        Args:
            **changes: Field names and new values

        Returns:
            New Occurrence instance with updates applied and updated_at refreshed
        """
        current = asdict(self)
        current.update(changes)
        current["updated_at"] = datetime.now()
        return Occurrence(**current)

    @classmethod
    def create(cls, parent_expense_id: UUID, occurrence_date: date) -> "Occurrence":
        """Factory method for a new pending occurrence.

        Args:
            parent_expense_id: ID of the owning recurring expense
            occurrence_date: Date this instance is due

        Returns:
            New Occurrence with PENDING status
        """
        return cls(
            id=uuid4(),
            parent_expense_id=parent_expense_id,
            occurrence_date=occurrence_date,
        )


@dataclass(frozen=True, slots=True)
class ExpenseTemplate:
    """Everything the expense service needs to record a completed occurrence.

    Mirrors the parent recurring expense and adds a single full payment.
    """

    item_name: str
    category: str
    total_amount: Decimal
    expense_date: date
    payment_date: date  # Same as expense_date for completed occurrences
    parent_recurring_expense_id: UUID
    payment_method: str = "auto_payment"
    payment_notes: Optional[str] = None
    description: Optional[str] = None
    quantity: Decimal = Decimal("1")
    unit_cost: Optional[Decimal] = None
    created_by: Optional[str] = None

    @classmethod
    def from_occurrence(
        cls,
        expense: RecurringExpense,
        occurrence: Occurrence,
        payment_method: str = "auto_payment",
        payment_notes: Optional[str] = None,
    ) -> "ExpenseTemplate":
        """Build a template for the expense created when an occurrence completes."""
        return cls(
            item_name=expense.item_name,
            category=expense.category,
            total_amount=expense.total_amount,
            expense_date=occurrence.occurrence_date,
            payment_date=occurrence.occurrence_date,
            parent_recurring_expense_id=expense.id,
            payment_method=payment_method,
            payment_notes=payment_notes,
            description=expense.description,
            quantity=expense.quantity,
            unit_cost=expense.unit_cost if expense.unit_cost is not None else expense.total_amount,
            created_by=expense.created_by,
        )


@dataclass(frozen=True, slots=True)
class LifecycleResult:
    """Outcome of a status transition."""

    occurrence: Occurrence
    status: OccurrenceStatus
    summary: str
    linked_expense_id: Optional[UUID] = None
    created_expense: bool = False  # False when an existing link was returned


@dataclass(frozen=True, slots=True)
class GenerationError:
    """A single expense's failure during a batch generation run."""

    expense_id: UUID
    error: str


@dataclass(frozen=True, slots=True)
class GenerationResult:
    """Outcome of a batch generation run."""

    generated: list[Occurrence] = field(default_factory=list)
    errors: list[GenerationError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


@dataclass(frozen=True, slots=True)
class Reminder:
    """An upcoming occurrence the expense owner asked to be reminded about."""

    expense_id: UUID
    occurrence_date: date
    days_until: int
    message: str
    created_by: Optional[str] = None
