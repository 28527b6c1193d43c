"""Occurrence generation for recurring expenses.

Walks a recurrence pattern over a date window and stores a pending
occurrence for every due date that does not have one yet. Safe to run
repeatedly over overlapping windows.
"""

import logging
from datetime import date
from typing import Optional
from uuid import UUID

from recurra.data.repository import OccurrenceStore
from recurra.domain.errors import InvalidPatternError, OutOfRangeError
from recurra.domain.models import DateRange, Occurrence, RecurrencePattern, RecurringExpense
from recurra.domain.recurrence import validate
from recurra.services.calculator import compute_next, first_on_or_after
from recurra.services.locks import KeyedLock

logger = logging.getLogger(__name__)


class OccurrenceGenerator:
    """Materializes occurrences for one recurring expense at a time.

    Runs for the same expense are serialized in this process, so two
    overlapping windows cannot race on a date. The store's own uniqueness
    guard covers runs in other processes.

    Example:
        >>> generator = OccurrenceGenerator(store)
        >>> window = DateRange(date(2024, 3, 1), date(2024, 3, 31))
        >>> created = await generator.generate(expense, window)
    """

    def __init__(self, store: OccurrenceStore, max_occurrences_per_run: int = 1000):
        self._store = store
        self._max_per_run = max_occurrences_per_run
        self._locks = KeyedLock()

    def due_dates(self, pattern: RecurrencePattern, window: DateRange) -> list[date]:
        """List the dates a pattern is due within a window.

        Args:
            pattern: Recurrence pattern
            window: Inclusive date range

        Returns:
            Due dates in ascending order (may be empty)
        """
        stop = window.end
        if pattern.end_date is not None:
            stop = min(stop, pattern.end_date)

        dates: list[date] = []
        try:
            current = first_on_or_after(pattern, max(pattern.start_date, window.start))
            while current <= stop:
                if len(dates) >= self._max_per_run:
                    logger.warning(
                        f"Stopped after {self._max_per_run} dates in window "
                        f"{window.start.isoformat()}..{window.end.isoformat()}"
                    )
                    break
                dates.append(current)
                current = compute_next(pattern, current)
        except OutOfRangeError:
            # Pattern ended inside the window
            pass

        return dates

    async def generate(
        self,
        expense: RecurringExpense,
        window: DateRange,
        pattern: Optional[RecurrencePattern] = None,
    ) -> list[Occurrence]:
        """Create missing pending occurrences for an expense within a window.

        Existing occurrences are never modified, whatever their status.

        Args:
            expense: Recurring expense that owns the occurrences
            window: Inclusive date range to cover
            pattern: Pattern to use instead of the expense's stored one

        Returns:
            Newly created occurrences; empty if nothing was due

        Raises:
            InvalidPatternError: If the pattern fails validation (nothing is written)
        """
        if pattern is None:
            pattern = expense.pattern
        else:
            errors = validate(pattern)
            if errors:
                raise InvalidPatternError(errors)

        created: list[Occurrence] = []
        async with self._locks.hold(expense.id):
            for due in self.due_dates(pattern, window):
                occurrence = await self._create_if_missing(expense.id, due)
                if occurrence is not None:
                    created.append(occurrence)

        if created:
            logger.info(f"Generated {len(created)} occurrence(s) for '{expense.item_name}'")
        return created

    async def _create_if_missing(self, parent_expense_id: UUID, due: date) -> Optional[Occurrence]:
        if await self._store.find(parent_expense_id, due) is not None:
            return None
        occurrence = Occurrence.create(parent_expense_id, due)
        if not await self._store.insert(occurrence):
            # Another process inserted the same key first
            return None
        return occurrence
