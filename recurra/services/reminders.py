"""Upcoming-expense reminders.

A recurring expense may ask to be reminded ``reminder_days`` before each
occurrence. This service works out which reminders are due on a given day;
delivering them is up to the caller.
"""

import logging
from datetime import date, timedelta
from typing import Optional

from recurra.data.repository import ExpenseRepository, OccurrenceStore
from recurra.domain.errors import InvalidPatternError, OutOfRangeError
from recurra.domain.models import OccurrenceStatus, RecurringExpense, Reminder
from recurra.services.calculator import first_on_or_after

logger = logging.getLogger(__name__)


class ReminderService:
    """Finds occurrences that are exactly ``reminder_days`` away."""

    def __init__(self, expense_repo: ExpenseRepository, store: OccurrenceStore):
        self._expense_repo = expense_repo
        self._store = store

    async def due_reminders(self, today: Optional[date] = None) -> list[Reminder]:
        """Get reminders due today.

        An occurrence that was already completed or skipped gets no reminder.
        Dates that have not been generated yet are checked against the pattern.

        Args:
            today: Reference day (defaults to date.today())

        Returns:
            List of reminders, one per expense at most
        """
        today = today or date.today()
        reminders = []

        for expense in await self._expense_repo.get_recurring():
            try:
                pattern = expense.pattern
            except InvalidPatternError as e:
                logger.warning(f"No reminder for '{expense.item_name}': {e}")
                continue

            if pattern.reminder_days is None:
                continue

            target = today + timedelta(days=pattern.reminder_days)
            if await self._is_due(expense, target):
                reminders.append(_build_reminder(expense, target, pattern.reminder_days))

        return reminders

    async def _is_due(self, expense: RecurringExpense, target: date) -> bool:
        occurrence = await self._store.find(expense.id, target)
        if occurrence is not None:
            return occurrence.status == OccurrenceStatus.PENDING

        try:
            return first_on_or_after(expense.pattern, target) == target
        except OutOfRangeError:
            return False


def _build_reminder(expense: RecurringExpense, target: date, days: int) -> Reminder:
    unit = "day" if days == 1 else "days"
    if days == 0:
        message = f"Reminder: {expense.item_name} expense of {expense.total_amount} is due today."
    else:
        message = (
            f"Reminder: {expense.item_name} expense of {expense.total_amount} "
            f"is due in {days} {unit}."
        )
    return Reminder(
        expense_id=expense.id,
        occurrence_date=target,
        days_until=days,
        message=message,
        created_by=expense.created_by,
    )
