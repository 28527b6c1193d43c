"""Batch occurrence generation across all recurring expenses.

Meant to be triggered from outside (cron job, HTTP endpoint, CLI). Each
expense is processed on its own: one bad pattern is reported in the result
and the run carries on with the rest.
"""

import logging
from datetime import date, timedelta
from typing import Optional

from recurra.data.repository import ExpenseRepository
from recurra.domain.errors import RecurraError
from recurra.domain.models import DateRange, GenerationError, GenerationResult, Occurrence
from recurra.services.generator import OccurrenceGenerator

logger = logging.getLogger(__name__)


class GenerationScheduler:
    """Runs the generator over every recurring expense."""

    def __init__(
        self,
        expense_repo: ExpenseRepository,
        generator: OccurrenceGenerator,
        horizon_days: int = 90,
    ):
        self._expense_repo = expense_repo
        self._generator = generator
        self._horizon_days = horizon_days

    def default_window(self, today: Optional[date] = None) -> DateRange:
        """Window from today to today + horizon_days (inclusive)."""
        today = today or date.today()
        return DateRange(today, today + timedelta(days=self._horizon_days))

    async def generate_occurrences(self, window: Optional[DateRange] = None) -> GenerationResult:
        """Generate missing occurrences for every recurring expense.

        Args:
            window: Date range to cover; defaults to ``default_window()``

        Returns:
            GenerationResult with created occurrences and per-expense errors
        """
        window = window or self.default_window()
        expenses = await self._expense_repo.get_recurring()

        generated: list[Occurrence] = []
        errors: list[GenerationError] = []

        for expense in expenses:
            try:
                generated.extend(await self._generator.generate(expense, window))
            except RecurraError as e:
                logger.warning(f"Skipping '{expense.item_name}' ({expense.id}): {e}")
                errors.append(GenerationError(expense_id=expense.id, error=str(e)))
            except Exception as e:
                logger.exception(f"Unexpected error generating occurrences for {expense.id}")
                errors.append(GenerationError(expense_id=expense.id, error=str(e) or type(e).__name__))

        logger.info(
            f"Generated {len(generated)} occurrence(s) for {len(expenses)} recurring expense(s) "
            f"in {window.start.isoformat()}..{window.end.isoformat()}"
            + (f", {len(errors)} error(s)" if errors else "")
        )
        return GenerationResult(generated=generated, errors=errors)
