"""Tests for upcoming-expense reminders."""

import pytest
from datetime import date

from recurra.domain.models import DateRange, OccurrenceStatus, WeeklyPattern
from recurra.services.generator import OccurrenceGenerator
from recurra.services.reminders import ReminderService


def fridays(reminder_days=None, **kwargs):
    return WeeklyPattern(
        start_date=date(2024, 1, 5), day_of_week=5, reminder_days=reminder_days, **kwargs
    )


@pytest.fixture
def reminders(repos):
    store, expense_repo, _ = repos
    return ReminderService(expense_repo, store)


class TestReminderService:
    """Tests for ReminderService."""

    @pytest.mark.asyncio
    async def test_reminder_due(self, reminders, save_expense):
        expense = await save_expense(pattern=fridays(reminder_days=3), created_by="user-1")

        # Tuesday 2024-03-05 is three days before Friday 2024-03-08
        due = await reminders.due_reminders(date(2024, 3, 5))

        assert len(due) == 1
        assert due[0].expense_id == expense.id
        assert due[0].occurrence_date == date(2024, 3, 8)
        assert due[0].days_until == 3
        assert due[0].created_by == "user-1"
        assert due[0].message == "Reminder: Office Cleaning expense of 150.00 is due in 3 days."

    @pytest.mark.asyncio
    async def test_no_reminder_on_other_days(self, reminders, save_expense):
        await save_expense(pattern=fridays(reminder_days=3))
        assert await reminders.due_reminders(date(2024, 3, 6)) == []

    @pytest.mark.asyncio
    async def test_no_reminder_without_reminder_days(self, reminders, save_expense):
        await save_expense(pattern=fridays())
        assert await reminders.due_reminders(date(2024, 3, 5)) == []

    @pytest.mark.asyncio
    async def test_singular_and_same_day_messages(self, reminders, save_expense):
        await save_expense(item_name="Tomorrow", pattern=fridays(reminder_days=1))
        await save_expense(item_name="Today", pattern=fridays(reminder_days=0))

        tomorrow = await reminders.due_reminders(date(2024, 3, 7))
        today = await reminders.due_reminders(date(2024, 3, 8))

        assert [r.message for r in tomorrow] == [
            "Reminder: Tomorrow expense of 150.00 is due in 1 day."
        ]
        assert [r.message for r in today] == ["Reminder: Today expense of 150.00 is due today."]

    @pytest.mark.asyncio
    async def test_skipped_occurrence_gets_no_reminder(self, repos, reminders, save_expense):
        store, _, _ = repos
        expense = await save_expense(pattern=fridays(reminder_days=3))
        created = await OccurrenceGenerator(store).generate(
            expense, DateRange(date(2024, 3, 8), date(2024, 3, 8))
        )
        await store.update_status(created[0].id, OccurrenceStatus.SKIPPED)

        assert await reminders.due_reminders(date(2024, 3, 5)) == []

    @pytest.mark.asyncio
    async def test_pending_occurrence_gets_reminder(self, repos, reminders, save_expense):
        store, _, _ = repos
        expense = await save_expense(pattern=fridays(reminder_days=3))
        await OccurrenceGenerator(store).generate(
            expense, DateRange(date(2024, 3, 8), date(2024, 3, 8))
        )

        due = await reminders.due_reminders(date(2024, 3, 5))
        assert [r.expense_id for r in due] == [expense.id]

    @pytest.mark.asyncio
    async def test_no_reminder_after_end_date(self, reminders, save_expense):
        await save_expense(pattern=fridays(reminder_days=3, end_date=date(2024, 3, 1)))
        assert await reminders.due_reminders(date(2024, 3, 5)) == []

    @pytest.mark.asyncio
    async def test_invalid_pattern_is_skipped(self, reminders, save_expense):
        await save_expense(
            item_name="Broken",
            pattern={"frequency": "weekly", "start_date": "2024-01-05", "reminder_days": 3},
        )
        await save_expense(pattern=fridays(reminder_days=3))

        due = await reminders.due_reminders(date(2024, 3, 5))
        assert [r.message.split(" expense")[0] for r in due] == ["Reminder: Office Cleaning"]
