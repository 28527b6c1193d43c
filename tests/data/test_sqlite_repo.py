"""Integration tests for SQLite repositories."""

import asyncio
import sqlite3
from dataclasses import replace

import pytest
from datetime import date, datetime, time
from decimal import Decimal
from uuid import uuid4

from recurra.data.factory import create_repositories
from recurra.domain.errors import DuplicateCompletionError
from recurra.domain.models import (
    DailyPattern,
    DateRange,
    ExpenseTemplate,
    MonthlyWeekdayPattern,
    Occurrence,
    OccurrenceStatus,
    RecurringExpense,
)


class TestOccurrenceStore:
    """Tests for SQLiteOccurrenceStore."""

    @pytest.mark.asyncio
    async def test_insert_and_find(self, repos, save_expense):
        store, _, _ = repos
        expense = await save_expense()
        occurrence = Occurrence.create(expense.id, date(2024, 3, 1))

        assert await store.insert(occurrence) is True

        found = await store.find(expense.id, date(2024, 3, 1))
        assert found is not None
        assert found.id == occurrence.id
        assert found.status == OccurrenceStatus.PENDING
        assert found.linked_expense_id is None

        assert await store.get_by_id(occurrence.id) == found

    @pytest.mark.asyncio
    async def test_duplicate_key_is_ignored(self, repos, save_expense):
        """A second occurrence with the same key is not stored."""
        store, _, _ = repos
        expense = await save_expense()
        first = Occurrence.create(expense.id, date(2024, 3, 1))
        second = Occurrence.create(expense.id, date(2024, 3, 1))

        assert await store.insert(first) is True
        assert await store.insert(second) is False

        assert await store.get_by_id(second.id) is None
        assert (await store.find(expense.id, date(2024, 3, 1))).id == first.id

    @pytest.mark.asyncio
    async def test_find_missing(self, repos):
        store, _, _ = repos

        assert await store.find(uuid4(), date(2024, 3, 1)) is None
        assert await store.get_by_id(uuid4()) is None

    @pytest.mark.asyncio
    async def test_update_status(self, repos, save_expense):
        store, _, _ = repos
        expense = await save_expense()
        occurrence = Occurrence.create(expense.id, date(2024, 3, 1))
        await store.insert(occurrence)
        completed_at = datetime(2024, 3, 1, 10, 30)

        updated = await store.update_status(occurrence.id, OccurrenceStatus.COMPLETED, completed_at)

        assert updated.status == OccurrenceStatus.COMPLETED
        assert updated.completed_date == completed_at
        assert updated.updated_at is not None

        cleared = await store.update_status(occurrence.id, OccurrenceStatus.PENDING)
        assert cleared.completed_date is None

    @pytest.mark.asyncio
    async def test_update_status_missing(self, repos):
        store, _, _ = repos
        assert await store.update_status(uuid4(), OccurrenceStatus.SKIPPED) is None

    @pytest.mark.asyncio
    async def test_claim_link_only_once(self, repos, save_expense):
        store, _, expense_service = repos
        expense = await save_expense()
        occurrence = Occurrence.create(expense.id, date(2024, 3, 1))
        await store.insert(occurrence)
        template = ExpenseTemplate.from_occurrence(expense, occurrence)
        first_id = await expense_service.create_expense_with_payment(template)
        second_id = await expense_service.create_expense_with_payment(template)

        assert await store.claim_link(occurrence.id, first_id) is True
        assert await store.claim_link(occurrence.id, second_id) is False

        stored = await store.get_by_id(occurrence.id)
        assert stored.linked_expense_id == first_id

    @pytest.mark.asyncio
    async def test_link_survives_status_change(self, repos, save_expense):
        store, _, expense_service = repos
        expense = await save_expense()
        occurrence = Occurrence.create(expense.id, date(2024, 3, 1))
        await store.insert(occurrence)
        expense_id = await expense_service.create_expense_with_payment(
            ExpenseTemplate.from_occurrence(expense, occurrence)
        )
        await store.claim_link(occurrence.id, expense_id)

        updated = await store.update_status(occurrence.id, OccurrenceStatus.PENDING)

        assert updated.linked_expense_id == expense_id

    @pytest.mark.asyncio
    async def test_list_by_date_range(self, repos, save_expense):
        store, _, _ = repos
        first = await save_expense(item_name="First")
        second = await save_expense(item_name="Second")

        for parent, day in [
            (first, date(2024, 3, 15)),
            (second, date(2024, 3, 1)),
            (first, date(2024, 3, 1)),
            (first, date(2024, 4, 1)),
        ]:
            await store.insert(Occurrence.create(parent.id, day))

        march = DateRange(date(2024, 3, 1), date(2024, 3, 31))
        all_march = await store.list_by_date_range(march)
        first_only = await store.list_by_date_range(march, first.id)

        assert [o.occurrence_date for o in all_march] == [
            date(2024, 3, 1),
            date(2024, 3, 1),
            date(2024, 3, 15),
        ]
        assert [o.occurrence_date for o in first_only] == [date(2024, 3, 1), date(2024, 3, 15)]
        assert all(o.parent_expense_id == first.id for o in first_only)


class TestExpenseRepository:
    """Tests for SQLiteExpenseRepository."""

    @pytest.mark.asyncio
    async def test_save_and_retrieve(self, repos, save_expense):
        _, expense_repo, _ = repos
        pattern = MonthlyWeekdayPattern(
            start_date=date(2024, 1, 1),
            end_date=date(2024, 12, 31),
            week_of_month=5,
            day_of_week=1,
            reminder_days=2,
        )
        expense = await save_expense(
            item_name="Payroll Service",
            category="variable",
            total_amount=Decimal("89.99"),
            pattern=pattern,
            description="Monthly payroll",
            created_by="user-1",
        )

        retrieved = await expense_repo.get_by_id(expense.id)

        assert retrieved is not None
        assert retrieved.item_name == "Payroll Service"
        assert retrieved.category == "variable"
        assert retrieved.total_amount == Decimal("89.99")
        assert retrieved.description == "Monthly payroll"
        assert retrieved.created_by == "user-1"
        assert retrieved.pattern == pattern

    @pytest.mark.asyncio
    async def test_daily_time_of_day_round_trips(self, repos, save_expense):
        _, expense_repo, _ = repos
        pattern = DailyPattern(start_date=date(2024, 1, 1), time_of_day=time(7, 45))
        expense = await save_expense(pattern=pattern)

        retrieved = await expense_repo.get_by_id(expense.id)

        assert retrieved.pattern.time_of_day == time(7, 45)

    @pytest.mark.asyncio
    async def test_get_recurring(self, repos, save_expense):
        _, expense_repo, _ = repos
        for name in ("Rent", "Insurance", "Cleaning"):
            await save_expense(item_name=name)

        expenses = await expense_repo.get_recurring()

        assert [e.item_name for e in expenses] == ["Rent", "Insurance", "Cleaning"]

    @pytest.mark.asyncio
    async def test_generated_expenses_are_not_recurring(self, repos, save_expense):
        """Expenses created on completion never show up as recurring."""
        store, expense_repo, expense_service = repos
        expense = await save_expense()
        occurrence = Occurrence.create(expense.id, date(2024, 3, 1))
        await store.insert(occurrence)
        created_id = await expense_service.create_expense_with_payment(
            ExpenseTemplate.from_occurrence(expense, occurrence)
        )

        assert [e.id for e in await expense_repo.get_recurring()] == [expense.id]
        assert await expense_repo.get_by_id(created_id) is None

    @pytest.mark.asyncio
    async def test_save_updates_without_dropping_occurrences(self, repos, save_expense):
        """Re-saving an expense keeps its occurrences."""
        store, expense_repo, _ = repos
        expense = await save_expense()
        await store.insert(Occurrence.create(expense.id, date(2024, 3, 1)))

        await expense_repo.save(
            RecurringExpense(
                id=expense.id,
                item_name="Renamed",
                category=expense.category,
                total_amount=expense.total_amount,
                recurrence=expense.recurrence,
            )
        )

        assert (await expense_repo.get_by_id(expense.id)).item_name == "Renamed"
        assert await store.find(expense.id, date(2024, 3, 1)) is not None


class TestExpenseService:
    """Tests for SQLiteExpenseService."""

    @pytest.mark.asyncio
    async def test_creates_paid_expense_with_payment(self, repos, save_expense):
        store, _, expense_service = repos
        expense = await save_expense()
        occurrence = Occurrence.create(expense.id, date(2024, 3, 8))
        template = ExpenseTemplate.from_occurrence(
            expense, occurrence, payment_method="card", payment_notes="note"
        )

        expense_id = await expense_service.create_expense_with_payment(template)

        async with store.connection.execute(
            "SELECT * FROM expenses WHERE id = ?", (str(expense_id),)
        ) as cursor:
            row = await cursor.fetchone()

        assert row["payment_status"] == "paid"
        assert Decimal(row["amount_paid"]) == Decimal("150.00")
        assert row["generated_from_recurring"] == 1
        assert row["parent_recurring_expense_id"] == str(expense.id)
        assert row["date"] == "2024-03-08"

        payments = await expense_service.get_payments(expense_id)
        assert len(payments) == 1
        assert payments[0]["payment_method"] == "card"
        assert payments[0]["notes"] == "note"

    @pytest.mark.asyncio
    async def test_create_linked_expense(self, repos, save_expense):
        store, _, expense_service = repos
        expense = await save_expense()
        occurrence = Occurrence.create(expense.id, date(2024, 3, 8))
        await store.insert(occurrence)
        template = ExpenseTemplate.from_occurrence(expense, occurrence)

        expense_id = await expense_service.create_linked_expense(occurrence.id, template)

        stored = await store.get_by_id(occurrence.id)
        assert stored.linked_expense_id == expense_id
        payments = await expense_service.get_payments(expense_id)
        assert payments[0]["date"] == date(2024, 3, 8)

    @pytest.mark.asyncio
    async def test_losing_link_claim_leaves_no_expense(self, repos, save_expense):
        """A second linked expense for the same occurrence is rolled back whole."""
        store, _, expense_service = repos
        expense = await save_expense()
        occurrence = Occurrence.create(expense.id, date(2024, 3, 8))
        await store.insert(occurrence)
        template = ExpenseTemplate.from_occurrence(expense, occurrence)
        first_id = await expense_service.create_linked_expense(occurrence.id, template)

        with pytest.raises(DuplicateCompletionError):
            await expense_service.create_linked_expense(occurrence.id, template)

        assert await expense_service.get_generated_expense_ids(expense.id) == [first_id]
        async with store.connection.execute("SELECT COUNT(*) FROM expense_payments") as cursor:
            assert (await cursor.fetchone())[0] == 1
        assert (await store.get_by_id(occurrence.id)).linked_expense_id == first_id

    @pytest.mark.asyncio
    async def test_losing_link_claim_on_second_connection(self, tmp_path, repos, save_expense):
        """Two connections to one file still end up with a single linked expense."""
        store, _, expense_service = repos
        expense = await save_expense()
        occurrence = Occurrence.create(expense.id, date(2024, 3, 8))
        await store.insert(occurrence)
        template = ExpenseTemplate.from_occurrence(expense, occurrence)
        first_id = await expense_service.create_linked_expense(occurrence.id, template)

        other_store, _, other_service = await create_repositories("sqlite", tmp_path / "test.db")
        try:
            with pytest.raises(DuplicateCompletionError):
                await other_service.create_linked_expense(occurrence.id, template)
            assert await other_service.get_generated_expense_ids(expense.id) == [first_id]
        finally:
            await other_store.close()

    @pytest.mark.asyncio
    async def test_failed_write_keeps_concurrent_insert(self, tmp_path, repos, save_expense):
        """A write that fails and rolls back does not discard another writer's row."""
        store, _, expense_service = repos
        expense = await save_expense()
        occurrence = Occurrence.create(expense.id, date(2024, 3, 8))
        bad_template = replace(
            ExpenseTemplate.from_occurrence(expense, occurrence), category="sundry"
        )

        inserted, failed = await asyncio.gather(
            store.insert(occurrence),
            expense_service.create_expense_with_payment(bad_template),
            return_exceptions=True,
        )

        assert inserted is True
        assert isinstance(failed, sqlite3.IntegrityError)
        assert await expense_service.get_generated_expense_ids(expense.id) == []

        # Committed, so visible from a fresh connection
        other_store, _, _ = await create_repositories("sqlite", tmp_path / "test.db")
        try:
            assert await other_store.get_by_id(occurrence.id) is not None
        finally:
            await other_store.close()


class TestFactory:
    """Tests for create_repositories()."""

    @pytest.mark.asyncio
    async def test_creates_database_in_missing_directory(self, tmp_path):
        db_path = tmp_path / "nested" / "recurra.db"

        store, expense_repo, expense_service = await create_repositories("sqlite", db_path)
        try:
            assert db_path.exists()
            assert await expense_repo.get_recurring() == []
        finally:
            await store.close()

    @pytest.mark.asyncio
    async def test_unknown_backend(self, tmp_path):
        with pytest.raises(ValueError, match="Unknown backend"):
            await create_repositories("postgres", tmp_path / "x.db")

    @pytest.mark.asyncio
    async def test_sqlite_requires_path(self):
        with pytest.raises(ValueError, match="file_path required"):
            await create_repositories("sqlite")
