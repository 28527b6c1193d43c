"""Pytest fixtures and configuration."""

import pytest
from datetime import date
from decimal import Decimal

from recurra.data.factory import create_repositories
from recurra.domain.models import RecurringExpense, WeeklyPattern


@pytest.fixture
def make_expense():
    """Factory fixture for creating recurring expenses."""

    def _make(**kwargs):
        defaults = {
            "item_name": "Office Cleaning",
            "category": "fixed",
            "total_amount": Decimal("150.00"),
            # Fridays from 2024-01-05
            "pattern": WeeklyPattern(start_date=date(2024, 1, 5), day_of_week=5),
        }
        defaults.update(kwargs)
        return RecurringExpense.create(**defaults)

    return _make


@pytest.fixture
async def repos(tmp_path):
    """Create repositories with temporary database."""
    db_path = tmp_path / "test.db"
    store, expense_repo, expense_service = await create_repositories("sqlite", db_path)
    yield store, expense_repo, expense_service
    await store.close()


@pytest.fixture
def save_expense(repos, make_expense):
    """Factory fixture that stores a recurring expense and returns it."""
    _, expense_repo, _ = repos

    async def _save(**kwargs):
        return await expense_repo.save(make_expense(**kwargs))

    return _save
