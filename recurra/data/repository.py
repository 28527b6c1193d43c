"""Abstract repository interfaces for data access.

The engine only talks to its collaborators through these interfaces, so the
expense layer and the occurrence storage can live in any backend.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import Optional
from uuid import UUID

from recurra.domain.models import (
    DateRange,
    ExpenseTemplate,
    Occurrence,
    OccurrenceStatus,
    RecurringExpense,
)


class ExpenseRepository(ABC):
    """Read access to recurring expenses owned by the expense layer."""

    @abstractmethod
    async def get_recurring(self) -> list[RecurringExpense]:
        """Get all recurring expenses.

        Returns:
            List of recurring expenses with their patterns
        """
        ...

    @abstractmethod
    async def get_by_id(self, id: UUID) -> Optional[RecurringExpense]:
        """Get a single recurring expense by ID.

        Args:
            id: Expense UUID

        Returns:
            RecurringExpense if found, None otherwise
        """
        ...


class ExpenseService(ABC):
    """Creates concrete expense records for completed occurrences."""

    @abstractmethod
    async def create_expense_with_payment(self, template: ExpenseTemplate) -> UUID:
        """Create an expense and a single payment covering its full amount.

        Args:
            template: Expense fields and payment details

        Returns:
            ID of the created expense
        """
        ...

    @abstractmethod
    async def create_linked_expense(self, occurrence_id: UUID, template: ExpenseTemplate) -> UUID:
        """Create the expense for a completed occurrence and link it, atomically.

        Either the expense, its payment and the occurrence's link are all
        written, or nothing is.

        Args:
            occurrence_id: Occurrence being completed
            template: Expense fields and payment details

        Returns:
            ID of the created (and now linked) expense

        Raises:
            DuplicateCompletionError: If the occurrence already has a linked expense
        """
        ...


class OccurrenceStore(ABC):
    """Abstract interface for occurrence storage."""

    @abstractmethod
    async def find(self, parent_expense_id: UUID, occurrence_date: date) -> Optional[Occurrence]:
        """Get the occurrence for a parent expense on a date.

        Args:
            parent_expense_id: Owning recurring expense UUID
            occurrence_date: Due date

        Returns:
            Occurrence if found, None otherwise
        """
        ...

    @abstractmethod
    async def get_by_id(self, id: UUID) -> Optional[Occurrence]:
        """Get a single occurrence by ID.

        Args:
            id: Occurrence UUID

        Returns:
            Occurrence if found, None otherwise
        """
        ...

    @abstractmethod
    async def insert(self, occurrence: Occurrence) -> bool:
        """Insert a new occurrence unless its key already exists.

        Args:
            occurrence: Occurrence to insert

        Returns:
            True if inserted, False if an occurrence with the same
            (parent_expense_id, occurrence_date) already exists
        """
        ...

    @abstractmethod
    async def update_status(
        self,
        id: UUID,
        status: OccurrenceStatus,
        completed_date: Optional[datetime] = None,
    ) -> Optional[Occurrence]:
        """Set status and completed date. Never touches linked_expense_id.

        Args:
            id: Occurrence UUID
            status: New status
            completed_date: Completion timestamp, None to clear it

        Returns:
            Updated occurrence, or None if not found
        """
        ...

    @abstractmethod
    async def claim_link(self, id: UUID, linked_expense_id: UUID) -> bool:
        """Atomically set the linked expense if none is set yet.

        Args:
            id: Occurrence UUID
            linked_expense_id: ID of the expense created on completion

        Returns:
            True if this call set the link, False if a link already existed
        """
        ...

    @abstractmethod
    async def list_by_date_range(
        self,
        window: DateRange,
        parent_expense_id: Optional[UUID] = None,
    ) -> list[Occurrence]:
        """Get occurrences due within a date range.

        Args:
            window: Inclusive date range
            parent_expense_id: Optional filter on the owning expense

        Returns:
            List of occurrences sorted by occurrence_date
        """
        ...
