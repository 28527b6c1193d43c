"""Occurrence status lifecycle.

    pending --complete--> completed --reset--> pending
    pending --skip------> skipped   --reset--> pending

Completing an occurrence records a concrete, fully paid expense and links it
to the occurrence. The link is written once and survives a reset: the
created expense is only removed through the expense layer.
"""

import logging
from datetime import datetime
from typing import Union
from uuid import UUID

from recurra.data.repository import ExpenseRepository, ExpenseService, OccurrenceStore
from recurra.domain.errors import (
    DuplicateCompletionError,
    InvalidTransitionError,
    NotFoundError,
)
from recurra.domain.models import (
    ExpenseTemplate,
    LifecycleResult,
    Occurrence,
    OccurrenceStatus,
)
from recurra.services.locks import KeyedLock

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    (OccurrenceStatus.PENDING, OccurrenceStatus.COMPLETED),
    (OccurrenceStatus.PENDING, OccurrenceStatus.SKIPPED),
    (OccurrenceStatus.COMPLETED, OccurrenceStatus.PENDING),
    (OccurrenceStatus.SKIPPED, OccurrenceStatus.PENDING),
}

DEFAULT_PAYMENT_NOTES = "Automatically created payment for recurring expense: {item_name}"


class OccurrenceLifecycleManager:
    """Applies status transitions to occurrences.

    A status change on one occurrence runs under that occurrence's lock, so
    a second completion in the same process waits and then sees the link
    the first one wrote. Across managers and processes the expense service
    writes the expense and claims the link in one transaction, so a losing
    writer leaves nothing behind.

    Example:
        >>> manager = OccurrenceLifecycleManager(store, expense_repo, expense_service)
        >>> result = await manager.update_status(occurrence.id, "completed")
        >>> result.linked_expense_id
        UUID('...')
    """

    def __init__(
        self,
        store: OccurrenceStore,
        expense_repo: ExpenseRepository,
        expense_service: ExpenseService,
        payment_method: str = "auto_payment",
        payment_notes_template: str = DEFAULT_PAYMENT_NOTES,
    ):
        self._store = store
        self._expense_repo = expense_repo
        self._expense_service = expense_service
        self._payment_method = payment_method
        self._payment_notes_template = payment_notes_template
        self._locks = KeyedLock()

    async def update_status(
        self,
        occurrence_id: UUID,
        new_status: Union[OccurrenceStatus, str],
    ) -> LifecycleResult:
        """Transition an occurrence to a new status.

        Args:
            occurrence_id: Occurrence UUID
            new_status: Target status (enum or its string value)

        Returns:
            LifecycleResult with the updated occurrence

        Raises:
            NotFoundError: If the occurrence or its parent expense is missing
            InvalidTransitionError: If the target is not reachable from the
                current status (nothing is changed)
        """
        async with self._locks.hold(occurrence_id):
            occurrence = await self._store.get_by_id(occurrence_id)
            if occurrence is None:
                raise NotFoundError("Occurrence", occurrence_id)

            status = _parse_status(occurrence, new_status)

            # Repeat completion: hand back the existing link
            if (
                status == OccurrenceStatus.COMPLETED
                and occurrence.status == OccurrenceStatus.COMPLETED
                and occurrence.linked_expense_id is not None
            ):
                logger.debug(f"Occurrence {occurrence_id} already completed")
                return _completed_result(occurrence, created=False)

            if (occurrence.status, status) not in ALLOWED_TRANSITIONS:
                raise InvalidTransitionError(occurrence.status.value, status.value)

            if status == OccurrenceStatus.COMPLETED:
                return await self._complete(occurrence)

            updated = await self._store.update_status(occurrence_id, status, completed_date=None)
            if updated is None:
                raise NotFoundError("Occurrence", occurrence_id)

            logger.info(
                f"Occurrence {occurrence_id} ({occurrence.occurrence_date.isoformat()}): "
                f"{occurrence.status.value} -> {status.value}"
            )
            return LifecycleResult(
                occurrence=updated,
                status=status,
                summary=f"Expense occurrence marked as {status.value}",
                linked_expense_id=updated.linked_expense_id,
            )

    async def _complete(self, occurrence: Occurrence) -> LifecycleResult:
        """Complete a pending occurrence, creating its expense at most once."""
        created = False
        if occurrence.linked_expense_id is None:
            try:
                await self._create_linked_expense(occurrence)
                created = True
            except DuplicateCompletionError:
                logger.debug(f"Occurrence {occurrence.id} was linked concurrently; using existing link")

        updated = await self._store.update_status(
            occurrence.id, OccurrenceStatus.COMPLETED, completed_date=datetime.now()
        )
        if updated is None:
            raise NotFoundError("Occurrence", occurrence.id)

        logger.info(
            f"Occurrence {occurrence.id} ({occurrence.occurrence_date.isoformat()}) completed, "
            f"linked expense {updated.linked_expense_id}"
        )
        return _completed_result(updated, created=created)

    async def _create_linked_expense(self, occurrence: Occurrence) -> UUID:
        """Create the concrete expense and link it to the occurrence.

        Raises:
            NotFoundError: If the parent expense no longer exists
            DuplicateCompletionError: If another writer linked the occurrence first
        """
        expense = await self._expense_repo.get_by_id(occurrence.parent_expense_id)
        if expense is None:
            raise NotFoundError("Recurring expense", occurrence.parent_expense_id)

        template = ExpenseTemplate.from_occurrence(
            expense,
            occurrence,
            payment_method=self._payment_method,
            payment_notes=self._payment_notes_template.format(item_name=expense.item_name),
        )
        return await self._expense_service.create_linked_expense(occurrence.id, template)


def _parse_status(occurrence: Occurrence, raw: Union[OccurrenceStatus, str]) -> OccurrenceStatus:
    if isinstance(raw, OccurrenceStatus):
        return raw
    try:
        return OccurrenceStatus(raw)
    except ValueError:
        raise InvalidTransitionError(occurrence.status.value, str(raw)) from None


def _completed_result(occurrence: Occurrence, created: bool) -> LifecycleResult:
    if created:
        summary = "Expense occurrence completed and regular expense created"
    else:
        summary = "Expense occurrence completed; existing linked expense kept"
    return LifecycleResult(
        occurrence=occurrence,
        status=OccurrenceStatus.COMPLETED,
        summary=summary,
        linked_expense_id=occurrence.linked_expense_id,
        created_expense=created,
    )
