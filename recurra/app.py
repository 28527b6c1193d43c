"""Engine context and dependency injection.

The EngineContext wires repositories and services together and exposes the
operations callers (CLI, HTTP handlers, scheduled jobs) are meant to use.
"""

import logging
from datetime import date
from pathlib import Path
from typing import Optional, Union
from uuid import UUID

from recurra.data.factory import create_repositories
from recurra.data.sqlite_repo import (
    SQLiteExpenseRepository,
    SQLiteExpenseService,
    SQLiteOccurrenceStore,
)
from recurra.domain.models import (
    DateRange,
    GenerationResult,
    LifecycleResult,
    Occurrence,
    OccurrenceStatus,
    Reminder,
)
from recurra.domain.settings import AppSettings
from recurra.services.generator import OccurrenceGenerator
from recurra.services.lifecycle import OccurrenceLifecycleManager
from recurra.services.reminders import ReminderService
from recurra.services.scheduler import GenerationScheduler
from recurra.state.persistence import SettingsStore

logger = logging.getLogger(__name__)


class EngineContext:
    """Engine context providing dependency injection.

    Example:
        >>> ctx = EngineContext(db_path=Path("recurra.db"))
        >>> await ctx.initialize()
        >>> result = await ctx.generate_occurrences()
        >>> await ctx.set_occurrence_status(result.generated[0].id, "completed")
        >>> await ctx.close()
    """

    def __init__(
        self,
        db_path: Optional[Path] = None,
        settings: Optional[AppSettings] = None,
        settings_store: Optional[SettingsStore] = None,
    ):
        """Initialize engine context.

        Args:
            db_path: Optional path to database file.
                     Defaults to the configured storage path.
            settings: Settings to use instead of loading them
            settings_store: Store to load settings from (default location if None)
        """
        if settings is None:
            self.settings_store = settings_store or SettingsStore()
            settings = self.settings_store.load()
        else:
            self.settings_store = settings_store
        self.settings: AppSettings = settings

        self._db_path = db_path or self.settings.storage.resolve_db_path()

        # Repositories (initialized in initialize())
        self.occurrence_store: Optional[SQLiteOccurrenceStore] = None
        self.expense_repo: Optional[SQLiteExpenseRepository] = None
        self.expense_service: Optional[SQLiteExpenseService] = None

        # Services (initialized in initialize())
        self.generator: Optional[OccurrenceGenerator] = None
        self.scheduler: Optional[GenerationScheduler] = None
        self.lifecycle: Optional[OccurrenceLifecycleManager] = None
        self.reminders: Optional[ReminderService] = None

    @property
    def db_path(self) -> Path:
        return self._db_path

    async def initialize(self) -> None:
        """Initialize async components (repositories and services).

        Must be called before using the context.
        """
        self.occurrence_store, self.expense_repo, self.expense_service = (
            await create_repositories(self.settings.storage.backend, self._db_path)
        )

        generation = self.settings.generation
        completion = self.settings.completion

        self.generator = OccurrenceGenerator(
            self.occurrence_store,
            max_occurrences_per_run=generation.max_occurrences_per_run,
        )
        self.scheduler = GenerationScheduler(
            self.expense_repo,
            self.generator,
            horizon_days=generation.horizon_days,
        )
        self.lifecycle = OccurrenceLifecycleManager(
            self.occurrence_store,
            self.expense_repo,
            self.expense_service,
            payment_method=completion.payment_method,
            payment_notes_template=completion.payment_notes_template,
        )
        self.reminders = ReminderService(self.expense_repo, self.occurrence_store)

        logger.info(f"Engine initialized with database {self._db_path}")

    async def close(self) -> None:
        """Close the database connection."""
        if self.occurrence_store:
            await self.occurrence_store.close()

    async def generate_occurrences(self, window: Optional[DateRange] = None) -> GenerationResult:
        """Ensure every recurring expense has its occurrences in a window.

        Args:
            window: Date range; defaults to today .. today + horizon_days

        Returns:
            GenerationResult with newly created occurrences and per-expense errors
        """
        return await self.scheduler.generate_occurrences(window)

    async def set_occurrence_status(
        self,
        occurrence_id: UUID,
        status: Union[OccurrenceStatus, str],
    ) -> LifecycleResult:
        """Transition an occurrence's status.

        Raises:
            NotFoundError: Unknown occurrence or parent expense
            InvalidTransitionError: Status not reachable from the current one
        """
        return await self.lifecycle.update_status(occurrence_id, status)

    async def list_occurrences(
        self,
        window: DateRange,
        parent_expense_id: Optional[UUID] = None,
    ) -> list[Occurrence]:
        """Get occurrences due within a window, sorted by date."""
        return await self.occurrence_store.list_by_date_range(window, parent_expense_id)

    async def upcoming_reminders(self, today: Optional[date] = None) -> list[Reminder]:
        """Get reminders due today for recurring expenses that ask for them."""
        return await self.reminders.due_reminders(today)
