"""Factory for creating repository instances."""

from pathlib import Path
from typing import Optional, Tuple

from recurra.data.sqlite_repo import (
    SQLiteExpenseRepository,
    SQLiteExpenseService,
    SQLiteOccurrenceStore,
)
from recurra.data.validation import validate_database


async def create_repositories(
    backend: str,
    file_path: Optional[Path] = None,
) -> Tuple[SQLiteOccurrenceStore, SQLiteExpenseRepository, SQLiteExpenseService]:
    """Factory function to create appropriate repositories.

    Args:
        backend: Backend type (only "sqlite" is supported)
        file_path: Path to database file (required for sqlite)

    Returns:
        Tuple of (OccurrenceStore, ExpenseRepository, ExpenseService).
        The store owns the connection; close it when done.

    Raises:
        ValueError: If backend is unknown or required params missing
        DatabaseValidationError: If database file is not compatible

    Example:
        >>> store, expense_repo, expense_service = await create_repositories(
        ...     "sqlite", Path("recurra.db")
        ... )
        >>> await store.close()
    """
    if backend == "sqlite":
        if not file_path:
            raise ValueError("file_path required for sqlite backend")

        # Validate database before connecting
        validate_database(file_path)

        file_path.parent.mkdir(parents=True, exist_ok=True)
        store = SQLiteOccurrenceStore(file_path)
        await store.connect()

        # Share connection and write lock with the expense-side adapters
        expense_repo = SQLiteExpenseRepository(store.connection, store.write_lock)
        expense_service = SQLiteExpenseService(store.connection, store.write_lock)

        return store, expense_repo, expense_service

    raise ValueError(f"Unknown backend: {backend}")
