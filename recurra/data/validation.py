"""Database validation utilities for Recurra."""

import sqlite3
from pathlib import Path
from typing import Optional


class DatabaseValidationError(Exception):
    """Raised when database validation fails."""

    def __init__(self, message: str, details: Optional[str] = None):
        super().__init__(message)
        self.details = details


# Required tables for a valid Recurra database
REQUIRED_TABLES = {"expenses"}

# Tables that will be created if missing
OPTIONAL_TABLES = {"expense_payments", "recurring_expense_occurrences"}

# Columns the engine reads from the expenses table
REQUIRED_EXPENSE_COLUMNS = {
    "id", "item_name", "category", "total_amount", "date", "is_recurring",
    "recurrence_frequency",
}

# Columns the engine needs if the occurrences table already exists
REQUIRED_OCCURRENCE_COLUMNS = {
    "id", "parent_expense_id", "occurrence_date", "status",
    "linked_expense_id", "completed_date",
}


def validate_database(db_path: Path) -> None:
    """Validate that a database file is a compatible Recurra database.

    Args:
        db_path: Path to the database file

    Raises:
        DatabaseValidationError: If the database is not compatible
    """
    if not db_path.exists():
        # New database - will be created with correct schema
        return

    try:
        conn = sqlite3.connect(db_path)
    except sqlite3.Error as e:
        raise DatabaseValidationError(
            "Not a valid database file",
            f"Could not open as SQLite database: {e}"
        )

    try:
        cursor = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table'"
        )
        existing_tables = {row[0] for row in cursor.fetchall()}

        missing_required = REQUIRED_TABLES - existing_tables
        if missing_required:
            if not existing_tables:
                # Empty database - will be initialized with schema
                return

            raise DatabaseValidationError(
                "Incompatible database format",
                f"This database is missing required tables: {', '.join(sorted(missing_required))}. "
                "It may not be a Recurra database file."
            )

        _check_columns(conn, "expenses", REQUIRED_EXPENSE_COLUMNS)

        if "recurring_expense_occurrences" in existing_tables:
            _check_columns(conn, "recurring_expense_occurrences", REQUIRED_OCCURRENCE_COLUMNS)

    except sqlite3.Error as e:
        raise DatabaseValidationError(
            "Database error during validation",
            f"Could not read database structure: {e}"
        )
    finally:
        conn.close()


def _check_columns(conn: sqlite3.Connection, table: str, required: set[str]) -> None:
    cursor = conn.execute(f"PRAGMA table_info({table})")
    existing_columns = {row[1] for row in cursor.fetchall()}

    missing_columns = required - existing_columns
    if missing_columns:
        raise DatabaseValidationError(
            "Incompatible database schema",
            f"The {table} table is missing required columns: {', '.join(sorted(missing_columns))}. "
            "This database may be from an older or different application."
        )


def is_valid_recurra_database(db_path: Path) -> tuple[bool, Optional[str]]:
    """Check if a database file is a valid Recurra database.

    Args:
        db_path: Path to the database file

    Returns:
        Tuple of (is_valid, error_message)
    """
    try:
        validate_database(db_path)
        return True, None
    except DatabaseValidationError as e:
        return False, f"{e}\n\n{e.details}" if e.details else str(e)
