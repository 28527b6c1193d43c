"""SQLite implementation of repository interfaces."""

import asyncio
from contextlib import asynccontextmanager
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, AsyncIterator, Optional
from uuid import UUID, uuid4

import aiosqlite

from recurra.data.repository import (
    ExpenseRepository,
    ExpenseService,
    OccurrenceStore,
)
from recurra.domain.errors import DuplicateCompletionError
from recurra.domain.models import (
    DateRange,
    ExpenseTemplate,
    Occurrence,
    OccurrenceStatus,
    RecurringExpense,
)

# Stored pattern field -> expenses column
RECURRENCE_COLUMNS = {
    "frequency": "recurrence_frequency",
    "monthly_recurrence_type": "monthly_recurrence_type",
    "start_date": "recurrence_start_date",
    "end_date": "recurrence_end_date",
    "time_of_day": "recurrence_time",
    "day_of_week": "recurrence_day_of_week",
    "day_of_month": "recurrence_day_of_month",
    "week_of_month": "recurrence_week_of_month",
    "month_of_year": "recurrence_month_of_year",
    "reminder_days": "reminder_days",
}


@asynccontextmanager
async def write_transaction(
    conn: aiosqlite.Connection, lock: asyncio.Lock
) -> AsyncIterator[aiosqlite.Connection]:
    """Run writes in one immediate transaction, one writer at a time.

    Every adapter on a shared connection writes through the same lock, so a
    rollback only ever discards its own statements. BEGIN IMMEDIATE also takes
    the database write lock, which orders writers in other processes.
    """
    async with lock:
        await conn.execute("BEGIN IMMEDIATE")
        try:
            yield conn
        except BaseException:
            await conn.rollback()
            raise
        await conn.commit()


class SQLiteOccurrenceStore(OccurrenceStore):
    """SQLite implementation of OccurrenceStore.

    Owns the connection and the schema; the expense adapters share it.
    """

    def __init__(self, db_path: Path):
        self._db_path = db_path
        self._conn: Optional[aiosqlite.Connection] = None
        self._write_lock = asyncio.Lock()

    async def connect(self) -> None:
        """Connect to database and ensure schema exists."""
        self._conn = await aiosqlite.connect(self._db_path)
        self._conn.row_factory = aiosqlite.Row
        await self._conn.execute("PRAGMA foreign_keys = ON")
        await self._ensure_schema()

    async def close(self) -> None:
        """Close database connection."""
        if self._conn:
            await self._conn.close()

    @property
    def connection(self) -> Optional[aiosqlite.Connection]:
        return self._conn

    @property
    def write_lock(self) -> asyncio.Lock:
        """Lock that every writer on this connection must hold."""
        return self._write_lock

    async def _ensure_schema(self) -> None:
        """Create tables if they don't exist."""
        await self._conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS expenses (
                id TEXT PRIMARY KEY,
                item_name TEXT NOT NULL,
                category TEXT NOT NULL CHECK (category IN ('fixed', 'variable')),
                description TEXT,
                quantity TEXT NOT NULL DEFAULT '1',
                unit_cost TEXT,
                total_amount TEXT NOT NULL,
                amount_paid TEXT NOT NULL DEFAULT '0',
                payment_status TEXT NOT NULL DEFAULT 'unpaid'
                    CHECK (payment_status IN ('unpaid', 'partially_paid', 'paid')),
                date TEXT NOT NULL,
                created_by TEXT,
                is_recurring INTEGER NOT NULL DEFAULT 0,
                generated_from_recurring INTEGER NOT NULL DEFAULT 0,
                parent_recurring_expense_id TEXT REFERENCES expenses(id),
                recurrence_frequency TEXT,
                monthly_recurrence_type TEXT,
                recurrence_start_date TEXT,
                recurrence_end_date TEXT,
                recurrence_time TEXT,
                recurrence_day_of_week INTEGER,
                recurrence_day_of_month INTEGER,
                recurrence_week_of_month INTEGER,
                recurrence_month_of_year INTEGER,
                reminder_days INTEGER,
                created_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_expenses_recurring ON expenses(is_recurring);
            CREATE INDEX IF NOT EXISTS idx_expenses_parent
                ON expenses(parent_recurring_expense_id);

            CREATE TABLE IF NOT EXISTS expense_payments (
                id TEXT PRIMARY KEY,
                expense_id TEXT NOT NULL REFERENCES expenses(id) ON DELETE CASCADE,
                amount TEXT NOT NULL,
                date TEXT NOT NULL,
                payment_method TEXT NOT NULL,
                notes TEXT,
                created_by TEXT,
                created_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_payments_expense ON expense_payments(expense_id);

            CREATE TABLE IF NOT EXISTS recurring_expense_occurrences (
                id TEXT PRIMARY KEY,
                parent_expense_id TEXT NOT NULL REFERENCES expenses(id) ON DELETE CASCADE,
                occurrence_date TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'pending'
                    CHECK (status IN ('pending', 'completed', 'skipped')),
                linked_expense_id TEXT REFERENCES expenses(id),
                completed_date TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT,
                UNIQUE (parent_expense_id, occurrence_date)
            );

            CREATE INDEX IF NOT EXISTS idx_occurrences_date
                ON recurring_expense_occurrences(occurrence_date);
        """
        )
        await self._conn.commit()

    async def find(self, parent_expense_id: UUID, occurrence_date: date) -> Optional[Occurrence]:
        """Get the occurrence for a parent expense on a date."""
        async with self._conn.execute(
            """
            SELECT * FROM recurring_expense_occurrences
            WHERE parent_expense_id = ? AND occurrence_date = ?
            """,
            (str(parent_expense_id), occurrence_date.isoformat()),
        ) as cursor:
            row = await cursor.fetchone()
            return self._row_to_occurrence(row) if row else None

    async def get_by_id(self, id: UUID) -> Optional[Occurrence]:
        """Get a single occurrence by ID."""
        async with self._conn.execute(
            "SELECT * FROM recurring_expense_occurrences WHERE id = ?", (str(id),)
        ) as cursor:
            row = await cursor.fetchone()
            return self._row_to_occurrence(row) if row else None

    async def insert(self, occurrence: Occurrence) -> bool:
        """Insert a new occurrence; a duplicate key is silently left alone."""
        async with write_transaction(self._conn, self._write_lock) as conn:
            cursor = await conn.execute(
                """
                INSERT INTO recurring_expense_occurrences
                (id, parent_expense_id, occurrence_date, status, linked_expense_id,
                 completed_date, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (parent_expense_id, occurrence_date) DO NOTHING
            """,
                (
                    str(occurrence.id),
                    str(occurrence.parent_expense_id),
                    occurrence.occurrence_date.isoformat(),
                    occurrence.status.value,
                    str(occurrence.linked_expense_id) if occurrence.linked_expense_id else None,
                    occurrence.completed_date.isoformat() if occurrence.completed_date else None,
                    occurrence.created_at.isoformat(),
                    occurrence.updated_at.isoformat() if occurrence.updated_at else None,
                ),
            )
        return cursor.rowcount > 0

    async def update_status(
        self,
        id: UUID,
        status: OccurrenceStatus,
        completed_date: Optional[datetime] = None,
    ) -> Optional[Occurrence]:
        """Set status and completed date."""
        async with write_transaction(self._conn, self._write_lock) as conn:
            cursor = await conn.execute(
                """
                UPDATE recurring_expense_occurrences
                SET status = ?, completed_date = ?, updated_at = ?
                WHERE id = ?
                """,
                (
                    status.value,
                    completed_date.isoformat() if completed_date else None,
                    datetime.now().isoformat(),
                    str(id),
                ),
            )
        if cursor.rowcount == 0:
            return None
        return await self.get_by_id(id)

    async def claim_link(self, id: UUID, linked_expense_id: UUID) -> bool:
        """Set the linked expense only while it is still empty."""
        async with write_transaction(self._conn, self._write_lock) as conn:
            cursor = await conn.execute(
                """
                UPDATE recurring_expense_occurrences
                SET linked_expense_id = ?, updated_at = ?
                WHERE id = ? AND linked_expense_id IS NULL
                """,
                (str(linked_expense_id), datetime.now().isoformat(), str(id)),
            )
        return cursor.rowcount > 0

    async def list_by_date_range(
        self,
        window: DateRange,
        parent_expense_id: Optional[UUID] = None,
    ) -> list[Occurrence]:
        """Get occurrences due within a date range."""
        query = (
            "SELECT * FROM recurring_expense_occurrences "
            "WHERE occurrence_date BETWEEN ? AND ?"
        )
        params: list[Any] = [window.start.isoformat(), window.end.isoformat()]

        if parent_expense_id:
            query += " AND parent_expense_id = ?"
            params.append(str(parent_expense_id))

        query += " ORDER BY occurrence_date, created_at"

        async with self._conn.execute(query, params) as cursor:
            rows = await cursor.fetchall()
            return [self._row_to_occurrence(row) for row in rows]

    def _row_to_occurrence(self, row: aiosqlite.Row) -> Occurrence:
        """Convert database row to Occurrence model."""
        return Occurrence(
            id=UUID(row["id"]),
            parent_expense_id=UUID(row["parent_expense_id"]),
            occurrence_date=date.fromisoformat(row["occurrence_date"]),
            status=OccurrenceStatus(row["status"]),
            linked_expense_id=UUID(row["linked_expense_id"]) if row["linked_expense_id"] else None,
            completed_date=(
                datetime.fromisoformat(row["completed_date"]) if row["completed_date"] else None
            ),
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]) if row["updated_at"] else None,
        )


class SQLiteExpenseRepository(ExpenseRepository):
    """SQLite implementation of ExpenseRepository."""

    def __init__(self, conn: aiosqlite.Connection, write_lock: Optional[asyncio.Lock] = None):
        self._conn = conn
        self._write_lock = write_lock or asyncio.Lock()

    async def get_recurring(self) -> list[RecurringExpense]:
        """Get all recurring expenses."""
        async with self._conn.execute(
            "SELECT * FROM expenses WHERE is_recurring = 1 ORDER BY created_at"
        ) as cursor:
            rows = await cursor.fetchall()
            return [self._row_to_expense(row) for row in rows]

    async def get_by_id(self, id: UUID) -> Optional[RecurringExpense]:
        """Get a single recurring expense by ID."""
        async with self._conn.execute(
            "SELECT * FROM expenses WHERE id = ? AND is_recurring = 1", (str(id),)
        ) as cursor:
            row = await cursor.fetchone()
            return self._row_to_expense(row) if row else None

    async def save(self, expense: RecurringExpense) -> RecurringExpense:
        """Save (insert or update) a recurring expense.

        Normally the expense layer owns these rows; this exists for seeding
        and tests.
        """
        recurrence = {
            column: _to_db(expense.recurrence.get(field_name))
            for field_name, column in RECURRENCE_COLUMNS.items()
        }
        start = recurrence["recurrence_start_date"] or date.today().isoformat()

        columns = [
            "id", "item_name", "category", "description", "quantity", "unit_cost",
            "total_amount", "date", "created_by", "is_recurring", "created_at",
            *recurrence.keys(),
        ]
        values = [
            str(expense.id),
            expense.item_name,
            expense.category,
            expense.description,
            str(expense.quantity),
            str(expense.unit_cost) if expense.unit_cost is not None else None,
            str(expense.total_amount),
            start,
            expense.created_by,
            1,
            datetime.now().isoformat(),
            *recurrence.values(),
        ]
        placeholders = ", ".join("?" * len(columns))
        # Upsert rather than replace: a delete would cascade to occurrences
        updates = ", ".join(
            f"{column} = excluded.{column}"
            for column in columns
            if column not in ("id", "created_at")
        )

        async with write_transaction(self._conn, self._write_lock) as conn:
            await conn.execute(
                f"INSERT INTO expenses ({', '.join(columns)}) VALUES ({placeholders}) "
                f"ON CONFLICT (id) DO UPDATE SET {updates}",
                values,
            )
        return expense

    def _row_to_expense(self, row: aiosqlite.Row) -> RecurringExpense:
        """Convert database row to RecurringExpense model."""
        recurrence = {
            field_name: row[column]
            for field_name, column in RECURRENCE_COLUMNS.items()
            if row[column] is not None
        }
        # Older rows only carry the expense date
        recurrence.setdefault("start_date", row["date"])

        return RecurringExpense(
            id=UUID(row["id"]),
            item_name=row["item_name"],
            category=row["category"],
            total_amount=Decimal(row["total_amount"]),
            recurrence=recurrence,
            description=row["description"],
            quantity=Decimal(row["quantity"]),
            unit_cost=Decimal(row["unit_cost"]) if row["unit_cost"] else None,
            created_by=row["created_by"],
        )


class SQLiteExpenseService(ExpenseService):
    """SQLite implementation of ExpenseService."""

    def __init__(self, conn: aiosqlite.Connection, write_lock: Optional[asyncio.Lock] = None):
        self._conn = conn
        self._write_lock = write_lock or asyncio.Lock()

    async def create_expense_with_payment(self, template: ExpenseTemplate) -> UUID:
        """Insert a paid one-off expense and its payment in one transaction."""
        async with write_transaction(self._conn, self._write_lock) as conn:
            return await self._insert_paid_expense(conn, template)

    async def create_linked_expense(self, occurrence_id: UUID, template: ExpenseTemplate) -> UUID:
        """Insert a paid expense and link it to an occurrence in one transaction.

        The link is claimed last, after both inserts; losing the claim rolls
        all three statements back, so no unlinked expense is left behind.

        Raises:
            DuplicateCompletionError: If the occurrence already had a link
        """
        async with write_transaction(self._conn, self._write_lock) as conn:
            expense_id = await self._insert_paid_expense(conn, template)
            cursor = await conn.execute(
                """
                UPDATE recurring_expense_occurrences
                SET linked_expense_id = ?, updated_at = ?
                WHERE id = ? AND linked_expense_id IS NULL
                """,
                (str(expense_id), datetime.now().isoformat(), str(occurrence_id)),
            )
            if cursor.rowcount == 0:
                raise DuplicateCompletionError(occurrence_id)
        return expense_id

    async def _insert_paid_expense(
        self, conn: aiosqlite.Connection, template: ExpenseTemplate
    ) -> UUID:
        expense_id = uuid4()
        now = datetime.now().isoformat()

        await conn.execute(
            """
            INSERT INTO expenses
            (id, item_name, category, description, quantity, unit_cost, total_amount,
             amount_paid, payment_status, date, created_by, is_recurring,
             generated_from_recurring, parent_recurring_expense_id, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, 'paid', ?, ?, 0, 1, ?, ?)
        """,
            (
                str(expense_id),
                template.item_name,
                template.category,
                template.description,
                str(template.quantity),
                str(template.unit_cost) if template.unit_cost is not None else None,
                str(template.total_amount),
                str(template.total_amount),
                template.expense_date.isoformat(),
                template.created_by,
                str(template.parent_recurring_expense_id),
                now,
            ),
        )
        await conn.execute(
            """
            INSERT INTO expense_payments
            (id, expense_id, amount, date, payment_method, notes, created_by, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """,
            (
                str(uuid4()),
                str(expense_id),
                str(template.total_amount),
                template.payment_date.isoformat(),
                template.payment_method,
                template.payment_notes,
                template.created_by,
                now,
            ),
        )
        return expense_id

    async def get_generated_expense_ids(self, parent_recurring_expense_id: UUID) -> list[UUID]:
        """Get IDs of expenses created from a recurring expense's occurrences."""
        async with self._conn.execute(
            """
            SELECT id FROM expenses
            WHERE parent_recurring_expense_id = ? AND generated_from_recurring = 1
            ORDER BY date
            """,
            (str(parent_recurring_expense_id),),
        ) as cursor:
            rows = await cursor.fetchall()
            return [UUID(row["id"]) for row in rows]

    async def get_payments(self, expense_id: UUID) -> list[dict[str, Any]]:
        """Get payment rows recorded against an expense."""
        async with self._conn.execute(
            "SELECT * FROM expense_payments WHERE expense_id = ? ORDER BY date",
            (str(expense_id),),
        ) as cursor:
            rows = await cursor.fetchall()
            return [
                {
                    "id": UUID(row["id"]),
                    "amount": Decimal(row["amount"]),
                    "date": date.fromisoformat(row["date"][:10]),
                    "payment_method": row["payment_method"],
                    "notes": row["notes"],
                }
                for row in rows
            ]


def _to_db(value: Any) -> Any:
    """Convert a pattern field value to its column representation."""
    if value is None or isinstance(value, (int, str)):
        return value
    if hasattr(value, "isoformat"):
        return value.isoformat()
    if hasattr(value, "value"):
        return value.value
    return str(value)
