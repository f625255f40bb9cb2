"""PostgreSQL persistence for ledger, feature window and listing expiry data."""
from __future__ import annotations

from contextlib import contextmanager
import threading
from datetime import datetime
from typing import Iterable, Optional

import psycopg2
import psycopg2.errors
import psycopg2.extras
from psycopg2.extensions import connection as PgConnection
from psycopg2.extensions import cursor as PgCursor

from .exceptions import DuplicateCompletionError, LedgerUnavailableError
from .models import CreditBalance, CreditType, FeatureWindow, Listing, Transaction, TransactionStatus

from ...app_context import get_conn

COMPLETED_REFERENCE_CONSTRAINT = "uq_credit_transactions_completed_reference"


@contextmanager
def managed_connection(conn: Optional[PgConnection] = None):
    """Context manager that manages transaction boundaries for optional connections."""

    if conn is not None:
        yield conn, False
        return

    try:
        connection = get_conn()
    except psycopg2.OperationalError as exc:
        raise LedgerUnavailableError(str(exc)) from exc
    try:
        yield connection, True
        connection.commit()
    except psycopg2.OperationalError as exc:
        connection.rollback()
        raise LedgerUnavailableError(str(exc)) from exc
    except Exception:
        connection.rollback()
        raise
    finally:
        connection.close()


@contextmanager
def _savepoint(connection: PgConnection, name: str = "ledger_atomic"):
    """Scope a unit of work inside a caller-owned transaction.

    On error only the work done since the savepoint is undone, leaving the
    caller's transaction usable.
    """

    with connection.cursor() as cursor:
        cursor.execute(f"SAVEPOINT {name}")
    try:
        yield
    except Exception:
        with connection.cursor() as cursor:
            cursor.execute(f"ROLLBACK TO SAVEPOINT {name}")
        raise
    with connection.cursor() as cursor:
        cursor.execute(f"RELEASE SAVEPOINT {name}")


def _row_to_transaction(row: dict) -> Transaction:
    return Transaction(
        id=int(row["id"]),
        user_id=str(row["user_id"]),
        credit_type=CreditType(row["credit_type"]),
        amount=int(row["amount"]),
        status=TransactionStatus(row["status"]),
        external_reference_id=row.get("external_reference_id"),
        description=row.get("description"),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_balance(row: dict) -> CreditBalance:
    return CreditBalance(
        user_id=str(row["user_id"]),
        credit_type=CreditType(row["credit_type"]),
        amount=int(row["amount"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_window(row: dict) -> FeatureWindow:
    return FeatureWindow(
        id=int(row["id"]),
        listing_id=str(row["listing_id"]),
        owner_id=str(row["owner_id"]),
        start_at=row["start_at"],
        end_at=row["end_at"],
    )


def _row_to_listing(row: dict) -> Listing:
    return Listing(
        id=str(row["id"]),
        owner_id=str(row["seller_id"]),
        title=row.get("title"),
        expires_at=row.get("expires_at"),
    )


class PostgresLedgerRepository:
    """Concrete store persisting ledger models in PostgreSQL.

    Implements :class:`LedgerStore`, :class:`FeatureWindowStore` and
    :class:`ListingStore` over a single connection so that ``atomic`` covers
    balance, window and listing writes alike.
    """

    def __init__(self, *, conn: Optional[PgConnection] = None) -> None:
        self._conn = conn
        self._local = threading.local()

    @property
    def _pinned(self) -> Optional[PgConnection]:
        return getattr(self._local, "connection", None)

    @contextmanager
    def atomic(self):
        if self._pinned is not None:
            yield
            return

        with managed_connection(self._conn) as (connection, managed):
            self._local.connection = connection
            try:
                if managed:
                    yield
                else:
                    with _savepoint(connection):
                        yield
            finally:
                self._local.connection = None

    @contextmanager
    def _cursor(self) -> Iterable[PgCursor]:
        with managed_connection(self._pinned or self._conn) as (connection, managed):
            cursor = connection.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
            try:
                yield cursor
                if managed:
                    connection.commit()
            except psycopg2.OperationalError as exc:
                if managed:
                    connection.rollback()
                raise LedgerUnavailableError(str(exc)) from exc
            except Exception:
                if managed:
                    connection.rollback()
                raise
            finally:
                cursor.close()

    def find_completed_transaction(self, reference_id: str) -> Optional[Transaction]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT *
                FROM credit_transactions
                WHERE external_reference_id = %s AND status = %s
                LIMIT 1
                """,
                (reference_id, TransactionStatus.COMPLETED.value),
            )
            row = cursor.fetchone()
            return _row_to_transaction(row) if row else None

    def create_pending_transaction(self, transaction: Transaction) -> Transaction:
        pending = transaction.model_copy(update={"status": TransactionStatus.PENDING})
        return self.record_transaction(pending)

    def record_transaction(self, transaction: Transaction) -> Transaction:
        with self._cursor() as cursor:
            try:
                cursor.execute(
                    """
                    INSERT INTO credit_transactions (
                        user_id,
                        credit_type,
                        amount,
                        status,
                        external_reference_id,
                        description
                    )
                    VALUES (%(user_id)s, %(credit_type)s, %(amount)s, %(status)s,
                            %(external_reference_id)s, %(description)s)
                    RETURNING *
                    """,
                    {
                        "user_id": transaction.user_id,
                        "credit_type": transaction.credit_type.value,
                        "amount": transaction.amount,
                        "status": transaction.status.value,
                        "external_reference_id": transaction.external_reference_id,
                        "description": transaction.description,
                    },
                )
            except psycopg2.errors.UniqueViolation as exc:
                raise DuplicateCompletionError(transaction.external_reference_id or "") from exc
            row = cursor.fetchone()
            if not row:
                raise RuntimeError("Failed to persist transaction")
            return _row_to_transaction(row)

    def complete_transaction(
        self,
        *,
        reference_id: str,
        user_id: str,
        credit_type: CreditType,
        amount: int,
        description: Optional[str] = None,
    ) -> Transaction:
        with self._cursor() as cursor:
            try:
                cursor.execute(
                    """
                    UPDATE credit_transactions
                    SET status = %(completed)s,
                        user_id = %(user_id)s,
                        credit_type = %(credit_type)s,
                        amount = %(amount)s,
                        description = COALESCE(%(description)s, description),
                        updated_at = NOW()
                    WHERE id = (
                        SELECT id
                        FROM credit_transactions
                        WHERE external_reference_id = %(reference_id)s
                          AND status IN (%(pending)s, %(failed)s)
                        ORDER BY created_at
                        LIMIT 1
                    )
                      -- re-evaluated against the committed row when a concurrent completion wins the lock
                      AND status IN (%(pending)s, %(failed)s)
                    RETURNING *
                    """,
                    {
                        "completed": TransactionStatus.COMPLETED.value,
                        "pending": TransactionStatus.PENDING.value,
                        "failed": TransactionStatus.FAILED.value,
                        "user_id": user_id,
                        "credit_type": credit_type.value,
                        "amount": amount,
                        "description": description,
                        "reference_id": reference_id,
                    },
                )
                row = cursor.fetchone()
                if row is None:
                    cursor.execute(
                        """
                        INSERT INTO credit_transactions (
                            user_id,
                            credit_type,
                            amount,
                            status,
                            external_reference_id,
                            description
                        )
                        VALUES (%s, %s, %s, %s, %s, %s)
                        RETURNING *
                        """,
                        (
                            user_id,
                            credit_type.value,
                            amount,
                            TransactionStatus.COMPLETED.value,
                            reference_id,
                            description,
                        ),
                    )
                    row = cursor.fetchone()
            except psycopg2.errors.UniqueViolation as exc:
                raise DuplicateCompletionError(reference_id) from exc
            if not row:
                raise RuntimeError("Failed to complete transaction")
            return _row_to_transaction(row)

    def mark_transaction_failed(self, reference_id: str) -> Optional[Transaction]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                UPDATE credit_transactions
                SET status = %s, updated_at = NOW()
                WHERE external_reference_id = %s AND status = %s
                RETURNING *
                """,
                (TransactionStatus.FAILED.value, reference_id, TransactionStatus.PENDING.value),
            )
            row = cursor.fetchone()
            return _row_to_transaction(row) if row else None

    def list_transactions(
        self,
        *,
        user_id: Optional[str] = None,
        status: Optional[TransactionStatus] = None,
        limit: int = 50,
    ) -> list[Transaction]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT *
                FROM credit_transactions
                WHERE (%(user_id)s::text IS NULL OR user_id = %(user_id)s)
                  AND (%(status)s::text IS NULL OR status = %(status)s)
                ORDER BY created_at DESC
                LIMIT %(limit)s
                """,
                {
                    "user_id": user_id,
                    "status": status.value if status else None,
                    "limit": limit,
                },
            )
            rows = cursor.fetchall() or []
            return [_row_to_transaction(row) for row in rows]

    def get_balance(self, user_id: str, credit_type: CreditType) -> Optional[CreditBalance]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT *
                FROM credit_balances
                WHERE user_id = %s AND credit_type = %s
                LIMIT 1
                """,
                (user_id, credit_type.value),
            )
            row = cursor.fetchone()
            return _row_to_balance(row) if row else None

    def list_balances(self, user_id: str) -> list[CreditBalance]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT *
                FROM credit_balances
                WHERE user_id = %s
                ORDER BY credit_type
                """,
                (user_id,),
            )
            rows = cursor.fetchall() or []
            return [_row_to_balance(row) for row in rows]

    def increment_balance(self, user_id: str, credit_type: CreditType, delta: int) -> CreditBalance:
        with self._cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO credit_balances (user_id, credit_type, amount)
                VALUES (%s, %s, %s)
                ON CONFLICT (user_id, credit_type) DO UPDATE SET
                    amount = credit_balances.amount + EXCLUDED.amount,
                    updated_at = NOW()
                RETURNING *
                """,
                (user_id, credit_type.value, delta),
            )
            row = cursor.fetchone()
            if not row:
                raise RuntimeError("Failed to persist credit balance")
            return _row_to_balance(row)

    def decrement_balance(self, user_id: str, credit_type: CreditType, amount: int) -> Optional[CreditBalance]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                UPDATE credit_balances
                SET amount = amount - %s, updated_at = NOW()
                WHERE user_id = %s AND credit_type = %s AND amount >= %s
                RETURNING *
                """,
                (amount, user_id, credit_type.value, amount),
            )
            row = cursor.fetchone()
            return _row_to_balance(row) if row else None

    def get_active_window(self, listing_id: str, now: datetime) -> Optional[FeatureWindow]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT *
                FROM featured_listings
                WHERE listing_id = %s AND end_at > %s
                ORDER BY end_at DESC
                LIMIT 1
                """,
                (listing_id, now),
            )
            row = cursor.fetchone()
            return _row_to_window(row) if row else None

    def insert_window(self, window: FeatureWindow) -> FeatureWindow:
        with self._cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO featured_listings (listing_id, owner_id, start_at, end_at)
                VALUES (%s, %s, %s, %s)
                RETURNING *
                """,
                (window.listing_id, window.owner_id, window.start_at, window.end_at),
            )
            row = cursor.fetchone()
            if not row:
                raise RuntimeError("Failed to persist feature window")
            return _row_to_window(row)

    def update_window(self, window_id: int, *, start_at: datetime, end_at: datetime) -> FeatureWindow:
        with self._cursor() as cursor:
            cursor.execute(
                """
                UPDATE featured_listings
                SET start_at = %s, end_at = %s, updated_at = NOW()
                WHERE id = %s
                RETURNING *
                """,
                (start_at, end_at, window_id),
            )
            row = cursor.fetchone()
            if not row:
                raise LookupError(f"Feature window {window_id} not found")
            return _row_to_window(row)

    def list_active_windows(self, now: datetime, *, limit: int = 100) -> list[FeatureWindow]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT *
                FROM featured_listings
                WHERE end_at > %s
                ORDER BY start_at DESC
                LIMIT %s
                """,
                (now, limit),
            )
            rows = cursor.fetchall() or []
            return [_row_to_window(row) for row in rows]

    def get_listing(self, listing_id: str) -> Optional[Listing]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT id, seller_id, title, expires_at
                FROM listings
                WHERE id = %s
                LIMIT 1
                """,
                (listing_id,),
            )
            row = cursor.fetchone()
            return _row_to_listing(row) if row else None

    def update_listing_expiry(self, listing_id: str, expires_at: datetime) -> Optional[Listing]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                UPDATE listings
                SET expires_at = %s
                WHERE id = %s
                RETURNING id, seller_id, title, expires_at
                """,
                (expires_at, listing_id),
            )
            row = cursor.fetchone()
            return _row_to_listing(row) if row else None


__all__ = ["PostgresLedgerRepository", "managed_connection"]
