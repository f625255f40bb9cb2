"""Storage protocols consumed by the entitlement engine."""
from __future__ import annotations

from datetime import datetime
from typing import ContextManager, Optional, Protocol, Sequence

from .models import CreditBalance, CreditType, FeatureWindow, Listing, Transaction, TransactionStatus


class LedgerStore(Protocol):
    """Persistence operations over transactions and credit balances.

    ``atomic`` opens a unit of work: every call made inside it observes the
    writes made before it and all of them commit or roll back together.
    """

    def atomic(self) -> ContextManager[None]:
        ...

    def find_completed_transaction(self, reference_id: str) -> Optional[Transaction]:
        ...

    def create_pending_transaction(self, transaction: Transaction) -> Transaction:
        ...

    def complete_transaction(
        self,
        *,
        reference_id: str,
        user_id: str,
        credit_type: CreditType,
        amount: int,
        description: Optional[str] = None,
    ) -> Transaction:
        """Flip the pending row for ``reference_id`` to completed, inserting one if absent.

        Raises :class:`DuplicateCompletionError` when a completed row already exists.
        """

    def mark_transaction_failed(self, reference_id: str) -> Optional[Transaction]:
        ...

    def record_transaction(self, transaction: Transaction) -> Transaction:
        ...

    def list_transactions(
        self,
        *,
        user_id: Optional[str] = None,
        status: Optional[TransactionStatus] = None,
        limit: int = 50,
    ) -> Sequence[Transaction]:
        ...

    def get_balance(self, user_id: str, credit_type: CreditType) -> Optional[CreditBalance]:
        ...

    def list_balances(self, user_id: str) -> Sequence[CreditBalance]:
        ...

    def increment_balance(self, user_id: str, credit_type: CreditType, delta: int) -> CreditBalance:
        ...

    def decrement_balance(self, user_id: str, credit_type: CreditType, amount: int) -> Optional[CreditBalance]:
        """Subtract ``amount`` unless the balance would drop below zero; ``None`` when refused."""


class FeatureWindowStore(Protocol):
    """Persistence operations over feature windows."""

    def get_active_window(self, listing_id: str, now: datetime) -> Optional[FeatureWindow]:
        ...

    def insert_window(self, window: FeatureWindow) -> FeatureWindow:
        ...

    def update_window(self, window_id: int, *, start_at: datetime, end_at: datetime) -> FeatureWindow:
        ...

    def list_active_windows(self, now: datetime, *, limit: int = 100) -> Sequence[FeatureWindow]:
        ...


class ListingStore(Protocol):
    """Read/write access to the listing fields this service owns."""

    def get_listing(self, listing_id: str) -> Optional[Listing]:
        ...

    def update_listing_expiry(self, listing_id: str, expires_at: datetime) -> Optional[Listing]:
        ...


__all__ = ["FeatureWindowStore", "LedgerStore", "ListingStore"]
