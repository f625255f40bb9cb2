"""Shared in-memory fakes for the entitlement and credit tests."""
from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Tuple

import pytest

from marketplace.app.entitlements.models import EntitlementAuditEvent
from marketplace.app.ledger.exceptions import DuplicateCompletionError, LedgerUnavailableError
from marketplace.app.ledger.models import (
    CreditBalance,
    CreditType,
    FeatureWindow,
    Listing,
    Transaction,
    TransactionStatus,
)

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class InMemoryMarketplaceStore:
    """Implements the ledger, feature window and listing stores over dictionaries.

    ``atomic`` snapshots every table and restores it when the block raises,
    mirroring a database transaction rollback.
    """

    def __init__(self) -> None:
        self.transactions: List[Transaction] = []
        self.balances: Dict[Tuple[str, CreditType], CreditBalance] = {}
        self.windows: Dict[int, FeatureWindow] = {}
        self.listings: Dict[str, Listing] = {}
        self.unavailable = False
        self.hide_completed = False
        self._next_transaction_id = 1
        self._next_window_id = 1
        self._depth = 0

    def _check(self) -> None:
        if self.unavailable:
            raise LedgerUnavailableError("connection refused")

    @contextmanager
    def atomic(self):
        self._check()
        if self._depth:
            yield
            return
        snapshot = (
            list(self.transactions),
            dict(self.balances),
            dict(self.windows),
            dict(self.listings),
            self._next_transaction_id,
            self._next_window_id,
        )
        self._depth += 1
        try:
            yield
        except BaseException:
            (
                self.transactions,
                self.balances,
                self.windows,
                self.listings,
                self._next_transaction_id,
                self._next_window_id,
            ) = snapshot
            raise
        finally:
            self._depth -= 1

    # ledger

    def _insert(self, transaction: Transaction) -> Transaction:
        stored = transaction.model_copy(update={"id": self._next_transaction_id})
        self._next_transaction_id += 1
        self.transactions.append(stored)
        return stored

    def _replace(self, updated: Transaction) -> Transaction:
        self.transactions = [updated if tx.id == updated.id else tx for tx in self.transactions]
        return updated

    def find_completed_transaction(self, reference_id: str) -> Optional[Transaction]:
        self._check()
        if self.hide_completed:
            return None
        for transaction in self.transactions:
            if transaction.external_reference_id == reference_id and transaction.is_completed:
                return transaction
        return None

    def create_pending_transaction(self, transaction: Transaction) -> Transaction:
        self._check()
        return self._insert(transaction.model_copy(update={"status": TransactionStatus.PENDING}))

    def complete_transaction(
        self,
        *,
        reference_id: str,
        user_id: str,
        credit_type: CreditType,
        amount: int,
        description: Optional[str] = None,
    ) -> Transaction:
        self._check()
        if any(tx.external_reference_id == reference_id and tx.is_completed for tx in self.transactions):
            raise DuplicateCompletionError(reference_id)
        for transaction in self.transactions:
            if transaction.external_reference_id == reference_id and transaction.status in (
                TransactionStatus.PENDING,
                TransactionStatus.FAILED,
            ):
                return self._replace(
                    transaction.model_copy(
                        update={
                            "status": TransactionStatus.COMPLETED,
                            "amount": amount,
                            "description": description or transaction.description,
                        }
                    )
                )
        return self._insert(
            Transaction(
                user_id=user_id,
                credit_type=credit_type,
                amount=amount,
                status=TransactionStatus.COMPLETED,
                external_reference_id=reference_id,
                description=description,
            )
        )

    def mark_transaction_failed(self, reference_id: str) -> Optional[Transaction]:
        self._check()
        for transaction in self.transactions:
            if transaction.external_reference_id == reference_id and transaction.status == TransactionStatus.PENDING:
                return self._replace(transaction.model_copy(update={"status": TransactionStatus.FAILED}))
        return None

    def record_transaction(self, transaction: Transaction) -> Transaction:
        self._check()
        return self._insert(transaction)

    def list_transactions(
        self,
        *,
        user_id: Optional[str] = None,
        status: Optional[TransactionStatus] = None,
        limit: int = 50,
    ) -> Sequence[Transaction]:
        self._check()
        matching = [
            tx
            for tx in reversed(self.transactions)
            if (user_id is None or tx.user_id == user_id) and (status is None or tx.status == status)
        ]
        return matching[:limit]

    def get_balance(self, user_id: str, credit_type: CreditType) -> Optional[CreditBalance]:
        self._check()
        return self.balances.get((user_id, credit_type))

    def list_balances(self, user_id: str) -> Sequence[CreditBalance]:
        self._check()
        return [balance for (owner, _), balance in self.balances.items() if owner == user_id]

    def increment_balance(self, user_id: str, credit_type: CreditType, delta: int) -> CreditBalance:
        self._check()
        current = self.balances.get((user_id, credit_type))
        amount = (current.amount if current else 0) + delta
        balance = CreditBalance(user_id=user_id, credit_type=credit_type, amount=amount)
        self.balances[(user_id, credit_type)] = balance
        return balance

    def decrement_balance(self, user_id: str, credit_type: CreditType, amount: int) -> Optional[CreditBalance]:
        self._check()
        current = self.balances.get((user_id, credit_type))
        if current is None or current.amount < amount:
            return None
        balance = current.model_copy(update={"amount": current.amount - amount})
        self.balances[(user_id, credit_type)] = balance
        return balance

    # feature windows

    def get_active_window(self, listing_id: str, now: datetime) -> Optional[FeatureWindow]:
        self._check()
        for window in self.windows.values():
            if window.listing_id == listing_id and window.is_active(now):
                return window
        return None

    def insert_window(self, window: FeatureWindow) -> FeatureWindow:
        self._check()
        stored = window.model_copy(update={"id": self._next_window_id})
        self._next_window_id += 1
        self.windows[stored.id] = stored
        return stored

    def update_window(self, window_id: int, *, start_at: datetime, end_at: datetime) -> FeatureWindow:
        self._check()
        updated = self.windows[window_id].model_copy(update={"start_at": start_at, "end_at": end_at})
        self.windows[window_id] = updated
        return updated

    def list_active_windows(self, now: datetime, *, limit: int = 100) -> Sequence[FeatureWindow]:
        self._check()
        active = [window for window in self.windows.values() if window.is_active(now)]
        return sorted(active, key=lambda window: window.end_at)[:limit]

    # listings

    def get_listing(self, listing_id: str) -> Optional[Listing]:
        self._check()
        return self.listings.get(listing_id)

    def update_listing_expiry(self, listing_id: str, expires_at: datetime) -> Optional[Listing]:
        self._check()
        listing = self.listings.get(listing_id)
        if listing is None:
            return None
        updated = listing.model_copy(update={"expires_at": expires_at})
        self.listings[listing_id] = updated
        return updated

    # helpers

    def add_listing(self, listing_id: str, owner_id: str, expires_at: Optional[datetime] = None) -> Listing:
        listing = Listing(id=listing_id, owner_id=owner_id, title=f"Listing {listing_id}", expires_at=expires_at)
        self.listings[listing_id] = listing
        return listing

    def balance_of(self, user_id: str, credit_type: CreditType = CreditType.STANDARD) -> int:
        balance = self.balances.get((user_id, credit_type))
        return balance.amount if balance else 0

    def transactions_for(self, reference_id: str) -> List[Transaction]:
        return [tx for tx in self.transactions if tx.external_reference_id == reference_id]


class RecordingEventLogger:
    def __init__(self) -> None:
        self.events: List[EntitlementAuditEvent] = []

    def log(self, event: EntitlementAuditEvent) -> None:
        self.events.append(event)

    @property
    def event_types(self) -> List[str]:
        return [event.event_type.value for event in self.events]


class FixedClock:
    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def store() -> InMemoryMarketplaceStore:
    return InMemoryMarketplaceStore()


@pytest.fixture
def event_logger() -> RecordingEventLogger:
    return RecordingEventLogger()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()
