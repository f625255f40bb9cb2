"""Ledger package: transactions, credit balances and feature windows."""

from .exceptions import DuplicateCompletionError, LedgerUnavailableError
from .models import (
    CreditBalance,
    CreditType,
    FeatureWindow,
    Listing,
    Transaction,
    TransactionStatus,
)
from .store import FeatureWindowStore, LedgerStore, ListingStore

__all__ = [
    "CreditBalance",
    "CreditType",
    "DuplicateCompletionError",
    "FeatureWindow",
    "FeatureWindowStore",
    "LedgerStore",
    "LedgerUnavailableError",
    "Listing",
    "ListingStore",
    "Transaction",
    "TransactionStatus",
]
