"""Fast-path duplicate detection for redelivered payment events."""
from __future__ import annotations

import logging

from ..ledger.store import LedgerStore

logger = logging.getLogger("entitlements")


class IdempotencyGuard:
    """Answers whether a payment reference still needs to be applied.

    This is only a read-ahead. Two deliveries racing past it are settled by the
    unique index on completed references, which rejects the second completion.
    """

    def __init__(self, ledger: LedgerStore) -> None:
        self._ledger = ledger

    def should_process(self, reference_id: str) -> bool:
        existing = self._ledger.find_completed_transaction(reference_id)
        if existing is None:
            return True
        logger.info(
            "Payment %s already applied by transaction %s",
            reference_id,
            existing.id,
            extra={"payment_reference": reference_id},
        )
        return False


__all__ = ["IdempotencyGuard"]
