"""Credit balance queries, feature-credit redemption and admin adjustments."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence, Tuple

from ..ledger.exceptions import LedgerUnavailableError
from ..ledger.models import CreditBalance, CreditType, FeatureWindow, Transaction, TransactionStatus
from ..ledger.store import FeatureWindowStore, LedgerStore, ListingStore
from .exceptions import (
    InsufficientCreditsError,
    ListingNotFoundError,
    ListingNotOwnedError,
    StorageUnavailableError,
)
from .models import EntitlementAuditEvent, EntitlementAuditEventType, RedemptionResult
from .scheduler import FeatureWindowScheduler
from .service import EntitlementEventLogger, promote_listing

logger = logging.getLogger("entitlements")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class CreditService:
    """User-initiated and administrative credit operations."""

    ledger: LedgerStore
    windows: FeatureWindowStore
    listings: ListingStore
    event_logger: EntitlementEventLogger
    feature_duration_days: int = 15
    listing_renewal_days: int = 30
    clock: Callable[[], datetime] = field(default=_utcnow)
    scheduler: FeatureWindowScheduler = field(init=False)

    def __post_init__(self) -> None:
        self.scheduler = FeatureWindowScheduler(self.windows, clock=self.clock)

    def list_balances(self, user_id: str) -> List[CreditBalance]:
        """Return one balance per credit type, zero-filled for types never purchased."""

        try:
            stored = {balance.credit_type: balance for balance in self.ledger.list_balances(user_id)}
        except LedgerUnavailableError as exc:
            raise StorageUnavailableError("Ledger storage unavailable") from exc
        now = self.clock()
        return [
            stored.get(credit_type)
            or CreditBalance(user_id=user_id, credit_type=credit_type, amount=0, created_at=now, updated_at=now)
            for credit_type in CreditType
        ]

    def featured_windows(self, *, limit: int = 100) -> Sequence[FeatureWindow]:
        try:
            return self.scheduler.active_windows(limit=limit)
        except LedgerUnavailableError as exc:
            raise StorageUnavailableError("Ledger storage unavailable") from exc

    def list_transactions(
        self,
        *,
        user_id: Optional[str] = None,
        status: Optional[TransactionStatus] = None,
        limit: int = 50,
    ) -> Sequence[Transaction]:
        try:
            return self.ledger.list_transactions(user_id=user_id, status=status, limit=limit)
        except LedgerUnavailableError as exc:
            raise StorageUnavailableError("Ledger storage unavailable") from exc

    def redeem_feature_credit(self, user_id: str, listing_id: str) -> RedemptionResult:
        """Spend one featured credit to promote a listing the user owns."""

        try:
            with self.ledger.atomic():
                listing = self.listings.get_listing(listing_id)
                if listing is None:
                    raise ListingNotFoundError(f"Listing {listing_id} not found")
                if listing.owner_id != user_id:
                    raise ListingNotOwnedError("Listing does not belong to the current user")

                balance = self.ledger.decrement_balance(user_id, CreditType.FEATURED, 1)
                if balance is None:
                    raise InsufficientCreditsError(
                        "You don't have enough feature credits",
                        detail={"credit_type": CreditType.FEATURED.value},
                    )

                window, listing_expires_at = promote_listing(
                    listing,
                    user_id,
                    listings=self.listings,
                    scheduler=self.scheduler,
                    now=self.clock(),
                    feature_days=self.feature_duration_days,
                    renewal_days=self.listing_renewal_days,
                )
                transaction = self.ledger.record_transaction(
                    Transaction(
                        user_id=user_id,
                        credit_type=CreditType.FEATURED,
                        amount=-1,
                        status=TransactionStatus.COMPLETED,
                        description=f"Used 1 feature credit to feature listing {listing_id}",
                    )
                )
        except LedgerUnavailableError as exc:
            raise StorageUnavailableError("Ledger storage unavailable") from exc

        self.event_logger.log(
            EntitlementAuditEvent(
                event_type=EntitlementAuditEventType.FEATURE_CREDIT_REDEEMED,
                user_id=user_id,
                metadata={"listing_id": listing_id},
            )
        )
        return RedemptionResult(
            listing_id=listing_id,
            window=window,
            balance=balance,
            listing_expires_at=listing_expires_at,
            transaction=transaction,
        )

    def adjust_credits(
        self,
        *,
        actor_id: str,
        user_id: str,
        credit_type: CreditType,
        amount: int,
        reason: Optional[str] = None,
    ) -> Tuple[Transaction, CreditBalance]:
        """Grant (positive ``amount``) or revoke (negative) credits on behalf of an admin."""

        if amount == 0:
            raise ValueError("amount must be non-zero")

        try:
            with self.ledger.atomic():
                if amount > 0:
                    balance = self.ledger.increment_balance(user_id, credit_type, amount)
                else:
                    revoked = self.ledger.decrement_balance(user_id, credit_type, -amount)
                    if revoked is None:
                        raise InsufficientCreditsError(
                            "Balance is lower than the requested revocation",
                            detail={"credit_type": credit_type.value},
                        )
                    balance = revoked
                description = f"Admin adjustment by {actor_id}"
                if reason:
                    description = f"{description}: {reason}"
                transaction = self.ledger.record_transaction(
                    Transaction(
                        user_id=user_id,
                        credit_type=credit_type,
                        amount=amount,
                        status=TransactionStatus.COMPLETED,
                        description=description,
                    )
                )
        except LedgerUnavailableError as exc:
            raise StorageUnavailableError("Ledger storage unavailable") from exc

        logger.info(
            "Admin %s adjusted %s credits for user %s by %s (balance=%s)",
            actor_id,
            credit_type.value,
            user_id,
            amount,
            balance.amount,
        )
        self.event_logger.log(
            EntitlementAuditEvent(
                event_type=EntitlementAuditEventType.CREDITS_ADJUSTED,
                user_id=user_id,
                metadata={"actor_id": actor_id, "amount": str(amount), "credit_type": credit_type.value},
            )
        )
        return transaction, balance


__all__ = ["CreditService"]
