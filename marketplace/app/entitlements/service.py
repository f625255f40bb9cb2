"""Entitlement engine turning confirmed payments into credits and placements."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional, Protocol, Tuple

from ..ledger.exceptions import DuplicateCompletionError, LedgerUnavailableError
from ..ledger.models import CreditType, FeatureWindow, Listing
from ..ledger.store import FeatureWindowStore, LedgerStore, ListingStore
from .catalog import resolve_credit_type
from .exceptions import ApplyFailedError, EntitlementError, MissingMetadataError, StorageUnavailableError
from .idempotency import IdempotencyGuard
from .models import (
    CreditPurchase,
    EntitlementAuditEvent,
    EntitlementAuditEventType,
    EntitlementResult,
    FeaturePurchase,
    PaymentEvent,
    PaymentPurpose,
    Purchase,
)
from .scheduler import FeatureWindowScheduler, extended_expiry

logger = logging.getLogger("entitlements")


class EntitlementEventLogger(Protocol):
    """Captures structured entitlement audit events."""

    def log(self, event: EntitlementAuditEvent) -> None:
        ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _metadata_value(metadata: dict, *keys: str) -> Optional[str]:
    for key in keys:
        value = metadata.get(key)
        if value is not None and str(value).strip():
            return str(value).strip()
    return None


def parse_purchase(event: PaymentEvent) -> Purchase:
    """Interpret event metadata as a :data:`Purchase` variant.

    Raises :class:`MissingMetadataError` when the purpose or target is absent.
    """

    metadata = event.metadata
    raw_purpose = event.purpose or _metadata_value(metadata, "purpose")
    if raw_purpose is None:
        raise MissingMetadataError("purpose missing from payment metadata", detail={"field": "purpose"})
    try:
        purpose = PaymentPurpose(raw_purpose.strip().lower())
    except ValueError as exc:
        raise MissingMetadataError(
            f"Unsupported payment purpose {raw_purpose!r}", detail={"field": "purpose"}
        ) from exc

    user_id = _metadata_value(metadata, "userId", "user_id")
    if not user_id:
        raise MissingMetadataError("userId missing from payment metadata", detail={"field": "userId"})

    if purpose == PaymentPurpose.FEATURE:
        listing_id = _metadata_value(metadata, "listingId", "listing_id")
        if not listing_id:
            raise MissingMetadataError("listingId missing from payment metadata", detail={"field": "listingId"})
        return FeaturePurchase(reference_id=event.reference_id, user_id=user_id, listing_id=listing_id)

    credit_type = resolve_credit_type(_metadata_value(metadata, "creditType", "credit_type"))
    if credit_type is None:
        raise MissingMetadataError("Unsupported creditType in payment metadata", detail={"field": "creditType"})

    raw_quantity = _metadata_value(metadata, "credits", "quantity")
    try:
        quantity = int(raw_quantity) if raw_quantity is not None else event.quantity
    except ValueError as exc:
        raise MissingMetadataError("credits must be an integer", detail={"field": "credits"}) from exc
    if quantity < 1:
        raise MissingMetadataError("credits must be >= 1", detail={"field": "credits"})

    return CreditPurchase(
        reference_id=event.reference_id,
        user_id=user_id,
        credit_type=credit_type,
        quantity=quantity,
    )


def promote_listing(
    listing: Listing,
    owner_id: str,
    *,
    listings: ListingStore,
    scheduler: FeatureWindowScheduler,
    now: datetime,
    feature_days: int,
    renewal_days: int,
) -> Tuple[FeatureWindow, Optional[datetime]]:
    """Extend a near-expiry listing, then open or renew its feature window.

    Returns the window and the listing's resulting expiry.
    """

    expires_at = listing.expires_at
    new_expiry = extended_expiry(expires_at, now, feature_days=feature_days, renewal_days=renewal_days)
    if new_expiry is not None:
        updated = listings.update_listing_expiry(listing.id, new_expiry)
        if updated is None:
            raise LookupError(f"Listing {listing.id} disappeared while extending expiry")
        logger.info(
            "Extended listing %s expiry from %s to %s",
            listing.id,
            expires_at.isoformat() if expires_at else None,
            new_expiry.isoformat(),
        )
        expires_at = updated.expires_at

    window = scheduler.schedule_or_renew(listing.id, owner_id, feature_days)
    return window, expires_at


@dataclass
class EntitlementEngine:
    """Applies each confirmed payment exactly once.

    Effects and the completion of the ledger transaction are written inside a
    single ``ledger.atomic()`` unit, so a duplicate completion rejected by the
    storage layer rolls back the balance or window change with it.
    """

    ledger: LedgerStore
    windows: FeatureWindowStore
    listings: ListingStore
    event_logger: EntitlementEventLogger
    feature_duration_days: int = 15
    listing_renewal_days: int = 30
    clock: Callable[[], datetime] = field(default=_utcnow)
    guard: IdempotencyGuard = field(init=False)
    scheduler: FeatureWindowScheduler = field(init=False)

    def __post_init__(self) -> None:
        self.guard = IdempotencyGuard(self.ledger)
        self.scheduler = FeatureWindowScheduler(self.windows, clock=self.clock)

    def apply(self, event: PaymentEvent) -> EntitlementResult:
        purchase = parse_purchase(event)

        try:
            if not self.guard.should_process(purchase.reference_id):
                return self._skipped(purchase)

            with self.ledger.atomic():
                if isinstance(purchase, CreditPurchase):
                    result = self._apply_credit_purchase(purchase)
                else:
                    result = self._apply_feature_purchase(purchase)
        except DuplicateCompletionError:
            logger.warning(
                "Duplicate completion for payment %s rejected by storage; effects rolled back",
                purchase.reference_id,
                extra={"payment_reference": purchase.reference_id},
            )
            return self._skipped(purchase)
        except LedgerUnavailableError as exc:
            logger.warning("Ledger unavailable while applying payment %s: %s", purchase.reference_id, exc)
            raise StorageUnavailableError(
                "Ledger storage unavailable", detail={"reference_id": purchase.reference_id}
            ) from exc
        except ApplyFailedError as exc:
            self._record_failure(event, purchase, exc)
            raise
        except EntitlementError:
            raise
        except Exception as exc:
            failure = ApplyFailedError(
                f"Failed to apply payment {purchase.reference_id}",
                detail={"reference_id": purchase.reference_id},
            )
            self._record_failure(event, purchase, failure)
            raise failure from exc

        self.event_logger.log(
            EntitlementAuditEvent(
                event_type=(
                    EntitlementAuditEventType.CREDITS_PURCHASED
                    if isinstance(purchase, CreditPurchase)
                    else EntitlementAuditEventType.LISTING_FEATURED
                ),
                user_id=purchase.user_id,
                reference_id=purchase.reference_id,
            )
        )
        return result

    def _apply_credit_purchase(self, purchase: CreditPurchase) -> EntitlementResult:
        balance = self.ledger.increment_balance(purchase.user_id, purchase.credit_type, purchase.quantity)
        plural = "s" if purchase.quantity > 1 else ""
        transaction = self.ledger.complete_transaction(
            reference_id=purchase.reference_id,
            user_id=purchase.user_id,
            credit_type=purchase.credit_type,
            amount=purchase.quantity,
            description=f"Purchase of {purchase.quantity} {purchase.credit_type.value} credit{plural}",
        )
        logger.info(
            "Granted %s %s credits to user %s (balance=%s)",
            purchase.quantity,
            purchase.credit_type.value,
            purchase.user_id,
            balance.amount,
            extra={"payment_reference": purchase.reference_id},
        )
        return EntitlementResult(
            reference_id=purchase.reference_id,
            applied=True,
            purpose=PaymentPurpose.CREDIT,
            balance=balance,
            transaction=transaction,
        )

    def _apply_feature_purchase(self, purchase: FeaturePurchase) -> EntitlementResult:
        listing = self.listings.get_listing(purchase.listing_id)
        if listing is None:
            raise ApplyFailedError(
                f"Listing {purchase.listing_id} not found for paid feature",
                detail={"reference_id": purchase.reference_id, "listing_id": purchase.listing_id},
            )
        if listing.owner_id != purchase.user_id:
            logger.warning(
                "Feature purchase %s by user %s targets listing %s owned by %s",
                purchase.reference_id,
                purchase.user_id,
                listing.id,
                listing.owner_id,
            )

        window, listing_expires_at = promote_listing(
            listing,
            purchase.user_id,
            listings=self.listings,
            scheduler=self.scheduler,
            now=self.clock(),
            feature_days=self.feature_duration_days,
            renewal_days=self.listing_renewal_days,
        )
        transaction = self.ledger.complete_transaction(
            reference_id=purchase.reference_id,
            user_id=purchase.user_id,
            credit_type=CreditType.FEATURED,
            amount=1,
            description=f"Featured listing {listing.id} for {self.feature_duration_days} days",
        )
        return EntitlementResult(
            reference_id=purchase.reference_id,
            applied=True,
            purpose=PaymentPurpose.FEATURE,
            window=window,
            listing_expires_at=listing_expires_at,
            transaction=transaction,
        )

    def _skipped(self, purchase: Purchase) -> EntitlementResult:
        self.event_logger.log(
            EntitlementAuditEvent(
                event_type=EntitlementAuditEventType.PAYMENT_SKIPPED,
                user_id=purchase.user_id,
                reference_id=purchase.reference_id,
            )
        )
        return EntitlementResult.already_processed(purchase.reference_id, purchase.purpose)

    def _record_failure(self, event: PaymentEvent, purchase: Purchase, error: ApplyFailedError) -> None:
        logger.exception(
            "Failed to apply payment %s; manual reconciliation required: %s payload=%s",
            purchase.reference_id,
            error.message,
            event.model_dump_json(),
            extra={"payment_reference": purchase.reference_id},
        )
        try:
            self.ledger.mark_transaction_failed(purchase.reference_id)
        except LedgerUnavailableError:
            logger.warning("Could not mark transaction %s failed", purchase.reference_id)
        self.event_logger.log(
            EntitlementAuditEvent(
                event_type=EntitlementAuditEventType.PAYMENT_FAILED,
                user_id=purchase.user_id,
                reference_id=purchase.reference_id,
                metadata={"error": error.message},
            )
        )


__all__ = [
    "EntitlementEngine",
    "EntitlementEventLogger",
    "parse_purchase",
    "promote_listing",
]
