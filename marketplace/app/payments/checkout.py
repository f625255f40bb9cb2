"""Checkout initiation for credit packages and listing promotion."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict

from ..entitlements.catalog import CREDIT_PACKAGE_CATALOG, get_credit_package
from ..entitlements.exceptions import ListingNotFoundError, ListingNotOwnedError, StorageUnavailableError
from ..entitlements.models import PaymentPurpose
from ..ledger.exceptions import LedgerUnavailableError
from ..ledger.models import CreditType, Transaction, TransactionStatus
from ..ledger.store import LedgerStore, ListingStore
from .provider import PaymentProvider

logger = logging.getLogger("payments")


class CheckoutSession(BaseModel):
    """Hosted checkout created for a pending ledger transaction."""

    session_id: str
    checkout_url: Optional[str] = None
    expires_at: Optional[datetime] = None
    transaction: Optional[Transaction] = None

    model_config = ConfigDict(populate_by_name=True, frozen=True)


@dataclass
class CheckoutService:
    """Creates provider checkout sessions and their pending ledger rows."""

    ledger: LedgerStore
    listings: ListingStore
    provider: PaymentProvider
    app_base_url: str
    price_ids: Mapping[str, str]
    feature_price_id: Optional[str] = None

    def create_credit_checkout(
        self,
        *,
        user_id: str,
        package_key: str,
        customer_email: Optional[str] = None,
    ) -> CheckoutSession:
        try:
            package = get_credit_package(package_key)
        except KeyError as exc:
            raise ValueError(
                f"Unknown credit package {package_key!r}; expected one of {sorted(CREDIT_PACKAGE_CATALOG)}"
            ) from exc
        price_id = self.price_ids.get(package.key)
        if not price_id:
            raise ValueError(f"No price configured for credit package {package.key!r}")

        metadata: Dict[str, str] = {
            "purpose": PaymentPurpose.CREDIT.value,
            "userId": user_id,
            "credits": str(package.credits),
            "creditType": package.credit_type.value,
            "priceId": package.key,
        }
        session = self.provider.create_checkout_session(
            price_id=price_id,
            quantity=1,
            metadata=metadata,
            success_url=f"{self.app_base_url}/marketplace/credits?success=true&session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{self.app_base_url}/marketplace/credits?canceled=true",
            customer_email=customer_email,
        )
        logger.info("Created credit checkout %s for user %s package=%s", session["id"], user_id, package.key)

        try:
            transaction = self.ledger.create_pending_transaction(
                Transaction(
                    user_id=user_id,
                    credit_type=package.credit_type,
                    amount=package.credits,
                    status=TransactionStatus.PENDING,
                    external_reference_id=session["id"],
                    description=f"Pending purchase of {package.credits} {package.credit_type.value} credits",
                )
            )
        except LedgerUnavailableError as exc:
            raise StorageUnavailableError("Could not record pending transaction") from exc

        return CheckoutSession(
            session_id=session["id"],
            checkout_url=session.get("url"),
            expires_at=session.get("expires_at"),
            transaction=transaction,
        )

    def create_feature_checkout(
        self,
        *,
        user_id: str,
        listing_id: str,
        customer_email: Optional[str] = None,
    ) -> CheckoutSession:
        if not self.feature_price_id:
            raise ValueError("No price configured for featured listings")

        try:
            listing = self.listings.get_listing(listing_id)
        except LedgerUnavailableError as exc:
            raise StorageUnavailableError("Ledger storage unavailable") from exc
        if listing is None:
            raise ListingNotFoundError(f"Listing {listing_id} not found")
        if listing.owner_id != user_id:
            raise ListingNotOwnedError("Listing does not belong to the current user")

        metadata = {
            "purpose": PaymentPurpose.FEATURE.value,
            "userId": user_id,
            "listingId": listing_id,
        }
        session = self.provider.create_checkout_session(
            price_id=self.feature_price_id,
            quantity=1,
            metadata=metadata,
            success_url=f"{self.app_base_url}/marketplace/listing/{listing_id}?success=true",
            cancel_url=f"{self.app_base_url}/marketplace/listing/{listing_id}?canceled=true",
            customer_email=customer_email,
        )
        logger.info("Created feature checkout %s for listing %s", session["id"], listing_id)

        transaction: Optional[Transaction] = None
        try:
            transaction = self.ledger.create_pending_transaction(
                Transaction(
                    user_id=user_id,
                    credit_type=CreditType.FEATURED,
                    amount=1,
                    status=TransactionStatus.PENDING,
                    external_reference_id=session["id"],
                    description=f"Feature listing purchase for listing {listing_id}",
                )
            )
        except LedgerUnavailableError:
            # The webhook inserts the completed row itself when no pending row exists.
            logger.warning("Could not record pending transaction for checkout %s", session["id"])

        return CheckoutSession(
            session_id=session["id"],
            checkout_url=session.get("url"),
            expires_at=session.get("expires_at"),
            transaction=transaction,
        )


__all__ = ["CheckoutService", "CheckoutSession"]
