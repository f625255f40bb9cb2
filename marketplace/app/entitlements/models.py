"""Domain models for payment events and the entitlements they produce."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..ledger.models import CreditBalance, CreditType, FeatureWindow, Transaction


class PaymentPurpose(str, Enum):
    """What a confirmed payment was bought for."""

    CREDIT = "credit"
    FEATURE = "feature"


class PaymentEvent(BaseModel):
    """A single confirmed external payment, delivered at least once."""

    reference_id: str = Field(min_length=1, description="Provider checkout session id")
    payer_id: Optional[str] = None
    purpose: Optional[str] = None
    quantity: int = 1
    amount_total: Optional[int] = Field(default=None, description="Minor currency units")
    currency: Optional[str] = None
    metadata: Dict[str, str] = Field(default_factory=dict)
    received_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, value: Optional[str]) -> Optional[str]:
        return value.upper() if value else value


@dataclass(frozen=True)
class CreditPurchase:
    """Payment that grants ``quantity`` credits of ``credit_type``."""

    reference_id: str
    user_id: str
    credit_type: CreditType
    quantity: int

    purpose = PaymentPurpose.CREDIT


@dataclass(frozen=True)
class FeaturePurchase:
    """Payment that promotes ``listing_id`` for one feature window."""

    reference_id: str
    user_id: str
    listing_id: str

    purpose = PaymentPurpose.FEATURE


Purchase = Union[CreditPurchase, FeaturePurchase]


class EntitlementResult(BaseModel):
    """Outcome of applying a payment event."""

    reference_id: str
    applied: bool = False
    skipped: bool = False
    reason: Optional[str] = None
    purpose: Optional[PaymentPurpose] = None
    balance: Optional[CreditBalance] = None
    window: Optional[FeatureWindow] = None
    listing_expires_at: Optional[datetime] = None
    transaction: Optional[Transaction] = None

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @classmethod
    def already_processed(cls, reference_id: str, purpose: Optional[PaymentPurpose] = None) -> "EntitlementResult":
        return cls(reference_id=reference_id, skipped=True, reason="already_processed", purpose=purpose)


class EntitlementAuditEventType(str, Enum):
    """Audit event categories emitted by the entitlements subsystem."""

    CREDITS_PURCHASED = "credits_purchased"
    LISTING_FEATURED = "listing_featured"
    PAYMENT_SKIPPED = "payment_skipped"
    PAYMENT_FAILED = "payment_failed"
    FEATURE_CREDIT_REDEEMED = "feature_credit_redeemed"
    CREDITS_ADJUSTED = "credits_adjusted"


class EntitlementAuditEvent(BaseModel):
    """Structured audit event for reconciliation and analytics."""

    event_type: EntitlementAuditEventType
    user_id: Optional[str] = None
    reference_id: Optional[str] = None
    metadata: Dict[str, str] = Field(default_factory=dict)
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class RedemptionResult(BaseModel):
    """Result of spending a featured credit on a listing."""

    listing_id: str
    window: FeatureWindow
    balance: CreditBalance
    listing_expires_at: Optional[datetime] = None
    transaction: Transaction

    model_config = ConfigDict(populate_by_name=True, frozen=True)


__all__ = [
    "CreditPurchase",
    "EntitlementAuditEvent",
    "EntitlementAuditEventType",
    "EntitlementResult",
    "FeaturePurchase",
    "PaymentEvent",
    "PaymentPurpose",
    "Purchase",
    "RedemptionResult",
]
