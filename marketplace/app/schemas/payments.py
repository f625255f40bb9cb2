"""API schemas for checkout, credit and featured listing endpoints."""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..entitlements.models import EntitlementResult, RedemptionResult
from ..ledger.models import CreditBalance, CreditType, FeatureWindow, Transaction
from ..payments import CheckoutSession


class CreditCheckoutRequest(BaseModel):
    package_key: str = Field(alias="packageKey", min_length=1)

    model_config = ConfigDict(populate_by_name=True)


class FeatureCheckoutRequest(BaseModel):
    listing_id: str = Field(alias="listingId", min_length=1)

    model_config = ConfigDict(populate_by_name=True)


class CheckoutSessionResponse(BaseModel):
    session_id: str = Field(alias="sessionId")
    url: Optional[str] = None
    expires_at: Optional[datetime] = Field(alias="expiresAt", default=None)

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_checkout(cls, session: CheckoutSession) -> "CheckoutSessionResponse":
        return cls(session_id=session.session_id, url=session.checkout_url, expires_at=session.expires_at)


class WebhookResponse(BaseModel):
    received: bool = True
    ignored: bool = False
    applied: bool = False
    skipped: bool = False
    reference_id: Optional[str] = Field(alias="referenceId", default=None)

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_result(cls, result: EntitlementResult) -> "WebhookResponse":
        return cls(applied=result.applied, skipped=result.skipped, reference_id=result.reference_id)


class CreditBalanceItem(BaseModel):
    credit_type: CreditType = Field(alias="creditType")
    amount: int
    updated_at: Optional[datetime] = Field(alias="updatedAt", default=None)

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_balance(cls, balance: CreditBalance) -> "CreditBalanceItem":
        return cls(credit_type=balance.credit_type, amount=balance.amount, updated_at=balance.updated_at)


class CreditBalancesResponse(BaseModel):
    user_id: str = Field(alias="userId")
    balances: List[CreditBalanceItem]

    model_config = ConfigDict(populate_by_name=True)


class FeatureWindowItem(BaseModel):
    listing_id: str = Field(alias="listingId")
    start_at: datetime = Field(alias="startAt")
    end_at: datetime = Field(alias="endAt")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_window(cls, window: FeatureWindow) -> "FeatureWindowItem":
        return cls(listing_id=window.listing_id, start_at=window.start_at, end_at=window.end_at)


class FeaturedListingsResponse(BaseModel):
    windows: List[FeatureWindowItem]

    model_config = ConfigDict(populate_by_name=True)


class FeatureRedemptionResponse(BaseModel):
    listing_id: str = Field(alias="listingId")
    featured_until: datetime = Field(alias="featuredUntil")
    listing_expires_at: Optional[datetime] = Field(alias="listingExpiresAt", default=None)
    remaining_credits: int = Field(alias="remainingCredits")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_result(cls, result: RedemptionResult) -> "FeatureRedemptionResponse":
        return cls(
            listing_id=result.listing_id,
            featured_until=result.window.end_at,
            listing_expires_at=result.listing_expires_at,
            remaining_credits=result.balance.amount,
        )


class CreditAdjustmentRequest(BaseModel):
    user_id: str = Field(alias="userId", min_length=1)
    credit_type: CreditType = Field(alias="creditType")
    amount: int
    reason: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("amount")
    @classmethod
    def _non_zero(cls, value: int) -> int:
        if value == 0:
            raise ValueError("amount must be non-zero")
        return value


class CreditAdjustmentResponse(BaseModel):
    transaction: Transaction
    balance: CreditBalanceItem

    model_config = ConfigDict(populate_by_name=True)


class TransactionListResponse(BaseModel):
    transactions: List[Transaction]

    model_config = ConfigDict(populate_by_name=True)
