"""Domain models for the credit ledger and promoted placements."""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class CreditType(str, Enum):
    """Closed set of credit kinds a user can hold."""

    STANDARD = "standard"
    FEATURED = "featured"
    EVENT = "event"


class TransactionStatus(str, Enum):
    """Lifecycle status for a ledger transaction."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class Transaction(BaseModel):
    """Durable ledger row describing a credit movement."""

    id: Optional[int] = None
    user_id: str
    credit_type: CreditType
    amount: int
    status: TransactionStatus = TransactionStatus.PENDING
    external_reference_id: Optional[str] = Field(
        default=None,
        description="Payment provider reference, unique among completed rows",
    )
    description: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @property
    def is_completed(self) -> bool:
        return self.status == TransactionStatus.COMPLETED


class CreditBalance(BaseModel):
    """Current credit count for a user and credit type."""

    user_id: str
    credit_type: CreditType
    amount: int = 0
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class FeatureWindow(BaseModel):
    """Time-bounded promoted placement for a listing."""

    id: Optional[int] = None
    listing_id: str
    owner_id: str
    start_at: datetime
    end_at: datetime

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @field_validator("end_at")
    @classmethod
    def _end_after_start(cls, value: datetime, info) -> datetime:
        start_at = info.data.get("start_at")
        if start_at is not None and value <= start_at:
            raise ValueError("end_at must be after start_at")
        return value

    def is_active(self, now: datetime) -> bool:
        """Return ``True`` while the window has not yet ended."""
        return self.end_at > now


class Listing(BaseModel):
    """Subset of a marketplace listing owned by the listing subsystem."""

    id: str
    owner_id: str
    title: Optional[str] = None
    expires_at: Optional[datetime] = None

    model_config = ConfigDict(populate_by_name=True, frozen=True)


__all__ = [
    "CreditBalance",
    "CreditType",
    "FeatureWindow",
    "Listing",
    "Transaction",
    "TransactionStatus",
]
