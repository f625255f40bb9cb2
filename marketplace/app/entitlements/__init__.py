"""Entitlements domain: payment interpretation, credit grants and feature placement."""

from .catalog import CREDIT_PACKAGE_CATALOG, CreditPackage, get_credit_package, resolve_credit_type
from .credits import CreditService
from .exceptions import (
    ApplyFailedError,
    EntitlementError,
    InsufficientCreditsError,
    ListingNotFoundError,
    ListingNotOwnedError,
    MissingMetadataError,
    StorageUnavailableError,
)
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
    RedemptionResult,
)
from .scheduler import FeatureWindowScheduler, extended_expiry
from .service import EntitlementEngine, EntitlementEventLogger, parse_purchase

__all__ = [
    "CREDIT_PACKAGE_CATALOG",
    "ApplyFailedError",
    "CreditPackage",
    "CreditPurchase",
    "CreditService",
    "EntitlementAuditEvent",
    "EntitlementAuditEventType",
    "EntitlementEngine",
    "EntitlementError",
    "EntitlementEventLogger",
    "EntitlementResult",
    "FeaturePurchase",
    "FeatureWindowScheduler",
    "IdempotencyGuard",
    "InsufficientCreditsError",
    "ListingNotFoundError",
    "ListingNotOwnedError",
    "MissingMetadataError",
    "PaymentEvent",
    "PaymentPurpose",
    "Purchase",
    "RedemptionResult",
    "StorageUnavailableError",
    "extended_expiry",
    "get_credit_package",
    "parse_purchase",
    "resolve_credit_type",
]
