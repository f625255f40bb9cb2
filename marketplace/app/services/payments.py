"""Application wiring for entitlements, credits and checkout."""
from __future__ import annotations

import logging
from functools import lru_cache

from ..entitlements import CreditService, EntitlementAuditEvent, EntitlementEngine, EntitlementEventLogger
from ..ledger.repository import PostgresLedgerRepository
from ..payments import CheckoutService, StripePaymentProvider
from ...config import PaymentsConfig, load_payments_config


logger = logging.getLogger("entitlements")


class LoggingEntitlementEventLogger(EntitlementEventLogger):
    """Forwards entitlement audit events to the application logger."""

    def log(self, event: EntitlementAuditEvent) -> None:
        logger.info(
            "Entitlement event %s user=%s reference=%s metadata=%s",
            event.event_type.value,
            event.user_id,
            event.reference_id,
            event.metadata,
        )


@lru_cache(maxsize=1)
def get_payments_config() -> PaymentsConfig:
    return load_payments_config()


@lru_cache(maxsize=1)
def get_payment_provider() -> StripePaymentProvider:
    config = get_payments_config()
    return StripePaymentProvider(
        secret_key=config.stripe_secret_key,
        webhook_secret=config.stripe_webhook_secret,
        tolerance_seconds=config.webhook_tolerance_seconds,
    )


@lru_cache(maxsize=1)
def get_entitlement_engine() -> EntitlementEngine:
    config = get_payments_config()
    repository = PostgresLedgerRepository()
    return EntitlementEngine(
        ledger=repository,
        windows=repository,
        listings=repository,
        event_logger=LoggingEntitlementEventLogger(),
        feature_duration_days=config.feature_duration_days,
        listing_renewal_days=config.listing_renewal_days,
    )


@lru_cache(maxsize=1)
def get_credit_service() -> CreditService:
    config = get_payments_config()
    repository = PostgresLedgerRepository()
    return CreditService(
        ledger=repository,
        windows=repository,
        listings=repository,
        event_logger=LoggingEntitlementEventLogger(),
        feature_duration_days=config.feature_duration_days,
        listing_renewal_days=config.listing_renewal_days,
    )


@lru_cache(maxsize=1)
def get_checkout_service() -> CheckoutService:
    config = get_payments_config()
    repository = PostgresLedgerRepository()
    return CheckoutService(
        ledger=repository,
        listings=repository,
        provider=get_payment_provider(),
        app_base_url=config.app_base_url,
        price_ids=dict(config.price_ids),
        feature_price_id=config.feature_price_id,
    )


__all__ = [
    "LoggingEntitlementEventLogger",
    "get_checkout_service",
    "get_credit_service",
    "get_entitlement_engine",
    "get_payment_provider",
    "get_payments_config",
]
