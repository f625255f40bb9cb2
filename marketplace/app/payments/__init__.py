"""Payment provider integration."""

from .checkout import CheckoutService, CheckoutSession
from .provider import (
    CHECKOUT_COMPLETED_EVENT,
    PaymentProvider,
    StripePaymentProvider,
    WebhookSignatureError,
    payment_event_from_checkout_session,
)

__all__ = [
    "CHECKOUT_COMPLETED_EVENT",
    "CheckoutService",
    "CheckoutSession",
    "PaymentProvider",
    "StripePaymentProvider",
    "WebhookSignatureError",
    "payment_event_from_checkout_session",
]
