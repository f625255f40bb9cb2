"""Stripe integration: webhook verification, event parsing and checkout sessions."""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional, Protocol

import stripe

from ..entitlements.models import PaymentEvent

logger = logging.getLogger("payments")

CHECKOUT_COMPLETED_EVENT = "checkout.session.completed"


class WebhookSignatureError(ValueError):
    """The webhook payload could not be authenticated or decoded."""


class PaymentProvider(Protocol):
    """External payment processor integration."""

    def verify_event(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """Authenticate a webhook delivery and return the decoded event."""

    def create_checkout_session(
        self,
        *,
        price_id: str,
        quantity: int,
        metadata: Dict[str, str],
        success_url: str,
        cancel_url: str,
        customer_email: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Create a hosted checkout session."""


class StripePaymentProvider:
    """:class:`PaymentProvider` backed by the Stripe API."""

    def __init__(
        self,
        *,
        secret_key: Optional[str],
        webhook_secret: Optional[str],
        tolerance_seconds: int = 300,
    ) -> None:
        self._secret_key = secret_key
        self._webhook_secret = webhook_secret
        self._tolerance_seconds = tolerance_seconds

    def verify_event(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        if not self._webhook_secret:
            raise WebhookSignatureError("Webhook secret is not configured")
        if not signature:
            raise WebhookSignatureError("Missing Stripe-Signature header")

        try:
            body = payload.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise WebhookSignatureError("Webhook payload is not valid UTF-8") from exc

        try:
            stripe.WebhookSignature.verify_header(
                body,
                signature,
                self._webhook_secret,
                self._tolerance_seconds,
            )
        except stripe.SignatureVerificationError as exc:
            raise WebhookSignatureError(f"Invalid webhook signature: {exc}") from exc

        try:
            event = json.loads(body)
        except ValueError as exc:
            raise WebhookSignatureError("Webhook payload is not valid JSON") from exc
        if not isinstance(event, dict) or "type" not in event:
            raise WebhookSignatureError("Webhook payload is not an event object")
        return event

    def create_checkout_session(
        self,
        *,
        price_id: str,
        quantity: int,
        metadata: Dict[str, str],
        success_url: str,
        cancel_url: str,
        customer_email: Optional[str] = None,
    ) -> Dict[str, Any]:
        if not self._secret_key:
            raise RuntimeError("Stripe secret key is not configured")

        params: Dict[str, Any] = {
            "mode": "payment",
            "payment_method_types": ["card"],
            "line_items": [{"price": price_id, "quantity": quantity}],
            "metadata": metadata,
            "success_url": success_url,
            "cancel_url": cancel_url,
        }
        if customer_email:
            params["customer_email"] = customer_email
        if metadata.get("userId"):
            params["client_reference_id"] = metadata["userId"]

        session = stripe.checkout.Session.create(api_key=self._secret_key, **params)
        expires_at = getattr(session, "expires_at", None)
        return {
            "id": session.id,
            "url": getattr(session, "url", None),
            "expires_at": datetime.fromtimestamp(expires_at, tz=timezone.utc) if expires_at else None,
            "metadata": metadata,
        }


def payment_event_from_checkout_session(session: Mapping[str, Any]) -> PaymentEvent:
    """Build a :class:`PaymentEvent` from a ``checkout.session`` object."""

    raw_metadata = session.get("metadata") or {}
    metadata = {str(key): str(value) for key, value in raw_metadata.items() if value is not None}
    payer_id = session.get("client_reference_id") or metadata.get("userId")
    return PaymentEvent(
        reference_id=str(session.get("id") or ""),
        payer_id=payer_id,
        purpose=metadata.get("purpose"),
        amount_total=session.get("amount_total"),
        currency=session.get("currency"),
        metadata=metadata,
    )


__all__ = [
    "CHECKOUT_COMPLETED_EVENT",
    "PaymentProvider",
    "StripePaymentProvider",
    "WebhookSignatureError",
    "payment_event_from_checkout_session",
]
