"""API routes for Stripe webhooks and checkout initiation."""
from __future__ import annotations

import logging
import os
from typing import Any, Optional

from fastapi import APIRouter, Cookie, Depends, Header, HTTPException, Request, status
from fastapi.concurrency import run_in_threadpool
from pydantic import ValidationError

from ... import app_context
from ..entitlements import EntitlementError
from ..payments import CHECKOUT_COMPLETED_EVENT, WebhookSignatureError, payment_event_from_checkout_session
from ..schemas.payments import (
    CheckoutSessionResponse,
    CreditCheckoutRequest,
    FeatureCheckoutRequest,
    WebhookResponse,
)
from ..services.payments import get_checkout_service, get_entitlement_engine, get_payment_provider

logger = logging.getLogger("payments")

PAYMENT_PENDING_MESSAGE = "Payment not yet reflected; it will update shortly."

_SESSION_COOKIE_NAME = os.getenv("SESSION_COOKIE_NAME", "session")


def _get_current_user(
    session_token: Optional[str] = Cookie(None, alias=_SESSION_COOKIE_NAME),
) -> Any:
    return app_context.get_current_user(session_token=session_token)


def _entitlement_http_error(exc: EntitlementError) -> HTTPException:
    if not exc.retryable:
        return exc.to_http_exception()
    detail = {"error": exc.code, "message": PAYMENT_PENDING_MESSAGE, "retryable": True}
    return HTTPException(status_code=exc.status_code, detail=detail)


router = APIRouter(prefix="/api", tags=["payments"])


def process_webhook(payload: bytes, signature: Optional[str]) -> WebhookResponse:
    """Verify, parse and apply one webhook delivery."""

    provider = get_payment_provider()
    try:
        event = provider.verify_event(payload, signature)
    except WebhookSignatureError as exc:
        logger.warning("Rejected webhook delivery: %s", exc)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    event_type = event.get("type")
    if event_type != CHECKOUT_COMPLETED_EVENT:
        logger.debug("Ignoring webhook event %s of type %s", event.get("id"), event_type)
        return WebhookResponse(ignored=True)

    session = (event.get("data") or {}).get("object")
    if not isinstance(session, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Event has no checkout session")
    try:
        payment_event = payment_event_from_checkout_session(session)
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Malformed checkout session") from exc

    engine = get_entitlement_engine()
    try:
        result = engine.apply(payment_event)
    except EntitlementError as exc:
        logger.warning(
            "Webhook %s for payment %s not applied: %s",
            event.get("id"),
            payment_event.reference_id,
            exc.code,
            extra={"payment_reference": payment_event.reference_id},
        )
        raise _entitlement_http_error(exc) from exc

    return WebhookResponse.from_result(result)


@router.post("/webhooks/stripe", response_model=WebhookResponse)
async def receive_stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
) -> WebhookResponse:
    payload = await request.body()
    return await run_in_threadpool(process_webhook, payload, stripe_signature)


@router.post("/checkout/credits", response_model=CheckoutSessionResponse)
def create_credit_checkout(
    payload: CreditCheckoutRequest,
    *,
    current_user=Depends(_get_current_user),
) -> CheckoutSessionResponse:
    service = get_checkout_service()
    try:
        session = service.create_credit_checkout(
            user_id=str(current_user.id),
            package_key=payload.package_key,
            customer_email=getattr(current_user, "email", None),
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except EntitlementError as exc:
        raise exc.to_http_exception() from exc
    return CheckoutSessionResponse.from_checkout(session)


@router.post("/checkout/feature", response_model=CheckoutSessionResponse)
def create_feature_checkout(
    payload: FeatureCheckoutRequest,
    *,
    current_user=Depends(_get_current_user),
) -> CheckoutSessionResponse:
    service = get_checkout_service()
    try:
        session = service.create_feature_checkout(
            user_id=str(current_user.id),
            listing_id=payload.listing_id,
            customer_email=getattr(current_user, "email", None),
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except EntitlementError as exc:
        raise exc.to_http_exception() from exc
    return CheckoutSessionResponse.from_checkout(session)
