"""Tests for the Stripe webhook receiver."""
from __future__ import annotations

import hashlib
import hmac
import json
import time

import pytest
from fastapi import FastAPI, HTTPException
from fastapi.testclient import TestClient

from marketplace.app.entitlements import EntitlementEngine
from marketplace.app.ledger.models import CreditType
from marketplace.app.payments import StripePaymentProvider
from marketplace.app.routes import payments as payments_routes

WEBHOOK_SECRET = "whsec_test_secret"


def _sign(payload: str, *, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    timestamp = int(time.time()) if timestamp is None else timestamp
    digest = hmac.new(secret.encode("utf-8"), f"{timestamp}.{payload}".encode("utf-8"), hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def _event(event_type: str = "checkout.session.completed", **metadata: str) -> str:
    session = {
        "id": "cs_test_1",
        "object": "checkout.session",
        "amount_total": 6500,
        "currency": "eur",
        "client_reference_id": None,
        "metadata": {"purpose": "credit", "userId": "user-1", "credits": "5", "creditType": "standard", **metadata},
    }
    return json.dumps({"id": "evt_1", "type": event_type, "data": {"object": session}})


@pytest.fixture
def webhook_components(store, event_logger, clock, monkeypatch):
    provider = StripePaymentProvider(secret_key=None, webhook_secret=WEBHOOK_SECRET, tolerance_seconds=300)
    engine = EntitlementEngine(
        ledger=store,
        windows=store,
        listings=store,
        event_logger=event_logger,
        clock=clock,
    )
    monkeypatch.setattr(payments_routes, "get_payment_provider", lambda: provider)
    monkeypatch.setattr(payments_routes, "get_entitlement_engine", lambda: engine)
    return engine, store, event_logger


def test_completed_checkout_grants_credits(webhook_components):
    _, store, _ = webhook_components
    payload = _event()

    response = payments_routes.process_webhook(payload.encode("utf-8"), _sign(payload))

    assert response.applied is True
    assert response.reference_id == "cs_test_1"
    assert store.balance_of("user-1", CreditType.STANDARD) == 5


def test_redelivered_checkout_is_skipped(webhook_components):
    _, store, _ = webhook_components
    payload = _event()

    payments_routes.process_webhook(payload.encode("utf-8"), _sign(payload))
    response = payments_routes.process_webhook(payload.encode("utf-8"), _sign(payload))

    assert response.skipped is True
    assert store.balance_of("user-1", CreditType.STANDARD) == 5


def test_invalid_signature_is_rejected_without_state_change(webhook_components):
    _, store, event_logger = webhook_components
    payload = _event()

    with pytest.raises(HTTPException) as excinfo:
        payments_routes.process_webhook(payload.encode("utf-8"), _sign(payload, secret="whsec_other"))

    assert excinfo.value.status_code == 400
    assert store.transactions == []
    assert event_logger.events == []


def test_missing_signature_header_is_rejected(webhook_components):
    payload = _event()

    with pytest.raises(HTTPException) as excinfo:
        payments_routes.process_webhook(payload.encode("utf-8"), None)

    assert excinfo.value.status_code == 400


def test_stale_signature_is_rejected(webhook_components):
    payload = _event()

    with pytest.raises(HTTPException) as excinfo:
        payments_routes.process_webhook(payload.encode("utf-8"), _sign(payload, timestamp=int(time.time()) - 3600))

    assert excinfo.value.status_code == 400


def test_other_event_types_are_acknowledged(webhook_components):
    _, store, _ = webhook_components
    payload = _event("payment_intent.created")

    response = payments_routes.process_webhook(payload.encode("utf-8"), _sign(payload))

    assert response.received is True
    assert response.ignored is True
    assert store.transactions == []


def test_missing_metadata_returns_bad_request(webhook_components):
    payload = json.dumps(
        {
            "id": "evt_2",
            "type": "checkout.session.completed",
            "data": {"object": {"id": "cs_test_2", "metadata": {"purpose": "credit"}}},
        }
    )

    with pytest.raises(HTTPException) as excinfo:
        payments_routes.process_webhook(payload.encode("utf-8"), _sign(payload))

    assert excinfo.value.status_code == 400
    assert excinfo.value.detail["error"] == "missing_metadata"


def test_storage_outage_asks_for_redelivery(webhook_components):
    _, store, _ = webhook_components
    store.unavailable = True
    payload = _event()

    with pytest.raises(HTTPException) as excinfo:
        payments_routes.process_webhook(payload.encode("utf-8"), _sign(payload))

    assert excinfo.value.status_code == 503
    assert excinfo.value.detail["message"] == payments_routes.PAYMENT_PENDING_MESSAGE
    assert excinfo.value.detail["retryable"] is True


def test_webhook_endpoint_reads_raw_body(webhook_components):
    _, store, _ = webhook_components
    app = FastAPI()
    app.include_router(payments_routes.router)
    client = TestClient(app)
    payload = _event()

    response = client.post(
        "/api/webhooks/stripe",
        content=payload.encode("utf-8"),
        headers={"Stripe-Signature": _sign(payload), "Content-Type": "application/json"},
    )

    assert response.status_code == 200
    assert response.json()["applied"] is True
    assert response.json()["referenceId"] == "cs_test_1"
    assert store.balance_of("user-1", CreditType.STANDARD) == 5


def test_webhook_endpoint_rejects_bad_signature(webhook_components):
    app = FastAPI()
    app.include_router(payments_routes.router)
    client = TestClient(app)
    payload = _event()

    response = client.post(
        "/api/webhooks/stripe",
        content=payload.encode("utf-8"),
        headers={"Stripe-Signature": "t=1,v1=deadbeef"},
    )

    assert response.status_code == 400
