"""Tests for feature credit redemption and admin credit adjustments."""
from __future__ import annotations

from datetime import timedelta

import pytest

from marketplace.app.entitlements import (
    CreditService,
    InsufficientCreditsError,
    ListingNotFoundError,
    ListingNotOwnedError,
    StorageUnavailableError,
)
from marketplace.app.ledger.models import CreditType, TransactionStatus


@pytest.fixture
def credit_components(store, event_logger, clock):
    service = CreditService(
        ledger=store,
        windows=store,
        listings=store,
        event_logger=event_logger,
        feature_duration_days=15,
        listing_renewal_days=30,
        clock=clock,
    )
    return service, store, event_logger, clock


def test_list_balances_zero_fills_every_credit_type(credit_components):
    service, store, _, _ = credit_components
    store.increment_balance("user-1", CreditType.EVENT, 2)

    balances = {balance.credit_type: balance.amount for balance in service.list_balances("user-1")}

    assert balances == {CreditType.STANDARD: 0, CreditType.FEATURED: 0, CreditType.EVENT: 2}


def test_redeem_feature_credit_promotes_listing(credit_components):
    service, store, event_logger, clock = credit_components
    store.increment_balance("user-1", CreditType.FEATURED, 2)
    store.add_listing("listing-1", "user-1", expires_at=clock.now + timedelta(days=3))

    result = service.redeem_feature_credit("user-1", "listing-1")

    assert result.balance.amount == 1
    assert result.window.end_at == clock.now + timedelta(days=15)
    assert result.listing_expires_at == clock.now + timedelta(days=30)
    assert result.transaction.amount == -1
    assert result.transaction.status == TransactionStatus.COMPLETED
    assert event_logger.event_types == ["feature_credit_redeemed"]


def test_redeem_without_credits_changes_nothing(credit_components):
    service, store, event_logger, _ = credit_components
    store.add_listing("listing-1", "user-1")

    with pytest.raises(InsufficientCreditsError) as excinfo:
        service.redeem_feature_credit("user-1", "listing-1")

    assert excinfo.value.status_code == 400
    assert store.windows == {}
    assert store.transactions == []
    assert event_logger.events == []


def test_redeem_for_foreign_listing_is_forbidden(credit_components):
    service, store, _, _ = credit_components
    store.increment_balance("user-1", CreditType.FEATURED, 1)
    store.add_listing("listing-1", "someone-else")

    with pytest.raises(ListingNotOwnedError) as excinfo:
        service.redeem_feature_credit("user-1", "listing-1")

    assert excinfo.value.status_code == 403
    assert store.balance_of("user-1", CreditType.FEATURED) == 1


def test_redeem_for_unknown_listing_is_not_found(credit_components):
    service, store, _, _ = credit_components
    store.increment_balance("user-1", CreditType.FEATURED, 1)

    with pytest.raises(ListingNotFoundError) as excinfo:
        service.redeem_feature_credit("user-1", "missing")

    assert excinfo.value.status_code == 404


def test_redeem_rolls_back_decrement_when_listing_update_fails(credit_components, monkeypatch):
    service, store, _, clock = credit_components
    store.increment_balance("user-1", CreditType.FEATURED, 1)
    store.add_listing("listing-1", "user-1", expires_at=clock.now + timedelta(days=1))
    monkeypatch.setattr(store, "update_listing_expiry", lambda *_args: None)

    with pytest.raises(LookupError):
        service.redeem_feature_credit("user-1", "listing-1")

    assert store.balance_of("user-1", CreditType.FEATURED) == 1


def test_admin_grant_records_transaction(credit_components):
    service, store, event_logger, _ = credit_components

    transaction, balance = service.adjust_credits(
        actor_id="admin-1", user_id="user-1", credit_type=CreditType.STANDARD, amount=4, reason="support"
    )

    assert balance.amount == 4
    assert transaction.amount == 4
    assert transaction.description == "Admin adjustment by admin-1: support"
    assert event_logger.event_types == ["credits_adjusted"]


def test_admin_revoke_cannot_go_negative(credit_components):
    service, store, _, _ = credit_components
    store.increment_balance("user-1", CreditType.STANDARD, 1)

    with pytest.raises(InsufficientCreditsError):
        service.adjust_credits(actor_id="admin-1", user_id="user-1", credit_type=CreditType.STANDARD, amount=-2)

    assert store.balance_of("user-1") == 1
    assert store.transactions == []


def test_admin_adjustment_rejects_zero(credit_components):
    service, _, _, _ = credit_components

    with pytest.raises(ValueError):
        service.adjust_credits(actor_id="admin-1", user_id="user-1", credit_type=CreditType.STANDARD, amount=0)


def test_storage_outage_surfaces_as_unavailable(credit_components):
    service, store, _, _ = credit_components
    store.unavailable = True

    with pytest.raises(StorageUnavailableError):
        service.list_balances("user-1")
