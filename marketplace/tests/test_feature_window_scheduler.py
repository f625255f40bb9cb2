from __future__ import annotations

from datetime import timedelta

import pytest

from marketplace.app.entitlements import FeatureWindowScheduler, extended_expiry
from marketplace.app.ledger.models import FeatureWindow


def test_schedule_opens_new_window(store, clock):
    scheduler = FeatureWindowScheduler(store, clock=clock)

    window = scheduler.schedule_or_renew("listing-1", "user-1", 15)

    assert window.id == 1
    assert window.start_at == clock.now
    assert window.end_at == clock.now + timedelta(days=15)


def test_schedule_renews_active_window_in_place(store, clock):
    scheduler = FeatureWindowScheduler(store, clock=clock)
    scheduler.schedule_or_renew("listing-1", "user-1", 15)

    clock.now = clock.now + timedelta(days=14)
    renewed = scheduler.schedule_or_renew("listing-1", "user-1", 15)

    assert renewed.id == 1
    assert renewed.end_at == clock.now + timedelta(days=15)
    assert len(store.windows) == 1


def test_schedule_after_expiry_opens_fresh_window(store, clock):
    scheduler = FeatureWindowScheduler(store, clock=clock)
    scheduler.schedule_or_renew("listing-1", "user-1", 15)

    clock.now = clock.now + timedelta(days=16)
    window = scheduler.schedule_or_renew("listing-1", "user-1", 15)

    assert window.id == 2
    assert len(store.windows) == 2


def test_schedule_rejects_non_positive_duration(store, clock):
    scheduler = FeatureWindowScheduler(store, clock=clock)

    with pytest.raises(ValueError):
        scheduler.schedule_or_renew("listing-1", "user-1", 0)


def test_active_windows_excludes_ended(store, clock):
    scheduler = FeatureWindowScheduler(store, clock=clock)
    scheduler.schedule_or_renew("listing-1", "user-1", 15)
    clock.now = clock.now + timedelta(days=10)
    scheduler.schedule_or_renew("listing-2", "user-2", 15)

    clock.now = clock.now + timedelta(days=6)

    assert [window.listing_id for window in scheduler.active_windows()] == ["listing-2"]


def test_window_end_must_follow_start(clock):
    with pytest.raises(ValueError):
        FeatureWindow(listing_id="listing-1", owner_id="user-1", start_at=clock.now, end_at=clock.now)


@pytest.mark.parametrize(
    ("remaining", "expected_days"),
    [
        (timedelta(days=1), 30),
        (timedelta(days=14, hours=23), 30),
        (timedelta(days=15), None),
        (timedelta(days=40), None),
        (timedelta(days=-3), 30),
    ],
)
def test_extended_expiry_threshold(clock, remaining, expected_days):
    result = extended_expiry(clock.now + remaining, clock.now, feature_days=15, renewal_days=30)

    if expected_days is None:
        assert result is None
    else:
        assert result == clock.now + timedelta(days=expected_days)


def test_extended_expiry_ignores_listing_without_expiry(clock):
    assert extended_expiry(None, clock.now, feature_days=15, renewal_days=30) is None


def test_extended_expiry_treats_naive_datetimes_as_utc(clock):
    naive = (clock.now + timedelta(days=2)).replace(tzinfo=None)

    assert extended_expiry(naive, clock.now, feature_days=15, renewal_days=30) == clock.now + timedelta(days=30)
