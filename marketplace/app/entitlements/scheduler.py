"""Placement window scheduling for featured listings."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Sequence

from ..ledger.models import FeatureWindow
from ..ledger.store import FeatureWindowStore

logger = logging.getLogger("entitlements")


class FeatureWindowScheduler:
    """Creates or renews the single active feature window of a listing.

    Renewal is last-write-wins: the window restarts at ``now`` and runs for
    ``duration_days`` no matter how much time the active window had left.
    Remaining paid time is not carried over.
    """

    def __init__(
        self,
        store: FeatureWindowStore,
        *,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._store = store
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def schedule_or_renew(self, listing_id: str, owner_id: str, duration_days: int) -> FeatureWindow:
        if duration_days < 1:
            raise ValueError("duration_days must be >= 1")

        now = self._clock()
        start_at = now
        end_at = now + timedelta(days=duration_days)

        active = self._store.get_active_window(listing_id, now)
        if active is not None and active.id is not None:
            logger.info(
                "Renewing feature window %s for listing %s until %s",
                active.id,
                listing_id,
                end_at.isoformat(),
            )
            return self._store.update_window(active.id, start_at=start_at, end_at=end_at)

        logger.info("Opening feature window for listing %s until %s", listing_id, end_at.isoformat())
        return self._store.insert_window(
            FeatureWindow(listing_id=listing_id, owner_id=owner_id, start_at=start_at, end_at=end_at)
        )

    def active_windows(self, *, limit: int = 100) -> Sequence[FeatureWindow]:
        return self._store.list_active_windows(self._clock(), limit=limit)


def extended_expiry(
    current_expiry: Optional[datetime],
    now: datetime,
    *,
    feature_days: int,
    renewal_days: int,
) -> Optional[datetime]:
    """Return the listing expiry to store, or ``None`` to leave it untouched.

    A listing that would lapse before the feature window ends is pushed out to
    ``now + renewal_days``. Listings without an expiry never lapse.
    """

    if current_expiry is None:
        return None
    if current_expiry.tzinfo is None:
        current_expiry = current_expiry.replace(tzinfo=timezone.utc)
    if current_expiry - now >= timedelta(days=feature_days):
        return None
    return now + timedelta(days=renewal_days)


__all__ = ["FeatureWindowScheduler", "extended_expiry"]
