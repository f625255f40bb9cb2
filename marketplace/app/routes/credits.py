"""API routes for credit balances and featured listings."""
from __future__ import annotations

import os
from typing import Any, Optional

from fastapi import APIRouter, Cookie, Depends, Query

from ... import app_context
from ..entitlements import EntitlementError
from ..schemas.payments import (
    CreditBalanceItem,
    CreditBalancesResponse,
    FeaturedListingsResponse,
    FeatureRedemptionResponse,
    FeatureWindowItem,
)
from ..services.payments import get_credit_service

_SESSION_COOKIE_NAME = os.getenv("SESSION_COOKIE_NAME", "session")


def _get_current_user(
    session_token: Optional[str] = Cookie(None, alias=_SESSION_COOKIE_NAME),
) -> Any:
    return app_context.get_current_user(session_token=session_token)


router = APIRouter(prefix="/api", tags=["credits"])


@router.get("/credits", response_model=CreditBalancesResponse)
def get_credit_balances(*, current_user=Depends(_get_current_user)) -> CreditBalancesResponse:
    service = get_credit_service()
    user_id = str(current_user.id)
    try:
        balances = service.list_balances(user_id)
    except EntitlementError as exc:
        raise exc.to_http_exception() from exc
    return CreditBalancesResponse(
        user_id=user_id,
        balances=[CreditBalanceItem.from_balance(balance) for balance in balances],
    )


@router.get("/listings/featured", response_model=FeaturedListingsResponse)
def list_featured_listings(limit: int = Query(50, ge=1, le=200)) -> FeaturedListingsResponse:
    service = get_credit_service()
    try:
        windows = service.featured_windows(limit=limit)
    except EntitlementError as exc:
        raise exc.to_http_exception() from exc
    return FeaturedListingsResponse(windows=[FeatureWindowItem.from_window(window) for window in windows])


@router.post("/listings/{listing_id}/feature", response_model=FeatureRedemptionResponse)
def feature_listing_with_credit(
    listing_id: str,
    *,
    current_user=Depends(_get_current_user),
) -> FeatureRedemptionResponse:
    service = get_credit_service()
    try:
        result = service.redeem_feature_credit(str(current_user.id), listing_id)
    except EntitlementError as exc:
        raise exc.to_http_exception() from exc
    return FeatureRedemptionResponse.from_result(result)
