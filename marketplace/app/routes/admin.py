"""Administrative API routes for credit management."""
from __future__ import annotations

import os
from typing import Any, Optional

from fastapi import APIRouter, Cookie, Depends, HTTPException, Query, status

from ... import app_context
from ..entitlements import EntitlementError
from ..ledger.models import TransactionStatus
from ..schemas.payments import (
    CreditAdjustmentRequest,
    CreditAdjustmentResponse,
    CreditBalanceItem,
    TransactionListResponse,
)
from ..services.payments import get_credit_service

ADMIN_ROLE = "admin"

_SESSION_COOKIE_NAME = os.getenv("SESSION_COOKIE_NAME", "session")


def _get_current_user(
    session_token: Optional[str] = Cookie(None, alias=_SESSION_COOKIE_NAME),
) -> Any:
    return app_context.get_current_user(session_token=session_token)


def require_admin(current_user=Depends(_get_current_user)) -> Any:
    if getattr(current_user, "role", None) != ADMIN_ROLE:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return current_user


router = APIRouter(prefix="/api/admin", tags=["admin"])


@router.post("/credits", response_model=CreditAdjustmentResponse)
def adjust_user_credits(
    payload: CreditAdjustmentRequest,
    *,
    current_user=Depends(require_admin),
) -> CreditAdjustmentResponse:
    service = get_credit_service()
    try:
        transaction, balance = service.adjust_credits(
            actor_id=str(current_user.id),
            user_id=payload.user_id,
            credit_type=payload.credit_type,
            amount=payload.amount,
            reason=payload.reason,
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except EntitlementError as exc:
        raise exc.to_http_exception() from exc
    return CreditAdjustmentResponse(transaction=transaction, balance=CreditBalanceItem.from_balance(balance))


@router.get("/transactions", response_model=TransactionListResponse)
def list_transactions(
    status_filter: Optional[TransactionStatus] = Query(None, alias="status"),
    user_id: Optional[str] = Query(None, alias="userId"),
    limit: int = Query(50, ge=1, le=500),
    *,
    current_user=Depends(require_admin),
) -> TransactionListResponse:
    service = get_credit_service()
    try:
        transactions = service.list_transactions(user_id=user_id, status=status_filter, limit=limit)
    except EntitlementError as exc:
        raise exc.to_http_exception() from exc
    return TransactionListResponse(transactions=list(transactions))
