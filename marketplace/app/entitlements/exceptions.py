"""Errors surfaced by entitlement application and credit redemption."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar, Dict, Mapping, Optional

from fastapi import HTTPException, status


@dataclass
class EntitlementError(Exception):
    """Base class for failures that map onto an HTTP response."""

    message: str
    detail: Optional[Mapping[str, Any]] = None

    code: ClassVar[str] = "entitlement_error"
    status_code: ClassVar[int] = status.HTTP_500_INTERNAL_SERVER_ERROR
    retryable: ClassVar[bool] = False

    def __post_init__(self) -> None:
        base_detail: Dict[str, Any] = {"error": self.code, "message": self.message}
        if self.detail:
            base_detail.update(self.detail)
        object.__setattr__(self, "_payload", base_detail)
        super().__init__(self.message)

    @property
    def payload(self) -> Mapping[str, Any]:
        """Serialized representation suitable for JSON responses."""

        return self._payload

    def to_http_exception(self) -> HTTPException:
        return HTTPException(status_code=self.status_code, detail=dict(self.payload))


class MissingMetadataError(EntitlementError):
    """The payment event lacks a field required to target the entitlement."""

    code = "missing_metadata"
    status_code = status.HTTP_400_BAD_REQUEST


class StorageUnavailableError(EntitlementError):
    """The ledger could not be reached; upstream should redeliver."""

    code = "storage_unavailable"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    retryable = True


class ApplyFailedError(EntitlementError):
    """Applying the entitlement failed and needs manual reconciliation."""

    code = "apply_failed"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    retryable = True


class InsufficientCreditsError(EntitlementError):
    code = "insufficient_credits"
    status_code = status.HTTP_400_BAD_REQUEST


class ListingNotFoundError(EntitlementError):
    code = "listing_not_found"
    status_code = status.HTTP_404_NOT_FOUND


class ListingNotOwnedError(EntitlementError):
    code = "listing_not_owned"
    status_code = status.HTTP_403_FORBIDDEN


__all__ = [
    "ApplyFailedError",
    "EntitlementError",
    "InsufficientCreditsError",
    "ListingNotFoundError",
    "ListingNotOwnedError",
    "MissingMetadataError",
    "StorageUnavailableError",
]
