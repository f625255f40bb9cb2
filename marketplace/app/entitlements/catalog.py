"""Static catalog of purchasable credit packages."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional

from ..ledger.models import CreditType


@dataclass(frozen=True)
class CreditPackage:
    """Describes a checkout product and the credits it grants."""

    key: str
    display_name: str
    credit_type: CreditType
    credits: int
    unit_amount: int
    currency: str = "EUR"


CREDIT_PACKAGE_CATALOG: Dict[str, CreditPackage] = {
    "price_1credit": CreditPackage(
        key="price_1credit",
        display_name="1 listing credit",
        credit_type=CreditType.STANDARD,
        credits=1,
        unit_amount=1500,
    ),
    "price_5credits": CreditPackage(
        key="price_5credits",
        display_name="5 listing credits",
        credit_type=CreditType.STANDARD,
        credits=5,
        unit_amount=6500,
    ),
    "price_10credits": CreditPackage(
        key="price_10credits",
        display_name="10 listing credits",
        credit_type=CreditType.STANDARD,
        credits=10,
        unit_amount=10000,
    ),
    "event_credit": CreditPackage(
        key="event_credit",
        display_name="1 event credit",
        credit_type=CreditType.EVENT,
        credits=1,
        unit_amount=1500,
    ),
    "feature_credit": CreditPackage(
        key="feature_credit",
        display_name="1 feature credit",
        credit_type=CreditType.FEATURED,
        credits=1,
        unit_amount=1500,
    ),
}

# Legacy checkout sessions labelled standard credits as "firearms".
CREDIT_TYPE_ALIASES: Dict[str, CreditType] = {
    "standard": CreditType.STANDARD,
    "firearms": CreditType.STANDARD,
    "featured": CreditType.FEATURED,
    "feature": CreditType.FEATURED,
    "event": CreditType.EVENT,
    "events": CreditType.EVENT,
}


def get_credit_package(key: str) -> CreditPackage:
    """Return a package definition, raising if unsupported."""

    try:
        return CREDIT_PACKAGE_CATALOG[key]
    except KeyError as exc:
        raise KeyError(f"Unknown credit package: {key}") from exc


def resolve_credit_type(value: Optional[str]) -> Optional[CreditType]:
    """Map a metadata credit type label to :class:`CreditType`; ``None`` if unknown."""

    if value is None or not value.strip():
        return CreditType.STANDARD
    return CREDIT_TYPE_ALIASES.get(value.strip().lower())


__all__ = [
    "CREDIT_PACKAGE_CATALOG",
    "CREDIT_TYPE_ALIASES",
    "CreditPackage",
    "get_credit_package",
    "resolve_credit_type",
]
