"""Configuration helpers for database, payments and entitlement policy."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional
import math
import os


@dataclass(frozen=True)
class DatabaseConfig:
    """Connection settings for the marketplace database."""

    host: str
    port: int
    dbname: str
    user: str
    password: str
    connect_timeout: int
    statement_timeout_ms: int

    def connect_kwargs(self) -> Dict[str, object]:
        """Keyword arguments for :func:`psycopg2.connect`."""

        return {
            "host": self.host,
            "port": self.port,
            "dbname": self.dbname,
            "user": self.user,
            "password": self.password,
            "connect_timeout": self.connect_timeout,
            "options": f"-c statement_timeout={self.statement_timeout_ms}",
        }


@dataclass(frozen=True)
class PaymentsConfig:
    """Configuration for the payment provider and entitlement policy."""

    stripe_secret_key: Optional[str]
    stripe_webhook_secret: Optional[str]
    webhook_tolerance_seconds: int
    app_base_url: str
    feature_duration_days: int
    listing_renewal_days: int
    feature_price_id: Optional[str]
    price_ids: Dict[str, str] = field(default_factory=dict)


def _to_int(value: Optional[str], *, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Expected integer value, got {value!r}") from exc


def _parse_connect_timeout(raw_value: Optional[str]) -> int:
    if raw_value is None or raw_value == "":
        return 5
    try:
        timeout = float(raw_value)
    except ValueError as exc:
        raise ValueError("DB_CONNECT_TIMEOUT must be a number") from exc
    if timeout < 0:
        raise ValueError("DB_CONNECT_TIMEOUT must be non-negative")
    return int(math.ceil(timeout))


def load_database_config(env: Optional[Mapping[str, str]] = None) -> DatabaseConfig:
    """Load :class:`DatabaseConfig` from environment variables."""

    env_mapping = os.environ if env is None else env

    return DatabaseConfig(
        host=env_mapping.get("DB_HOST", "127.0.0.1"),
        port=_to_int(env_mapping.get("DB_PORT"), default=5432),
        dbname=env_mapping.get("DB_NAME", "marketplace_db"),
        user=env_mapping.get("DB_USER", "marketplace"),
        password=env_mapping.get("DB_PASSWORD", "marketplace"),
        connect_timeout=_parse_connect_timeout(env_mapping.get("DB_CONNECT_TIMEOUT")),
        statement_timeout_ms=max(0, _to_int(env_mapping.get("DB_STATEMENT_TIMEOUT_MS"), default=5000)),
    )


_PRICE_ENV_KEYS = {
    "price_1credit": "STRIPE_PRICE_1CREDIT",
    "price_5credits": "STRIPE_PRICE_5CREDITS",
    "price_10credits": "STRIPE_PRICE_10CREDITS",
    "event_credit": "STRIPE_PRICE_EVENT_CREDIT",
    "feature_credit": "STRIPE_PRICE_FEATURE_CREDIT",
}


def load_payments_config(env: Optional[Mapping[str, str]] = None) -> PaymentsConfig:
    """Load :class:`PaymentsConfig` from environment variables."""

    env_mapping = os.environ if env is None else env

    feature_duration_days = _to_int(env_mapping.get("FEATURE_DURATION_DAYS"), default=15)
    listing_renewal_days = _to_int(env_mapping.get("LISTING_RENEWAL_DAYS"), default=30)
    if feature_duration_days < 1:
        raise ValueError("FEATURE_DURATION_DAYS must be >= 1")
    if listing_renewal_days < feature_duration_days:
        raise ValueError("LISTING_RENEWAL_DAYS must be >= FEATURE_DURATION_DAYS")

    price_ids = {
        package_key: env_mapping[env_key]
        for package_key, env_key in _PRICE_ENV_KEYS.items()
        if env_mapping.get(env_key)
    }

    return PaymentsConfig(
        stripe_secret_key=env_mapping.get("STRIPE_SECRET_KEY") or None,
        stripe_webhook_secret=env_mapping.get("STRIPE_WEBHOOK_SECRET") or None,
        webhook_tolerance_seconds=max(0, _to_int(env_mapping.get("STRIPE_WEBHOOK_TOLERANCE"), default=300)),
        app_base_url=env_mapping.get("APP_BASE_URL", "http://localhost:3000").rstrip("/"),
        feature_duration_days=feature_duration_days,
        listing_renewal_days=listing_renewal_days,
        feature_price_id=env_mapping.get("STRIPE_PRICE_FEATURE_LISTING") or None,
        price_ids=price_ids,
    )


__all__ = [
    "DatabaseConfig",
    "PaymentsConfig",
    "load_database_config",
    "load_payments_config",
]
