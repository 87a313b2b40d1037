"""
Application configuration.

Settings are read from the environment once per process. A `.env` file in the
project root is loaded first so local runs and scripts pick up credentials
without exporting them.

Nothing here validates credentials eagerly: the record store and the
accounting client raise ConfigurationError when they are constructed without
the values they need, so a missing QuickBooks secret does not stop lead
intake from working.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Optional, Tuple

from dotenv import load_dotenv

from domain.errors import ConfigurationError

_ENV_PATH = Path(__file__).parent / ".env"

DEFAULT_PLACEHOLDER_SOURCES: Tuple[str, ...] = ("Manual", "CRM Workflows")


@lru_cache(maxsize=1)
def _load_env_once() -> None:
    load_dotenv(dotenv_path=_ENV_PATH)


def _get_str(name: str, default: Optional[str] = None) -> Optional[str]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip()


def _get_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _get_float(name: str, default: float) -> float:
    raw = _get_str(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from exc


def _get_int(name: str, default: int) -> int:
    raw = _get_str(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from exc


def _get_list(name: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
    raw = _get_str(name)
    if raw is None:
        return default
    return tuple(item.strip() for item in raw.split(",") if item.strip())


@dataclass(frozen=True)
class Settings:
    # Record store (Supabase)
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    leads_table: str = "leads"
    monthly_summary_table: str = "monthly_summary"
    oauth_tokens_table: str = "oauth_tokens"
    payment_reviews_table: str = "payment_reviews"

    # Accounting platform (QuickBooks Online)
    qbo_client_id: Optional[str] = None
    qbo_client_secret: Optional[str] = None
    qbo_redirect_uri: Optional[str] = None
    qbo_sandbox: bool = False
    qbo_webhook_verifier_token: Optional[str] = None

    # Lead intake
    housecall_webhook_secret: Optional[str] = None
    placeholder_sources: Tuple[str, ...] = field(default=DEFAULT_PLACEHOLDER_SOURCES)

    # Behavior
    fuzzy_match_threshold: float = 0.8
    ad_spend_refresh_day: int = 3
    http_timeout_seconds: float = 20.0
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if not 0.0 <= self.fuzzy_match_threshold <= 1.0:
            raise ConfigurationError(
                f"FUZZY_MATCH_THRESHOLD must be within [0, 1], got {self.fuzzy_match_threshold}"
            )
        if not 1 <= self.ad_spend_refresh_day <= 28:
            raise ConfigurationError(
                f"AD_SPEND_REFRESH_DAY must be within 1..28, got {self.ad_spend_refresh_day}"
            )


def load_settings() -> Settings:
    """Build Settings from the current environment (no caching)."""

    _load_env_once()
    return Settings(
        supabase_url=_get_str("SUPABASE_URL"),
        supabase_key=_get_str("SUPABASE_KEY"),
        leads_table=_get_str("LEADS_TABLE", "leads"),
        monthly_summary_table=_get_str("MONTHLY_SUMMARY_TABLE", "monthly_summary"),
        oauth_tokens_table=_get_str("OAUTH_TOKENS_TABLE", "oauth_tokens"),
        payment_reviews_table=_get_str("PAYMENT_REVIEWS_TABLE", "payment_reviews"),
        qbo_client_id=_get_str("QBO_CLIENT_ID"),
        qbo_client_secret=_get_str("QBO_CLIENT_SECRET"),
        qbo_redirect_uri=_get_str("QBO_REDIRECT_URI"),
        qbo_sandbox=_get_bool("QBO_SANDBOX", False),
        qbo_webhook_verifier_token=_get_str("QBO_WEBHOOK_VERIFIER_TOKEN"),
        housecall_webhook_secret=_get_str("HOUSECALL_PRO_WEBHOOK_SECRET"),
        placeholder_sources=_get_list("LEAD_SOURCE_PLACEHOLDERS", DEFAULT_PLACEHOLDER_SOURCES),
        fuzzy_match_threshold=_get_float("FUZZY_MATCH_THRESHOLD", 0.8),
        ad_spend_refresh_day=_get_int("AD_SPEND_REFRESH_DAY", 3),
        http_timeout_seconds=_get_float("HTTP_TIMEOUT_SECONDS", 20.0),
        log_level=(_get_str("LOG_LEVEL", "INFO") or "INFO").upper(),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached process-wide settings."""

    return load_settings()


__all__ = ["Settings", "load_settings", "get_settings", "DEFAULT_PLACEHOLDER_SOURCES"]
