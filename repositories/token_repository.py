"""
OAuth token repository (persistence).

One row per service name holds the current access/refresh token pair.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from domain.time import parse_utc_datetime, to_iso_utc
from domain.tokens import OAuthTokens
from repositories.record_store import RecordStore, StoredRecord


def _record_to_tokens(record: StoredRecord) -> OAuthTokens:
    updated_raw = record.get("updated_at")
    return OAuthTokens(
        service=str(record.get("service")),
        access_token=str(record.get("access_token") or ""),
        refresh_token=str(record.get("refresh_token") or ""),
        company_id=str(record.get("company_id") or ""),
        expires_at=parse_utc_datetime(record.get("expires_at")),
        updated_at=parse_utc_datetime(updated_raw) if updated_raw else None,
        record_id=record.record_id,
    )


def get_oauth_tokens(store: RecordStore, service: str) -> OAuthTokens | None:
    """Fetch stored tokens for a service, or None if it was never authorized."""

    rows = store.query(store.tables.oauth_tokens, equals={"service": service}, limit=1)
    if not rows:
        return None
    return _record_to_tokens(rows[0])


def save_oauth_tokens(store: RecordStore, tokens: OAuthTokens, now: datetime) -> OAuthTokens:
    """Create or replace the token row for `tokens.service`."""

    payload: dict[str, Any] = {
        "service": tokens.service,
        "access_token": tokens.access_token,
        "refresh_token": tokens.refresh_token,
        "company_id": tokens.company_id,
        "expires_at": to_iso_utc(tokens.expires_at, name="expires_at"),
        "updated_at": to_iso_utc(now, name="now"),
    }

    rows = store.query(store.tables.oauth_tokens, equals={"service": tokens.service}, limit=1)
    if rows:
        record = store.update(store.tables.oauth_tokens, rows[0].record_id, payload)
    else:
        record = store.create(store.tables.oauth_tokens, payload)
    return _record_to_tokens(record)


__all__ = ["get_oauth_tokens", "save_oauth_tokens"]
