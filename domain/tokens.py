"""
Domain: OAuth credentials for the accounting platform.

One token record exists per service name. It is read before every accounting
call and rewritten on refresh.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from .time import require_utc_timestamp

QUICKBOOKS_SERVICE = "QuickBooks"


@dataclass(frozen=True, slots=True)
class OAuthTokens:
    service: str
    access_token: str
    refresh_token: str
    company_id: str
    expires_at: datetime
    updated_at: Optional[datetime] = None
    record_id: Optional[str] = None

    def __post_init__(self) -> None:
        require_utc_timestamp("expires_at", self.expires_at)
        if self.updated_at is not None:
            require_utc_timestamp("updated_at", self.updated_at)

    def is_expired(self, now: datetime, skew: timedelta = timedelta(seconds=60)) -> bool:
        """True when the access token is expired or expires within `skew`."""

        require_utc_timestamp("now", now)
        return self.expires_at <= now + skew
