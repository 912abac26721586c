"""Credential data types."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum

# Refresh this long before the recorded expiry
REFRESH_WINDOW = timedelta(minutes=5)


class AuthMethod(str, Enum):
    API_KEY = "api_key"
    OAUTH = "oauth"
    MANAGED_IDENTITY = "managed_identity"


@dataclass
class Credential:
    access_token: str
    refresh_token: str = ""
    account_id: str = ""
    auth_method: AuthMethod = AuthMethod.API_KEY
    expires_at: datetime | None = None

    def needs_refresh(self, now: datetime | None = None) -> bool:
        if self.expires_at is None:
            return False
        now = now or datetime.now(timezone.utc)
        return now >= self.expires_at - REFRESH_WINDOW


@dataclass(frozen=True)
class ResolvedCredential:
    """What one resolution hands to the adapter for a single request."""

    token: str
    account_id: str = ""
    auth_method: AuthMethod = AuthMethod.API_KEY
    source: str = ""

    def __repr__(self) -> str:
        return (
            f"ResolvedCredential(token='***', account_id={self.account_id!r}, "
            f"auth_method={self.auth_method.value!r}, source={self.source!r})"
        )
