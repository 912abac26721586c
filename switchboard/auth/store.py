"""Persisted provider credentials with SQLite backend."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from pathlib import Path

import aiosqlite

from switchboard.auth.credentials import AuthMethod, Credential
_SCHEMA = """
CREATE TABLE IF NOT EXISTS credentials (
    provider TEXT PRIMARY KEY,
    access_token TEXT NOT NULL,
    refresh_token TEXT DEFAULT '',
    account_id TEXT DEFAULT '',
    auth_method TEXT NOT NULL,
    expires_at TEXT,
    updated_at TEXT NOT NULL
);
"""


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class CredentialStore:
    """One credential row per provider name.

    Connections are opened per operation so a resolver can consult the
    store on every request without lifecycle management. ``lock(provider)``
    hands out the mutex that serializes check-refresh-persist for that
    provider; every resolver sharing this store shares the lock.
    """

    def __init__(self, db_path: Path) -> None:
        self._db_path = db_path
        self._locks: dict[str, asyncio.Lock] = {}

    @property
    def path(self) -> Path:
        return self._db_path

    def lock(self, provider: str) -> asyncio.Lock:
        lock = self._locks.get(provider)
        if lock is None:
            lock = self._locks[provider] = asyncio.Lock()
        return lock

    async def _connect(self) -> aiosqlite.Connection:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        db = await aiosqlite.connect(str(self._db_path))
        await db.executescript(_SCHEMA)
        return db

    async def get(self, provider: str) -> Credential | None:
        """Load the stored credential for a provider, or None."""
        db = await self._connect()
        try:
            cursor = await db.execute(
                "SELECT access_token, refresh_token, account_id, auth_method, expires_at "
                "FROM credentials WHERE provider = ?",
                (provider,),
            )
            row = await cursor.fetchone()
        finally:
            await db.close()

        if row is None:
            return None
        access_token, refresh_token, account_id, auth_method, expires_at = row
        return Credential(
            access_token=access_token,
            refresh_token=refresh_token or "",
            account_id=account_id or "",
            auth_method=AuthMethod(auth_method),
            expires_at=_parse_timestamp(expires_at),
        )

    async def set(self, provider: str, credential: Credential) -> None:
        """Upsert the credential for a provider."""
        now = datetime.now(timezone.utc).isoformat()
        expires_at = credential.expires_at.isoformat() if credential.expires_at else None
        db = await self._connect()
        try:
            await db.execute(
                "INSERT INTO credentials "
                "(provider, access_token, refresh_token, account_id, auth_method, expires_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?) "
                "ON CONFLICT(provider) DO UPDATE SET "
                "access_token = excluded.access_token, "
                "refresh_token = excluded.refresh_token, "
                "account_id = excluded.account_id, "
                "auth_method = excluded.auth_method, "
                "expires_at = excluded.expires_at, "
                "updated_at = excluded.updated_at",
                (
                    provider,
                    credential.access_token,
                    credential.refresh_token,
                    credential.account_id,
                    credential.auth_method.value,
                    expires_at,
                    now,
                ),
            )
            await db.commit()
        finally:
            await db.close()

    async def delete(self, provider: str) -> bool:
        """Remove a provider's credential. Returns True if one existed."""
        db = await self._connect()
        try:
            cursor = await db.execute("DELETE FROM credentials WHERE provider = ?", (provider,))
            await db.commit()
            return cursor.rowcount > 0
        finally:
            await db.close()
