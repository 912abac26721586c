"""Tests for the persisted credential store."""

from datetime import datetime, timedelta, timezone

import pytest

from switchboard.auth.credentials import AuthMethod, Credential
from switchboard.auth.store import CredentialStore


@pytest.fixture
def store(tmp_path):
    return CredentialStore(tmp_path / "auth" / "credentials.db")


class TestCredentialStore:
    async def test_get_missing(self, store):
        assert await store.get("openai") is None

    async def test_set_and_get(self, store):
        expires = datetime.now(timezone.utc) + timedelta(hours=1)
        await store.set(
            "openai",
            Credential(
                access_token="at",
                refresh_token="rt",
                account_id="acct-1",
                auth_method=AuthMethod.OAUTH,
                expires_at=expires,
            ),
        )
        cred = await store.get("openai")
        assert cred is not None
        assert cred.access_token == "at"
        assert cred.refresh_token == "rt"
        assert cred.account_id == "acct-1"
        assert cred.auth_method == AuthMethod.OAUTH
        assert cred.expires_at == expires

    async def test_creates_parent_directory(self, store):
        await store.set("anthropic", Credential(access_token="k"))
        assert store.path.exists()

    async def test_upsert_replaces(self, store):
        await store.set("anthropic", Credential(access_token="old"))
        await store.set("anthropic", Credential(access_token="new"))
        cred = await store.get("anthropic")
        assert cred is not None
        assert cred.access_token == "new"
        assert cred.expires_at is None

    async def test_providers_are_independent(self, store):
        await store.set("anthropic", Credential(access_token="a"))
        await store.set("openai", Credential(access_token="o"))
        assert (await store.get("anthropic")).access_token == "a"
        assert (await store.get("openai")).access_token == "o"

    async def test_delete(self, store):
        await store.set("openai", Credential(access_token="x"))
        assert await store.delete("openai") is True
        assert await store.delete("openai") is False
        assert await store.get("openai") is None

    def test_lock_is_per_provider(self, store):
        assert store.lock("openai") is store.lock("openai")
        assert store.lock("openai") is not store.lock("anthropic")


class TestCredentialExpiry:
    def test_no_expiry_never_refreshes(self):
        assert not Credential(access_token="x").needs_refresh()

    def test_refresh_window(self):
        now = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)
        cred = Credential(access_token="x", expires_at=now + timedelta(minutes=4))
        assert cred.needs_refresh(now)
        cred = Credential(access_token="x", expires_at=now + timedelta(minutes=10))
        assert not cred.needs_refresh(now)
