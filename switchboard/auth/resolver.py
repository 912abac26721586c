"""Credential resolution chain."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import aiosqlite

from switchboard.auth.credentials import AuthMethod, Credential, ResolvedCredential
from switchboard.auth.oauth import OAuthRefresher
from switchboard.auth.sources import SecretSource
from switchboard.auth.store import CredentialStore
from switchboard.errors import CredentialError, CredentialNotFoundError, RefreshFailedError
from switchboard.utils.logging import get_logger

log = get_logger(__name__)


class CredentialResolver:
    """Walks the secret sources in order, then the persisted OAuth store.

    Not a cache: every ``resolve()`` consults the sources again, so call it
    once per outbound request and keep the result for that request only.
    """

    def __init__(
        self,
        provider: str,
        sources: Sequence[SecretSource],
        store: CredentialStore,
        refresher: OAuthRefresher | None = None,
        verbose: bool = False,
    ) -> None:
        self._provider = provider
        self._sources = list(sources)
        self._store = store
        self._refresher = refresher
        self._verbose = verbose

    @property
    def provider(self) -> str:
        return self._provider

    def _trace(self, event: str, **kw: Any) -> None:
        if self._verbose:
            log.info(event, provider=self._provider, **kw)

    async def resolve(self) -> ResolvedCredential:
        for source in self._sources:
            self._trace("credential_source_attempt", source=source.name)
            try:
                resolved = await source.fetch()
            except CredentialError as e:
                self._trace("credential_source_failed", source=source.name, error=e.message)
                continue
            if resolved is not None:
                self._trace("credential_source_hit", source=resolved.source)
                return resolved
            self._trace("credential_source_miss", source=source.name)

        return await self._resolve_from_store()

    async def _resolve_from_store(self) -> ResolvedCredential:
        self._trace("credential_source_attempt", source="store")
        credential = await self._load()
        if credential is None or not credential.access_token:
            self._trace("credential_source_miss", source="store")
            raise CredentialNotFoundError(
                f"no credentials for {self._provider} (last source tried: store)",
                provider=self._provider,
            )

        if self._should_refresh(credential):
            return await self._refresh_and_persist()

        self._trace("credential_source_hit", source="store", auth_method=credential.auth_method.value)
        return self._resolved(credential, "store")

    def _should_refresh(self, credential: Credential) -> bool:
        return (
            self._refresher is not None
            and credential.auth_method == AuthMethod.OAUTH
            and bool(credential.refresh_token)
            and credential.needs_refresh()
        )

    async def _refresh_and_persist(self) -> ResolvedCredential:
        async with self._store.lock(self._provider):
            # Another caller may have refreshed while we waited
            credential = await self._load()
            if credential is None or not credential.access_token:
                raise CredentialNotFoundError(
                    f"no credentials for {self._provider} (last source tried: store)",
                    provider=self._provider,
                )
            if not self._should_refresh(credential):
                self._trace("credential_source_hit", source="store", refreshed_elsewhere=True)
                return self._resolved(credential, "store")

            assert self._refresher is not None
            self._trace("credential_refresh_start")
            refreshed = await self._refresher.refresh(credential)
            try:
                await self._store.set(self._provider, refreshed)
            except (aiosqlite.Error, OSError, ValueError) as e:
                raise RefreshFailedError(
                    f"saving refreshed token: {e}", provider=self._provider
                ) from e
            self._trace("credential_refresh_done")
            return self._resolved(refreshed, "store:refreshed")

    async def _load(self) -> Credential | None:
        try:
            return await self._store.get(self._provider)
        except (aiosqlite.Error, OSError, ValueError) as e:
            raise CredentialNotFoundError(
                f"loading auth credentials: {e}", provider=self._provider
            ) from e

    @staticmethod
    def _resolved(credential: Credential, source: str) -> ResolvedCredential:
        return ResolvedCredential(
            token=credential.access_token,
            account_id=credential.account_id,
            auth_method=credential.auth_method,
            source=source,
        )
