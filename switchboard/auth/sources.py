"""Secret sources consulted by the credential resolver.

Each source answers ``await fetch()`` with a ResolvedCredential, or None
when it has nothing to offer. A source may raise a CredentialError for a
recoverable failure; the resolver logs it and moves on.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import os
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Mapping, Sequence
from typing import Any

from azure.core.exceptions import AzureError
from azure.identity.aio import DefaultAzureCredential, ManagedIdentityCredential

from switchboard.auth.credentials import AuthMethod, ResolvedCredential
from switchboard.errors import IdentityTokenError
from switchboard.utils.logging import get_logger
from switchboard.utils.platform import get_platform

log = get_logger(__name__)

KeychainRunner = Callable[[str, str], Awaitable[str]]


class SecretSource(ABC):
    name = "source"

    @abstractmethod
    async def fetch(self) -> ResolvedCredential | None: ...


class EnvSecretSource(SecretSource):
    """A secret handed over in an environment variable."""

    name = "env"

    def __init__(
        self,
        variable: str,
        environ: Mapping[str, str] | None = None,
        auth_method: AuthMethod = AuthMethod.API_KEY,
    ) -> None:
        self.variable = variable
        self._environ = environ
        self._auth_method = auth_method

    async def fetch(self) -> ResolvedCredential | None:
        environ = os.environ if self._environ is None else self._environ
        value = environ.get(self.variable, "").strip()
        if not value:
            return None
        return ResolvedCredential(
            token=value, auth_method=self._auth_method, source=f"env:{self.variable}"
        )


# ---------------------------------------------------------------------------
# macOS keychain
# ---------------------------------------------------------------------------


async def find_generic_password(service: str, account: str = "") -> str:
    """Read a generic password via the ``security`` CLI; empty string when absent."""
    args = ["security", "find-generic-password", "-s", service, "-w"]
    if account:
        args += ["-a", account]

    try:
        proc = await asyncio.create_subprocess_exec(
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.DEVNULL,
        )
    except FileNotFoundError:
        return ""

    try:
        stdout, _ = await proc.communicate()
    except asyncio.CancelledError:
        with contextlib.suppress(ProcessLookupError):
            proc.kill()
        raise

    if proc.returncode != 0:
        return ""
    return stdout.decode("utf-8", errors="replace").strip()


def extract_api_key(data: Any) -> str:
    """Pull an API key out of the structured credentials blob."""
    if not isinstance(data, dict):
        return ""
    api_key = data.get("apiKey")
    if isinstance(api_key, str) and api_key:
        return api_key
    nested = data.get("anthropic")
    if isinstance(nested, dict):
        api_key = nested.get("apiKey")
        if isinstance(api_key, str):
            return api_key
    return ""


class KeychainSecretSource(SecretSource):
    name = "keychain"

    def __init__(
        self,
        services: Sequence[str],
        token_prefix: str = "sk-ant-",
        structured_service: str = "Claude Code-credentials",
        account: str = "",
        verbose: bool = False,
        runner: KeychainRunner = find_generic_password,
        platform: str | None = None,
    ) -> None:
        self._services = list(services)
        self._token_prefix = token_prefix
        self._structured_service = structured_service
        self._account = account
        self._verbose = verbose
        self._runner = runner
        self._platform = platform or get_platform()

    async def fetch(self) -> ResolvedCredential | None:
        if self._platform != "macos":
            if self._verbose:
                log.info("keychain_skipped", platform=self._platform)
            return None

        for service in self._services:
            value = await self._runner(service, self._account)
            if not value:
                continue
            if value.startswith(self._token_prefix):
                if self._verbose:
                    log.info("keychain_key_found", service=service)
                return ResolvedCredential(
                    token=value, auth_method=AuthMethod.API_KEY, source=f"keychain:{service}"
                )
            if self._verbose:
                log.info(
                    "keychain_value_wrong_shape",
                    service=service,
                    starts_with=value[: min(4, len(value))],
                )

        if not self._structured_service:
            return None
        blob = await self._runner(self._structured_service, self._account)
        if not blob:
            return None
        try:
            api_key = extract_api_key(json.loads(blob))
        except json.JSONDecodeError:
            if self._verbose:
                log.info("keychain_structured_unparseable", service=self._structured_service)
            return None
        if not api_key:
            return None
        if self._verbose:
            log.info("keychain_key_found", service=self._structured_service)
        return ResolvedCredential(
            token=api_key,
            auth_method=AuthMethod.API_KEY,
            source=f"keychain:{self._structured_service}",
        )


# ---------------------------------------------------------------------------
# Azure managed identity
# ---------------------------------------------------------------------------


def _user_assigned(client_id: str) -> Any:
    return ManagedIdentityCredential(client_id=client_id)


def _default_broker() -> Any:
    return DefaultAzureCredential()


class ManagedIdentitySource(SecretSource):
    """Azure AD token for a fixed scope.

    Priority: the user-assigned identity when a client id is configured,
    then ``DefaultAzureCredential`` (service-principal env vars, ambient
    managed identity, developer CLI logins). Both failing raises
    IdentityTokenError.
    """

    name = "managed_identity"

    def __init__(
        self,
        scope: str,
        client_id: str = "",
        verbose: bool = False,
        user_assigned: Callable[[str], Any] = _user_assigned,
        broker: Callable[[], Any] = _default_broker,
    ) -> None:
        self._scope = scope
        self._client_id = client_id
        self._verbose = verbose
        self._user_assigned = user_assigned
        self._broker = broker

    async def fetch(self) -> ResolvedCredential | None:
        attempts: list[tuple[str, Callable[[], Any]]] = []
        if self._client_id:
            attempts.append(("user_assigned", lambda: self._user_assigned(self._client_id)))
        attempts.append(("default", self._broker))

        failures: list[str] = []
        for label, make_credential in attempts:
            if self._verbose:
                log.info("managed_identity_attempt", method=label, scope=self._scope)
            try:
                token = await self._get_token(make_credential())
            except AzureError as e:
                if self._verbose:
                    log.info("managed_identity_failed", method=label, error=str(e))
                failures.append(f"{label}: {e}")
                continue
            if self._verbose:
                log.info("managed_identity_token", method=label, scope=self._scope)
            return ResolvedCredential(
                token=token,
                auth_method=AuthMethod.MANAGED_IDENTITY,
                source=f"managed_identity:{label}",
            )

        raise IdentityTokenError(
            "failed to get Azure access token (" + "; ".join(failures) + ")",
            provider="azure",
        )

    async def _get_token(self, credential: Any) -> str:
        async with credential:
            access_token = await credential.get_token(self._scope)
        return access_token.token
