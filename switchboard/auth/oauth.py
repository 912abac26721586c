"""OAuth refresh-token grant."""

from __future__ import annotations

import base64
import binascii
import json
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx

from switchboard.auth.credentials import AuthMethod, Credential
from switchboard.config import OAuthProviderConfig
from switchboard.errors import RefreshFailedError
from switchboard.utils.logging import get_logger

log = get_logger(__name__)

_DEFAULT_EXPIRES_IN = 3600
_ACCOUNT_CLAIM = "https://api.openai.com/auth"


def account_id_from_id_token(id_token: str) -> str:
    """Read the ChatGPT account id out of an (unverified) id_token."""
    parts = id_token.split(".")
    if len(parts) != 3:
        return ""
    payload = parts[1] + "=" * (-len(parts[1]) % 4)
    try:
        claims = json.loads(base64.urlsafe_b64decode(payload))
    except (binascii.Error, ValueError):
        return ""
    if not isinstance(claims, dict):
        return ""
    auth_claims = claims.get(_ACCOUNT_CLAIM)
    if isinstance(auth_claims, dict):
        return str(auth_claims.get("chatgpt_account_id") or "")
    return ""


class OAuthRefresher:
    def __init__(
        self,
        provider: str,
        config: OAuthProviderConfig,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
        verbose: bool = False,
    ) -> None:
        self._provider = provider
        self._config = config
        self._http_client = http_client
        self._timeout = timeout
        self._verbose = verbose

    async def refresh(self, credential: Credential) -> Credential:
        """Exchange the refresh token for a new credential. Raises RefreshFailedError."""
        if not credential.refresh_token:
            raise RefreshFailedError("no refresh token available", provider=self._provider)

        form = {
            "grant_type": "refresh_token",
            "refresh_token": credential.refresh_token,
            "client_id": self._config.client_id,
        }
        if self._config.scope:
            form["scope"] = self._config.scope

        if self._verbose:
            log.info("oauth_refresh_start", provider=self._provider, token_url=self._config.token_url)
        try:
            body = await self._post(form)
        except httpx.HTTPStatusError as e:
            raise RefreshFailedError(
                f"token endpoint returned {e.response.status_code}", provider=self._provider
            ) from e
        except httpx.HTTPError as e:
            raise RefreshFailedError(f"token endpoint unreachable: {e}", provider=self._provider) from e
        except ValueError as e:
            raise RefreshFailedError("token endpoint returned invalid JSON", provider=self._provider) from e

        access_token = body.get("access_token") if isinstance(body, dict) else None
        if not access_token:
            raise RefreshFailedError("refresh response missing access_token", provider=self._provider)

        expires_in = body.get("expires_in") or _DEFAULT_EXPIRES_IN
        account_id = credential.account_id
        if body.get("id_token"):
            account_id = account_id_from_id_token(body["id_token"]) or account_id

        if self._verbose:
            log.info("oauth_refresh_ok", provider=self._provider, expires_in=expires_in)
        return Credential(
            access_token=access_token,
            refresh_token=body.get("refresh_token") or credential.refresh_token,
            account_id=account_id,
            auth_method=AuthMethod.OAUTH,
            expires_at=datetime.now(timezone.utc) + timedelta(seconds=int(expires_in)),
        )

    async def _post(self, form: dict[str, str]) -> Any:
        headers = {"Accept": "application/json"}
        if self._http_client is not None:
            resp = await self._http_client.post(
                self._config.token_url, data=form, headers=headers, timeout=self._timeout
            )
            resp.raise_for_status()
            return resp.json()
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            resp = await client.post(self._config.token_url, data=form, headers=headers)
            resp.raise_for_status()
            return resp.json()
