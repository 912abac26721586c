"""LLM backends and the provider adapter."""

from __future__ import annotations

from collections.abc import Mapping

import httpx

from switchboard.auth import (
    CredentialResolver,
    CredentialStore,
    EnvSecretSource,
    KeychainSecretSource,
    ManagedIdentitySource,
    OAuthRefresher,
    SecretSource,
)
from switchboard.config import AzureOpenAISettings, Settings
from switchboard.core.llm import anthropic, responses
from switchboard.core.llm.adapter import ProviderAdapter
from switchboard.core.llm.base import BackendConfig, BackendKind
from switchboard.core.llm.types import (
    FinishReason,
    LLMResponse,
    Message,
    ToolCall,
    ToolDefinition,
    UsageInfo,
)
from switchboard.utils.platform import get_platform

__all__ = [
    "FinishReason",
    "LLMResponse",
    "Message",
    "ToolCall",
    "ToolDefinition",
    "UsageInfo",
    "BackendConfig",
    "BackendKind",
    "ProviderAdapter",
    "build_backend_config",
    "build_resolver",
    "create_provider",
]

DIRECT_SECRET_ENV = {
    BackendKind.MESSAGES: "ANTHROPIC_API_KEY",
    BackendKind.RESPONSES: "CODEX_ACCESS_TOKEN",
    BackendKind.CHAT_COMPLETIONS: "AZURE_OPENAI_API_KEY",
}


def build_backend_config(settings: Settings, azure: AzureOpenAISettings) -> BackendConfig:
    """Pick the backend once from configuration. Raises ConfigIncompleteError."""
    llm = settings.llm
    azure_configured = azure.require_complete()

    if llm.provider == "anthropic":
        return BackendConfig(
            kind=BackendKind.MESSAGES,
            provider="anthropic",
            default_model=llm.model or anthropic.DEFAULT_MODEL,
            base_url=anthropic.DEFAULT_BASE_URL,
            max_tokens=llm.max_tokens,
            temperature=llm.temperature,
            verbose=llm.verbose_auth,
        )

    if azure_configured:
        return BackendConfig(
            kind=BackendKind.CHAT_COMPLETIONS,
            provider="openai",
            default_model=llm.model or azure.deployment,
            base_url=azure.endpoint.rstrip("/"),
            deployment=azure.deployment,
            api_version=azure.api_version,
            scope=azure.scope,
            identity_client_id=azure.managed_identity_client_id,
            max_tokens=llm.max_tokens,
            temperature=llm.temperature,
            supports_temperature=azure.supports_temperature,
            verbose=llm.verbose_auth or azure.verbose,
        )

    return BackendConfig(
        kind=BackendKind.RESPONSES,
        provider="openai",
        default_model=llm.model or responses.DEFAULT_MODEL,
        base_url=responses.DEFAULT_BASE_URL,
        max_tokens=llm.max_tokens,
        temperature=llm.temperature,
        verbose=llm.verbose_auth,
    )


def build_resolver(
    config: BackendConfig,
    settings: Settings,
    store: CredentialStore,
    environ: Mapping[str, str] | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> CredentialResolver:
    """Assemble the resolution chain for a backend, highest priority first."""
    llm = settings.llm
    sources: list[SecretSource] = [
        EnvSecretSource(llm.direct_secret_env or DIRECT_SECRET_ENV[config.kind], environ=environ)
    ]
    if config.kind == BackendKind.MESSAGES and get_platform() == "macos":
        sources.append(
            KeychainSecretSource(
                llm.keychain_services,
                account=llm.keychain_account,
                verbose=config.verbose,
            )
        )
    if config.kind == BackendKind.CHAT_COMPLETIONS:
        sources.append(
            ManagedIdentitySource(
                config.scope,
                client_id=config.identity_client_id,
                verbose=config.verbose,
            )
        )

    oauth = settings.oauth.anthropic if config.provider == "anthropic" else settings.oauth.openai
    refresher = OAuthRefresher(
        config.provider,
        oauth,
        http_client=http_client,
        timeout=settings.oauth.timeout,
        verbose=config.verbose,
    )
    return CredentialResolver(
        config.provider, sources, store, refresher=refresher, verbose=config.verbose
    )


def create_provider(
    settings: Settings,
    azure: AzureOpenAISettings | None = None,
    store: CredentialStore | None = None,
    environ: Mapping[str, str] | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> ProviderAdapter:
    """Factory to create the configured provider adapter."""
    azure = azure if azure is not None else AzureOpenAISettings()
    config = build_backend_config(settings, azure)
    store = store or CredentialStore(settings.credentials_path())
    resolver = build_resolver(config, settings, store, environ=environ, http_client=http_client)
    return ProviderAdapter(config, resolver, http_client=http_client)
