"""ProviderAdapter: one uniform chat() over the configured backend."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

import anthropic
import httpx
import openai

from switchboard.auth.resolver import CredentialResolver
from switchboard.core.llm.anthropic import AnthropicNormalizer, AnthropicSender, AnthropicTranslator
from switchboard.core.llm.base import (
    BackendConfig,
    BackendKind,
    BackendSender,
    MessageTranslator,
    ResponseNormalizer,
)
from switchboard.core.llm.chat_completions import (
    ChatCompletionsNormalizer,
    ChatCompletionsSender,
    ChatCompletionsTranslator,
)
from switchboard.core.llm.responses import ResponsesNormalizer, ResponsesSender, ResponsesTranslator
from switchboard.core.llm.types import LLMResponse, Message, ToolDefinition
from switchboard.errors import BackendCallError, CredentialError
from switchboard.utils.logging import get_logger

log = get_logger(__name__)

# Errors raised by the SDKs or the transport underneath them
_BACKEND_ERRORS = (anthropic.APIError, openai.APIError, httpx.HTTPError)
# Raised by SDK client constructors on rejected arguments or config
_CLIENT_ERRORS = (TypeError, ValueError, anthropic.AnthropicError, openai.OpenAIError)


@dataclass(frozen=True)
class Backend:
    translator: type[MessageTranslator]
    normalizer: type[ResponseNormalizer]
    sender: type[BackendSender]


BACKENDS: dict[BackendKind, Backend] = {
    BackendKind.MESSAGES: Backend(AnthropicTranslator, AnthropicNormalizer, AnthropicSender),
    BackendKind.RESPONSES: Backend(ResponsesTranslator, ResponsesNormalizer, ResponsesSender),
    BackendKind.CHAT_COMPLETIONS: Backend(
        ChatCompletionsTranslator, ChatCompletionsNormalizer, ChatCompletionsSender
    ),
}


class ProviderAdapter:
    """Binds a credential resolver to one backend's translator/normalizer pair.

    The backend is chosen once, from ``config.kind``. Each ``chat()`` resolves
    credentials afresh, builds the request, calls the backend once and
    normalizes the reply. Nothing is retried.
    """

    def __init__(
        self,
        config: BackendConfig,
        resolver: CredentialResolver,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config
        self._resolver = resolver
        self._owns_http_client = http_client is None
        self._http_client = http_client or httpx.AsyncClient(timeout=httpx.Timeout(600.0, connect=10.0))

        backend = BACKENDS[config.kind]
        self._translator = backend.translator(config)
        self._normalizer = backend.normalizer()
        self._sender = backend.sender(config, self._http_client)

    @property
    def config(self) -> BackendConfig:
        return self._config

    @property
    def resolver(self) -> CredentialResolver:
        return self._resolver

    @property
    def kind(self) -> BackendKind:
        return self._config.kind

    def get_default_model(self) -> str:
        return self._config.default_model

    async def chat(
        self,
        messages: Sequence[Message],
        tools: Sequence[ToolDefinition] | None = None,
        model: str | None = None,
        options: Mapping[str, Any] | None = None,
    ) -> LLMResponse:
        try:
            credential = await self._resolver.resolve()
        except CredentialError as e:
            raise type(e)(f"refreshing token: {e.message}", provider=e.provider) from e

        model = model or self.get_default_model()
        request = self._translator.build(list(messages), list(tools or []), model, options or {})
        if self._config.verbose:
            log.info(
                "backend_request",
                backend=self._config.kind.value,
                model=model,
                messages=len(messages),
                tools=len(tools or []),
                credential_source=credential.source,
            )

        label = self._sender.label
        try:
            client = self._sender.client(credential)
        except _CLIENT_ERRORS as e:
            log.warning("backend_client_failed", backend=self._config.kind.value, error=str(e))
            raise BackendCallError(
                f"{label} API call: building client: {e}", provider=self._config.provider
            ) from e

        try:
            raw = await self._sender.send(client, request)
        except _BACKEND_ERRORS as e:
            log.warning("backend_call_failed", backend=self._config.kind.value, error=str(e))
            raise BackendCallError(
                f"{label} API call: {e}", provider=self._config.provider
            ) from e

        return self._normalizer.parse(raw)

    async def close(self) -> None:
        if self._owns_http_client:
            await self._http_client.aclose()
