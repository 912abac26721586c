"""Backend abstractions: one translator, normalizer and sender per wire protocol."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from collections.abc import Mapping
from enum import Enum
from typing import TYPE_CHECKING, Any

import httpx
from pydantic import BaseModel, ConfigDict

from switchboard.core.llm.types import (
    LLMResponse,
    Message,
    ToolCall,
    ToolDefinition,
    UsageInfo,
)
from switchboard.utils.logging import get_logger

if TYPE_CHECKING:
    from switchboard.auth.credentials import ResolvedCredential

log = get_logger(__name__)


class BackendKind(str, Enum):
    MESSAGES = "messages"  # Anthropic Messages API
    RESPONSES = "responses"  # OpenAI Responses API (ChatGPT / Codex backend)
    CHAT_COMPLETIONS = "chat_completions"  # Azure OpenAI Chat Completions


class BackendConfig(BaseModel):
    """Immutable per-adapter backend settings, fixed at construction."""

    model_config = ConfigDict(frozen=True)

    kind: BackendKind
    provider: str
    default_model: str
    base_url: str = ""
    deployment: str = ""
    api_version: str = ""
    scope: str = ""
    identity_client_id: str = ""
    max_tokens: int = 4096
    temperature: float | None = None
    supports_temperature: bool = True
    verbose: bool = False


class MessageTranslator(ABC):
    """Turns canonical messages and tools into backend request kwargs."""

    def __init__(self, config: BackendConfig) -> None:
        self._config = config

    @abstractmethod
    def build(
        self,
        messages: list[Message],
        tools: list[ToolDefinition],
        model: str,
        options: Mapping[str, Any],
    ) -> dict[str, Any]: ...

    def _max_tokens(self, options: Mapping[str, Any]) -> int | None:
        value = options.get("max_tokens")
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        return None

    def _temperature(self, options: Mapping[str, Any]) -> float | None:
        if not self._config.supports_temperature:
            return None
        value = options.get("temperature", self._config.temperature)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)
        return None

    @staticmethod
    def _system_text(messages: list[Message]) -> str:
        return "\n\n".join(m.content for m in messages if m.role == "system" and m.content)


class ResponseNormalizer(ABC):
    """Turns a raw backend response into a canonical LLMResponse."""

    @abstractmethod
    def parse(self, raw: Any) -> LLMResponse: ...


class BackendSender(ABC):
    """Performs the authenticated backend call for one protocol.

    ``client()`` builds the SDK client for one resolved credential;
    ``send()`` makes the single call with it.
    """

    label = "backend"

    def __init__(self, config: BackendConfig, http_client: httpx.AsyncClient) -> None:
        self._config = config
        self._http_client = http_client

    @abstractmethod
    def client(self, credential: ResolvedCredential) -> Any: ...

    @abstractmethod
    async def send(self, client: Any, request: dict[str, Any]) -> Any: ...


# ---------------------------------------------------------------------------
# Parsing helpers shared by the normalizers
# ---------------------------------------------------------------------------


def as_mapping(raw: Any) -> Mapping[str, Any]:
    """Accept a decoded JSON body or an SDK (pydantic) response model."""
    if isinstance(raw, Mapping):
        return raw
    if hasattr(raw, "model_dump"):
        return raw.model_dump(exclude_unset=True)
    raise TypeError(f"cannot normalize response of type {type(raw).__name__}")


def parse_arguments(payload: Any) -> dict[str, Any]:
    """Decode a tool-argument payload; unparseable text is kept under ``raw``."""
    if payload is None:
        return {}
    if isinstance(payload, Mapping):
        return dict(payload)
    if isinstance(payload, (bytes, bytearray)):
        payload = payload.decode("utf-8", errors="replace")
    if not isinstance(payload, str):
        return {"raw": payload}
    if not payload.strip():
        return {}
    try:
        decoded = json.loads(payload)
    except json.JSONDecodeError:
        log.debug("tool_arguments_unparseable", length=len(payload))
        return {"raw": payload}
    if not isinstance(decoded, dict):
        return {"raw": payload}
    return decoded


def dump_arguments(arguments: Mapping[str, Any]) -> str:
    return json.dumps(dict(arguments), separators=(",", ":"), ensure_ascii=False)


class ToolCallCollector:
    """Accumulates tool calls, keeping IDs unique and deterministic."""

    def __init__(self) -> None:
        self.calls: list[ToolCall] = []
        self._seen: set[str] = set()

    def add(self, call_id: Any, name: Any, arguments: Any) -> None:
        base = str(call_id) if call_id else f"call_{len(self.calls)}"
        unique = base
        suffix = 1
        while unique in self._seen:
            unique = f"{base}_{suffix}"
            suffix += 1
        self._seen.add(unique)
        self.calls.append(
            ToolCall(id=unique, name=str(name or ""), arguments=parse_arguments(arguments))
        )


def build_usage(prompt: Any, completion: Any, total: Any = None) -> UsageInfo | None:
    """Usage is only reported when the backend counted a non-zero total."""
    prompt = int(prompt or 0)
    completion = int(completion or 0)
    total = int(total) if total else prompt + completion
    if total <= 0:
        return None
    return UsageInfo(prompt_tokens=prompt, completion_tokens=completion, total_tokens=total)
