"""Canonical LLM data types shared by every backend."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

ROLES = ("system", "user", "assistant", "tool")


class FinishReason(str, Enum):
    STOP = "stop"
    TOOL_CALLS = "tool_calls"
    LENGTH = "length"
    ERROR = "error"


@dataclass
class ToolCall:
    id: str
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)


@dataclass
class Message:
    role: str  # "system", "user", "assistant", "tool"
    content: str = ""
    tool_call_id: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.role not in ROLES:
            raise ValueError(f"unknown message role: {self.role!r}")
        if self.role == "tool" and not self.tool_call_id:
            raise ValueError("tool messages must carry a tool_call_id")

    @property
    def is_tool_result(self) -> bool:
        return self.role == "tool" or (self.role == "user" and bool(self.tool_call_id))


@dataclass
class ToolDefinition:
    name: str
    description: str = ""
    parameters: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_openai(cls, data: dict[str, Any]) -> ToolDefinition:
        """Accept both ``{"type": "function", "function": {...}}`` and the bare function dict."""
        fn = data.get("function", data)
        return cls(
            name=fn["name"],
            description=fn.get("description", "") or "",
            parameters=dict(fn.get("parameters") or {}),
        )

    def input_schema(self) -> dict[str, Any]:
        """Object schema with ``properties`` copied and ``required`` narrowed to strings."""
        schema: dict[str, Any] = {
            "type": "object",
            "properties": self.parameters.get("properties") or {},
        }
        required = self.parameters.get("required")
        if isinstance(required, (list, tuple)):
            schema["required"] = [r for r in required if isinstance(r, str)]
        return schema


@dataclass
class UsageInfo:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


@dataclass
class LLMResponse:
    content: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    finish_reason: FinishReason = FinishReason.STOP
    usage: UsageInfo | None = None
