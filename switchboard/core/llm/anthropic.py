"""Anthropic Messages API backend."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from anthropic import AsyncAnthropic

from switchboard.auth.credentials import ResolvedCredential
from switchboard.core.llm.base import (
    BackendSender,
    MessageTranslator,
    ResponseNormalizer,
    ToolCallCollector,
    as_mapping,
    build_usage,
)
from switchboard.core.llm.types import (
    FinishReason,
    LLMResponse,
    Message,
    ToolDefinition,
)

DEFAULT_MODEL = "claude-sonnet-4-5-20250929"
DEFAULT_BASE_URL = "https://api.anthropic.com"

_STOP_REASONS = {
    "end_turn": FinishReason.STOP,
    "stop_sequence": FinishReason.STOP,
    "tool_use": FinishReason.TOOL_CALLS,
    "max_tokens": FinishReason.LENGTH,
}


def _text_block(text: str) -> dict[str, Any]:
    return {"type": "text", "text": text}


def _tool_result_block(tool_call_id: str, content: str) -> dict[str, Any]:
    return {"type": "tool_result", "tool_use_id": tool_call_id, "content": content}


class AnthropicTranslator(MessageTranslator):
    def build(
        self,
        messages: list[Message],
        tools: list[ToolDefinition],
        model: str,
        options: Mapping[str, Any],
    ) -> dict[str, Any]:
        system: list[dict[str, Any]] = []
        api_messages: list[dict[str, Any]] = []

        for msg in messages:
            if msg.role == "system":
                if msg.content:
                    system.append(_text_block(msg.content))
            elif msg.is_tool_result:
                api_messages.append({
                    "role": "user",
                    "content": [_tool_result_block(msg.tool_call_id, msg.content)],
                })
            elif msg.role == "user":
                api_messages.append({"role": "user", "content": [_text_block(msg.content)]})
            elif msg.tool_calls:
                blocks: list[dict[str, Any]] = []
                if msg.content:
                    blocks.append(_text_block(msg.content))
                for tc in msg.tool_calls:
                    blocks.append({
                        "type": "tool_use",
                        "id": tc.id,
                        "name": tc.name,
                        "input": dict(tc.arguments),
                    })
                api_messages.append({"role": "assistant", "content": blocks})
            # The API rejects empty text blocks
            elif msg.content:
                api_messages.append({"role": "assistant", "content": [_text_block(msg.content)]})

        kwargs: dict[str, Any] = {
            "model": model,
            "messages": api_messages,
            # Mandatory on this API
            "max_tokens": self._max_tokens(options) or self._config.max_tokens,
        }
        if system:
            kwargs["system"] = system
        temperature = self._temperature(options)
        if temperature is not None:
            kwargs["temperature"] = temperature
        if tools:
            kwargs["tools"] = [self._translate_tool(t) for t in tools]
        return kwargs

    @staticmethod
    def _translate_tool(tool: ToolDefinition) -> dict[str, Any]:
        result: dict[str, Any] = {"name": tool.name, "input_schema": tool.input_schema()}
        if tool.description:
            result["description"] = tool.description
        return result


class AnthropicNormalizer(ResponseNormalizer):
    def parse(self, raw: Any) -> LLMResponse:
        data = as_mapping(raw)
        text_parts: list[str] = []
        calls = ToolCallCollector()

        for block in data.get("content") or []:
            block = as_mapping(block)
            if block.get("type") == "text":
                text_parts.append(block.get("text") or "")
            elif block.get("type") == "tool_use":
                calls.add(block.get("id"), block.get("name"), block.get("input"))

        usage = data.get("usage") or {}
        if not isinstance(usage, Mapping):
            usage = as_mapping(usage)
        return LLMResponse(
            content="".join(text_parts),
            tool_calls=calls.calls,
            finish_reason=_STOP_REASONS.get(data.get("stop_reason") or "", FinishReason.STOP),
            usage=build_usage(usage.get("input_tokens"), usage.get("output_tokens")),
        )


class AnthropicSender(BackendSender):
    label = "claude"

    def client(self, credential: ResolvedCredential) -> AsyncAnthropic:
        return AsyncAnthropic(
            api_key=credential.token,
            base_url=self._config.base_url or DEFAULT_BASE_URL,
            max_retries=0,
            http_client=self._http_client,
        )

    async def send(self, client: AsyncAnthropic, request: dict[str, Any]) -> Any:
        return await client.messages.create(**request)
