"""OpenAI Responses API backend (ChatGPT Codex endpoint)."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from openai import AsyncOpenAI

from switchboard.auth.credentials import ResolvedCredential
from switchboard.core.llm.base import (
    BackendSender,
    MessageTranslator,
    ResponseNormalizer,
    ToolCallCollector,
    as_mapping,
    build_usage,
    dump_arguments,
)
from switchboard.core.llm.types import (
    FinishReason,
    LLMResponse,
    Message,
    ToolDefinition,
)

DEFAULT_MODEL = "gpt-4o"
DEFAULT_BASE_URL = "https://chatgpt.com/backend-api/codex"
# The Codex backend rejects requests without instructions
DEFAULT_INSTRUCTIONS = "You are Codex, a coding assistant."
ACCOUNT_HEADER = "Chatgpt-Account-Id"


def _message_item(role: str, content: str) -> dict[str, Any]:
    return {"type": "message", "role": role, "content": content}


def _call_output_item(call_id: str, output: str) -> dict[str, Any]:
    return {"type": "function_call_output", "call_id": call_id, "output": output}


class ResponsesTranslator(MessageTranslator):
    def build(
        self,
        messages: list[Message],
        tools: list[ToolDefinition],
        model: str,
        options: Mapping[str, Any],
    ) -> dict[str, Any]:
        items: list[dict[str, Any]] = []

        for msg in messages:
            if msg.role == "system":
                continue
            if msg.is_tool_result:
                items.append(_call_output_item(msg.tool_call_id, msg.content))
            elif msg.role == "user":
                items.append(_message_item("user", msg.content))
            elif msg.tool_calls:
                if msg.content:
                    items.append(_message_item("assistant", msg.content))
                for tc in msg.tool_calls:
                    items.append({
                        "type": "function_call",
                        "call_id": tc.id,
                        "name": tc.name,
                        "arguments": dump_arguments(tc.arguments),
                    })
            else:
                items.append(_message_item("assistant", msg.content))

        kwargs: dict[str, Any] = {
            "model": model,
            "input": items,
            "instructions": self._system_text(messages) or DEFAULT_INSTRUCTIONS,
            "store": False,
        }
        max_tokens = self._max_tokens(options)
        if max_tokens is not None:
            kwargs["max_output_tokens"] = max_tokens
        temperature = self._temperature(options)
        if temperature is not None:
            kwargs["temperature"] = temperature
        if tools:
            kwargs["tools"] = [self._translate_tool(t) for t in tools]
        return kwargs

    @staticmethod
    def _translate_tool(tool: ToolDefinition) -> dict[str, Any]:
        result: dict[str, Any] = {
            "type": "function",
            "name": tool.name,
            "parameters": tool.input_schema(),
            "strict": False,
        }
        if tool.description:
            result["description"] = tool.description
        return result


class ResponsesNormalizer(ResponseNormalizer):
    def parse(self, raw: Any) -> LLMResponse:
        data = as_mapping(raw)
        text_parts: list[str] = []
        calls = ToolCallCollector()

        for item in data.get("output") or []:
            item = as_mapping(item)
            if item.get("type") == "message":
                for part in item.get("content") or []:
                    part = as_mapping(part)
                    if part.get("type") == "output_text":
                        text_parts.append(part.get("text") or "")
            elif item.get("type") == "function_call":
                calls.add(item.get("call_id"), item.get("name"), item.get("arguments"))

        finish = FinishReason.TOOL_CALLS if calls.calls else FinishReason.STOP
        status = data.get("status")
        if status == "incomplete":
            finish = FinishReason.LENGTH
        elif status == "failed":
            finish = FinishReason.ERROR

        usage = data.get("usage") or {}
        if not isinstance(usage, Mapping):
            usage = as_mapping(usage)
        return LLMResponse(
            content="".join(text_parts),
            tool_calls=calls.calls,
            finish_reason=finish,
            usage=build_usage(
                usage.get("input_tokens"), usage.get("output_tokens"), usage.get("total_tokens")
            ),
        )


class ResponsesSender(BackendSender):
    label = "codex"

    def client(self, credential: ResolvedCredential) -> AsyncOpenAI:
        headers = {ACCOUNT_HEADER: credential.account_id} if credential.account_id else None
        return AsyncOpenAI(
            api_key=credential.token,
            base_url=self._config.base_url or DEFAULT_BASE_URL,
            default_headers=headers,
            max_retries=0,
            http_client=self._http_client,
        )

    async def send(self, client: AsyncOpenAI, request: dict[str, Any]) -> Any:
        return await client.responses.create(**request)
