"""Azure OpenAI Chat Completions backend."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from openai import AsyncAzureOpenAI

from switchboard.auth.credentials import AuthMethod, ResolvedCredential
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

_FINISH_REASONS = {
    "stop": FinishReason.STOP,
    "tool_calls": FinishReason.TOOL_CALLS,
    "function_call": FinishReason.TOOL_CALLS,
    "length": FinishReason.LENGTH,
}


class ChatCompletionsTranslator(MessageTranslator):
    def build(
        self,
        messages: list[Message],
        tools: list[ToolDefinition],
        model: str,
        options: Mapping[str, Any],
    ) -> dict[str, Any]:
        chat_messages: list[dict[str, Any]] = []
        system = self._system_text(messages)
        if system:
            chat_messages.append({"role": "system", "content": system})

        for msg in messages:
            if msg.role == "system":
                continue
            if msg.is_tool_result:
                chat_messages.append({
                    "role": "tool",
                    "tool_call_id": msg.tool_call_id,
                    "content": msg.content,
                })
            elif msg.role == "user":
                chat_messages.append({"role": "user", "content": msg.content})
            elif msg.tool_calls:
                chat_messages.append({
                    "role": "assistant",
                    "content": msg.content or None,
                    "tool_calls": [
                        {
                            "id": tc.id,
                            "type": "function",
                            "function": {
                                "name": tc.name,
                                "arguments": dump_arguments(tc.arguments),
                            },
                        }
                        for tc in msg.tool_calls
                    ],
                })
            else:
                chat_messages.append({"role": "assistant", "content": msg.content})

        kwargs: dict[str, Any] = {"model": model, "messages": chat_messages}
        # Azure wants the completion-token name, not max_tokens
        max_tokens = self._max_tokens(options)
        if max_tokens is not None:
            kwargs["max_completion_tokens"] = max_tokens
        temperature = self._temperature(options)
        if temperature is not None:
            kwargs["temperature"] = temperature
        if tools:
            kwargs["tools"] = [self._translate_tool(t) for t in tools]
        return kwargs

    @staticmethod
    def _translate_tool(tool: ToolDefinition) -> dict[str, Any]:
        function: dict[str, Any] = {"name": tool.name, "parameters": tool.input_schema()}
        if tool.description:
            function["description"] = tool.description
        return {"type": "function", "function": function}


class ChatCompletionsNormalizer(ResponseNormalizer):
    def parse(self, raw: Any) -> LLMResponse:
        data = as_mapping(raw)
        choices = data.get("choices") or []
        if not choices:
            return LLMResponse(content="", finish_reason=FinishReason.ERROR)

        choice = as_mapping(choices[0])
        message = as_mapping(choice.get("message") or {})
        calls = ToolCallCollector()
        for tc in message.get("tool_calls") or []:
            tc = as_mapping(tc)
            function = as_mapping(tc.get("function") or {})
            calls.add(tc.get("id"), function.get("name"), function.get("arguments"))

        usage = data.get("usage") or {}
        if not isinstance(usage, Mapping):
            usage = as_mapping(usage)
        return LLMResponse(
            content=message.get("content") or "",
            tool_calls=calls.calls,
            finish_reason=_FINISH_REASONS.get(choice.get("finish_reason") or "", FinishReason.STOP),
            usage=build_usage(
                usage.get("prompt_tokens"),
                usage.get("completion_tokens"),
                usage.get("total_tokens"),
            ),
        )


class ChatCompletionsSender(BackendSender):
    label = "Azure OpenAI"

    def client(self, credential: ResolvedCredential) -> AsyncAzureOpenAI:
        # api-version travels as a query parameter; the service rejects it as a header
        auth: dict[str, Any]
        if credential.auth_method == AuthMethod.API_KEY:
            auth = {"api_key": credential.token}
        else:
            auth = {"azure_ad_token": credential.token}
        return AsyncAzureOpenAI(
            azure_endpoint=self._config.base_url,
            azure_deployment=self._config.deployment,
            api_version=self._config.api_version,
            max_retries=0,
            http_client=self._http_client,
            **auth,
        )

    async def send(self, client: AsyncAzureOpenAI, request: dict[str, Any]) -> Any:
        return await client.chat.completions.create(**request)
