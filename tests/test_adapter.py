"""End-to-end adapter tests against mocked HTTP backends."""

import json
from unittest.mock import AsyncMock

import httpx
import pytest

from switchboard.auth.credentials import AuthMethod, Credential, ResolvedCredential
from switchboard.auth.resolver import CredentialResolver
from switchboard.auth.sources import EnvSecretSource, SecretSource
from switchboard.auth.store import CredentialStore
from switchboard.config import AzureOpenAISettings, Settings
from switchboard.core.llm import (
    BackendConfig,
    BackendKind,
    FinishReason,
    Message,
    ProviderAdapter,
    ToolDefinition,
    create_provider,
)
from switchboard.errors import BackendCallError, CredentialNotFoundError, SwitchboardError

QUESTION = [Message(role="user", content="What is 2+2? Reply with just the number.")]


class Recorder:
    """MockTransport handler that records requests and replays one response."""

    def __init__(self, body, status=200):
        self.body = body
        self.status = status
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        return httpx.Response(self.status, json=self.body)

    @property
    def last(self):
        return self.requests[-1]

    @property
    def last_json(self):
        return json.loads(self.last.content)


class StaticSource(SecretSource):
    name = "static"

    def __init__(self, resolved):
        self.resolved = resolved

    async def fetch(self):
        return self.resolved


def _client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def store(tmp_path):
    return CredentialStore(tmp_path / "credentials.db")


ANTHROPIC_REPLY = {
    "id": "msg_01",
    "type": "message",
    "role": "assistant",
    "model": "claude-test",
    "content": [{"type": "text", "text": "4"}],
    "stop_reason": "end_turn",
    "stop_sequence": None,
    "usage": {"input_tokens": 20, "output_tokens": 1},
}

RESPONSES_REPLY = {
    "id": "resp_01",
    "object": "response",
    "created_at": 1700000000,
    "model": "gpt-test",
    "status": "completed",
    "parallel_tool_calls": True,
    "tool_choice": "auto",
    "tools": [],
    "output": [{
        "id": "msg_01",
        "type": "message",
        "role": "assistant",
        "status": "completed",
        "content": [{"type": "output_text", "text": "4", "annotations": []}],
    }],
    "usage": {
        "input_tokens": 20,
        "input_tokens_details": {"cached_tokens": 0},
        "output_tokens": 1,
        "output_tokens_details": {"reasoning_tokens": 0},
        "total_tokens": 21,
    },
}

CHAT_REPLY = {
    "id": "chatcmpl-01",
    "object": "chat.completion",
    "created": 1700000000,
    "model": "gpt-4o",
    "choices": [{
        "index": 0,
        "message": {"role": "assistant", "content": "4"},
        "finish_reason": "stop",
    }],
    "usage": {"prompt_tokens": 20, "completion_tokens": 1, "total_tokens": 21},
}


class TestAnthropicAdapter:
    def _adapter(self, handler, store, environ=None):
        config = BackendConfig(
            kind=BackendKind.MESSAGES,
            provider="anthropic",
            default_model="claude-test",
            base_url="https://api.anthropic.test",
        )
        resolver = CredentialResolver(
            "anthropic",
            [EnvSecretSource("ANTHROPIC_API_KEY", environ=environ or {"ANTHROPIC_API_KEY": "sk-ant-test"})],
            store,
        )
        return ProviderAdapter(config, resolver, http_client=_client(handler))

    async def test_simple_question(self, store):
        handler = Recorder(ANTHROPIC_REPLY)
        adapter = self._adapter(handler, store)

        resp = await adapter.chat(QUESTION)
        assert resp.content == "4"
        assert resp.finish_reason == FinishReason.STOP
        assert resp.tool_calls == []
        assert resp.usage.total_tokens == 21

        request = handler.last
        assert request.url.path == "/v1/messages"
        assert request.headers["x-api-key"] == "sk-ant-test"
        body = handler.last_json
        assert body["model"] == "claude-test"
        assert body["max_tokens"] == 4096

    async def test_tool_call(self, store):
        handler = Recorder({
            **ANTHROPIC_REPLY,
            "content": [{
                "type": "tool_use",
                "id": "toolu_01",
                "name": "get_weather",
                "input": {"city": "Paris"},
            }],
            "stop_reason": "tool_use",
        })
        adapter = self._adapter(handler, store)
        tools = [ToolDefinition(name="get_weather", parameters={"properties": {"city": {"type": "string"}}})]

        resp = await adapter.chat(QUESTION, tools=tools, model="claude-other")
        assert resp.finish_reason == FinishReason.TOOL_CALLS
        assert resp.tool_calls[0].id == "toolu_01"
        assert resp.tool_calls[0].arguments == {"city": "Paris"}
        assert handler.last_json["model"] == "claude-other"
        assert handler.last_json["tools"][0]["name"] == "get_weather"

    async def test_backend_failure(self, store):
        handler = Recorder({"type": "error", "error": {"type": "api_error", "message": "boom"}}, status=500)
        adapter = self._adapter(handler, store)

        with pytest.raises(BackendCallError) as exc_info:
            await adapter.chat(QUESTION)
        assert str(exc_info.value).startswith("claude API call:")
        # No retries
        assert len(handler.requests) == 1

    async def test_client_construction_error_wrapped(self, store, monkeypatch):
        def rejecting_client(**kwargs):
            raise TypeError("Invalid `http_client` argument; Expected an instance of `httpx.Client`")

        monkeypatch.setattr("switchboard.core.llm.anthropic.AsyncAnthropic", rejecting_client)
        handler = Recorder(ANTHROPIC_REPLY)
        adapter = self._adapter(handler, store)

        with pytest.raises(BackendCallError) as exc_info:
            await adapter.chat(QUESTION)
        assert str(exc_info.value).startswith("claude API call: building client:")
        assert isinstance(exc_info.value.__cause__, TypeError)
        assert handler.requests == []

    async def test_missing_credentials(self, store):
        handler = Recorder(ANTHROPIC_REPLY)
        config = BackendConfig(kind=BackendKind.MESSAGES, provider="anthropic", default_model="m")
        resolver = CredentialResolver("anthropic", [EnvSecretSource("ANTHROPIC_API_KEY", environ={})], store)
        adapter = ProviderAdapter(config, resolver, http_client=_client(handler))

        with pytest.raises(CredentialNotFoundError) as exc_info:
            await adapter.chat(QUESTION)
        assert exc_info.value.message.startswith("refreshing token:")
        assert handler.requests == []


class TestResponsesAdapter:
    async def test_simple_question_with_account(self, store):
        await store.set(
            "openai",
            Credential(access_token="oauth-token", account_id="acct-42", auth_method=AuthMethod.OAUTH),
        )
        handler = Recorder(RESPONSES_REPLY)
        config = BackendConfig(
            kind=BackendKind.RESPONSES,
            provider="openai",
            default_model="gpt-test",
            base_url="https://chatgpt.test/backend-api/codex",
        )
        resolver = CredentialResolver("openai", [EnvSecretSource("CODEX_ACCESS_TOKEN", environ={})], store)
        adapter = ProviderAdapter(config, resolver, http_client=_client(handler))

        resp = await adapter.chat(QUESTION, options={"max_tokens": 16})
        assert resp.content == "4"
        assert resp.finish_reason == FinishReason.STOP
        assert resp.tool_calls == []

        request = handler.last
        assert request.url.path == "/backend-api/codex/responses"
        assert request.headers["authorization"] == "Bearer oauth-token"
        assert request.headers["chatgpt-account-id"] == "acct-42"
        body = handler.last_json
        assert body["store"] is False
        assert body["max_output_tokens"] == 16
        assert body["instructions"]

    async def test_no_account_header_without_account(self, store):
        handler = Recorder(RESPONSES_REPLY)
        config = BackendConfig(kind=BackendKind.RESPONSES, provider="openai", default_model="gpt-test")
        resolver = CredentialResolver(
            "openai", [EnvSecretSource("CODEX_ACCESS_TOKEN", environ={"CODEX_ACCESS_TOKEN": "tok"})], store
        )
        adapter = ProviderAdapter(config, resolver, http_client=_client(handler))

        await adapter.chat(QUESTION)
        assert "chatgpt-account-id" not in handler.last.headers
        assert handler.last.url.host == "chatgpt.com"


class TestChatCompletionsAdapter:
    def _config(self):
        return BackendConfig(
            kind=BackendKind.CHAT_COMPLETIONS,
            provider="openai",
            default_model="gpt-4o-prod",
            base_url="https://res.openai.azure.com",
            deployment="gpt-4o-prod",
            api_version="2024-10-21",
            scope="https://cognitiveservices.azure.com/.default",
            supports_temperature=False,
        )

    async def test_managed_identity_token(self, store):
        handler = Recorder(CHAT_REPLY)
        source = StaticSource(ResolvedCredential(
            token="aad-token", auth_method=AuthMethod.MANAGED_IDENTITY, source="managed_identity:default",
        ))
        adapter = ProviderAdapter(
            self._config(), CredentialResolver("openai", [source], store), http_client=_client(handler)
        )

        resp = await adapter.chat(QUESTION, options={"max_tokens": 10, "temperature": 0.3})
        assert resp.content == "4"
        assert resp.finish_reason == FinishReason.STOP

        request = handler.last
        assert request.url.path == "/openai/deployments/gpt-4o-prod/chat/completions"
        assert request.url.params["api-version"] == "2024-10-21"
        assert "api-version" not in request.headers
        assert request.headers["authorization"] == "Bearer aad-token"
        body = handler.last_json
        assert body["max_completion_tokens"] == 10
        assert "max_tokens" not in body
        assert "temperature" not in body

    async def test_api_key(self, store):
        handler = Recorder(CHAT_REPLY)
        resolver = CredentialResolver(
            "openai", [EnvSecretSource("AZURE_OPENAI_API_KEY", environ={"AZURE_OPENAI_API_KEY": "azkey"})], store
        )
        adapter = ProviderAdapter(self._config(), resolver, http_client=_client(handler))

        await adapter.chat(QUESTION)
        assert handler.last.headers["api-key"] == "azkey"

    async def test_backend_failure(self, store):
        handler = Recorder({"error": {"code": "DeploymentNotFound", "message": "nope"}}, status=404)
        resolver = CredentialResolver(
            "openai", [EnvSecretSource("AZURE_OPENAI_API_KEY", environ={"AZURE_OPENAI_API_KEY": "azkey"})], store
        )
        adapter = ProviderAdapter(self._config(), resolver, http_client=_client(handler))

        with pytest.raises(BackendCallError, match="^Azure OpenAI API call:"):
            await adapter.chat(QUESTION)


class TestCreateProvider:
    async def test_builds_azure_adapter(self, tmp_path):
        settings = Settings(llm={"provider": "openai"}, data_dir=str(tmp_path))
        azure = AzureOpenAISettings(
            endpoint="https://res.openai.azure.com/",
            deployment="dep",
            api_version="2024-10-21",
            scope="https://cognitiveservices.azure.com/.default",
        )
        adapter = create_provider(settings, azure=azure, environ={})
        try:
            assert adapter.kind == BackendKind.CHAT_COMPLETIONS
            assert adapter.get_default_model() == "dep"
        finally:
            await adapter.close()

    def test_partial_azure_rejected(self, tmp_path):
        settings = Settings(llm={"provider": "openai"}, data_dir=str(tmp_path))
        with pytest.raises(SwitchboardError, match="AZURE_OPENAI_SCOPE"):
            create_provider(settings, azure=AzureOpenAISettings(endpoint="https://x", deployment="d", api_version="v"))

    async def test_default_model_per_backend(self, tmp_path):
        adapter = create_provider(Settings(data_dir=str(tmp_path)), azure=AzureOpenAISettings(), environ={})
        try:
            assert adapter.kind == BackendKind.MESSAGES
            assert adapter.get_default_model().startswith("claude")
        finally:
            await adapter.close()


class TestResolutionPerCall:
    async def test_resolves_on_every_chat(self):
        resolver = AsyncMock()
        resolver.resolve.return_value = ResolvedCredential(token="sk-ant-test", source="env:ANTHROPIC_API_KEY")
        handler = Recorder(ANTHROPIC_REPLY)
        config = BackendConfig(kind=BackendKind.MESSAGES, provider="anthropic", default_model="claude-test")
        adapter = ProviderAdapter(config, resolver, http_client=_client(handler))

        await adapter.chat(QUESTION)
        await adapter.chat(QUESTION)
        assert resolver.resolve.await_count == 2
        assert len(handler.requests) == 2
