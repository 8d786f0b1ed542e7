"""Tests for provider clients and provider resolution."""

import json

import httpx
import pytest

from rlmkit.config import RunOptions
from rlmkit.llm import (
    AnthropicClient,
    LLMRouter,
    MissingCredentialError,
    OllamaClient,
    OpenAIClient,
    ProviderHTTPError,
    ProviderTransportError,
    UnsupportedProviderError,
    available_providers,
    resolve_provider,
)
from rlmkit.rlm import is_transient

MESSAGES = [
    {"role": "system", "content": "You write code."},
    {"role": "user", "content": "Question: hi"},
]


def recording_transport(response_json, status=200):
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(status, json=response_json)

    return httpx.MockTransport(handler), seen


@pytest.fixture
def no_env_keys(monkeypatch):
    for name in ("ANTHROPIC_API_KEY", "OPENAI_API_KEY", "OPENROUTER_API_KEY"):
        monkeypatch.delenv(name, raising=False)


class TestClients:
    @pytest.mark.asyncio
    async def test_openai_request_and_response(self):
        transport, seen = recording_transport(
            {"choices": [{"message": {"content": "final = 1"}}]}
        )
        client = OpenAIClient(api_key="sk-test", transport=transport)

        text = await client.complete(MESSAGES, temperature=0.1, max_tokens=50)

        assert text == "final = 1"
        request = seen[0]
        assert str(request.url) == OpenAIClient.endpoint
        assert request.headers["authorization"] == "Bearer sk-test"
        body = json.loads(request.content)
        assert body["model"] == "gpt-4o-mini"
        assert body["messages"] == MESSAGES
        assert body["temperature"] == 0.1
        assert body["max_tokens"] == 50

    @pytest.mark.asyncio
    async def test_anthropic_lifts_system_and_joins_text_blocks(self):
        transport, seen = recording_transport({
            "content": [
                {"type": "text", "text": "final = "},
                {"type": "tool_use", "id": "x"},
                {"type": "text", "text": "2"},
            ]
        })
        client = AnthropicClient(api_key="ak-test", model="claude-test", transport=transport)

        text = await client.complete(MESSAGES)

        assert text == "final = 2"
        request = seen[0]
        assert request.headers["x-api-key"] == "ak-test"
        assert request.headers["anthropic-version"] == "2023-06-01"
        body = json.loads(request.content)
        assert body["system"] == "You write code."
        assert body["messages"] == [
            {"role": "user", "content": [{"type": "text", "text": "Question: hi"}]}
        ]

    @pytest.mark.asyncio
    async def test_ollama_uses_chat_endpoint(self):
        transport, seen = recording_transport({"message": {"content": "final = 3"}})
        client = OllamaClient(base_url="http://ollama:11434/", transport=transport)

        assert await client.complete(MESSAGES) == "final = 3"
        assert str(seen[0].url) == "http://ollama:11434/api/chat"
        assert json.loads(seen[0].content)["stream"] is False

    @pytest.mark.asyncio
    async def test_non_2xx_raises_http_error_with_status_and_body(self):
        transport, _ = recording_transport({"error": "slow down"}, status=429)
        client = OpenAIClient(api_key="sk-test", transport=transport)

        with pytest.raises(ProviderHTTPError) as info:
            await client.complete(MESSAGES)

        assert info.value.status == 429
        assert "slow down" in info.value.body
        assert "status 429" in str(info.value)
        assert is_transient(info.value)

    @pytest.mark.asyncio
    async def test_transport_failure_raises_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = OpenAIClient(api_key="sk-test", transport=httpx.MockTransport(handler))

        with pytest.raises(ProviderTransportError):
            await client.complete(MESSAGES)

    @pytest.mark.asyncio
    async def test_ollama_health_check_failure(self):
        def handler(request):
            raise httpx.ConnectError("down", request=request)

        client = OllamaClient(transport=httpx.MockTransport(handler))
        assert await client.check_health() is False

    @pytest.mark.asyncio
    async def test_ollama_error_body_raises_http_error(self):
        transport, _ = recording_transport({"error": "model not found"})
        options = RunOptions(provider="ollama", ollama_base_url="http://local:1", transport=transport)

        with pytest.raises(ProviderHTTPError) as info:
            await LLMRouter().complete(MESSAGES, options)

        assert "model not found" in str(info.value)

    @pytest.mark.asyncio
    async def test_malformed_body_raises_transport_error(self):
        def handler(request):
            return httpx.Response(200, text="<html>gateway</html>")

        client = OpenAIClient(api_key="sk-test", transport=httpx.MockTransport(handler))

        with pytest.raises(ProviderTransportError):
            await client.complete(MESSAGES)


class TestResolution:
    def test_precedence_prefers_anthropic(self, no_env_keys, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk")
        monkeypatch.setenv("ANTHROPIC_API_KEY", "ak")

        assert resolve_provider(RunOptions()) == "anthropic"
        assert available_providers(RunOptions()) == ["anthropic", "openai"]

    def test_option_key_counts_as_credential(self, no_env_keys):
        assert resolve_provider(RunOptions(openrouter_api_key="or")) == "openrouter"

    def test_explicit_provider_wins(self, no_env_keys, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "ak")
        assert resolve_provider(RunOptions(provider="OpenAI")) == "openai"

    def test_no_credentials(self, no_env_keys):
        with pytest.raises(MissingCredentialError):
            resolve_provider(RunOptions())

    def test_unknown_provider(self):
        with pytest.raises(UnsupportedProviderError):
            resolve_provider(RunOptions(provider="nope"))


class TestRouter:
    @pytest.mark.asyncio
    async def test_routes_to_explicit_provider_with_generic_key(self, no_env_keys):
        transport, seen = recording_transport(
            {"choices": [{"message": {"content": "final = 'routed'"}}]}
        )
        options = RunOptions(provider="openrouter", api_key="generic", model="m", transport=transport)

        text = await LLMRouter().complete(MESSAGES, options)

        assert text == "final = 'routed'"
        assert seen[0].url.host == "openrouter.ai"
        assert seen[0].headers["authorization"] == "Bearer generic"
        assert json.loads(seen[0].content)["model"] == "m"

    @pytest.mark.asyncio
    async def test_explicit_provider_without_key(self, no_env_keys):
        with pytest.raises(MissingCredentialError):
            await LLMRouter().complete(MESSAGES, RunOptions(provider="openai"))

    @pytest.mark.asyncio
    async def test_ollama_needs_no_key(self, no_env_keys):
        transport, seen = recording_transport({"message": {"content": "final = 0"}})
        options = RunOptions(provider="ollama", ollama_base_url="http://local:1", transport=transport)

        assert await LLMRouter().complete(MESSAGES, options) == "final = 0"
        assert json.loads(seen[0].content)["model"] == "llama3.1:8b"
