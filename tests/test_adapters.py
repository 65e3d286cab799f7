"""Tests for provider adapters: wire translation, parsing and error classification."""

import asyncio
import json

import aiohttp
import pytest

from hydra_router.adapters import (
    AnthropicAdapter, CanonicalRequest, GeminiAdapter, LLMClient, OllamaAdapter, OpenAIAdapter
)
from hydra_router.core.errors import ConfigInvalid, ProviderError
from hydra_router.models.data_classes import ModelConfig, ProviderConfig
from hydra_router.models.enums import ErrorKind, Tier
from hydra_router.models.schemas import LLMOptions, Message


class _FakeResponse:
    def __init__(self, status, body):
        self.status = status
        self.body = body

    async def text(self):
        return self.body if isinstance(self.body, str) else json.dumps(self.body)

    async def json(self, content_type=None):
        if isinstance(self.body, str):
            return json.loads(self.body)
        return self.body

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class _FakeSession:
    def __init__(self, status=200, body=None, exc=None):
        self.status = status
        self.body = body if body is not None else {}
        self.exc = exc
        self.requests = []

    def _respond(self, method, url, **kwargs):
        self.requests.append((method, url, kwargs))
        if self.exc is not None:
            raise self.exc
        return _FakeResponse(self.status, self.body)

    def post(self, url, **kwargs):
        return self._respond("POST", url, **kwargs)

    def get(self, url, **kwargs):
        return self._respond("GET", url, **kwargs)


class _Client:
    def __init__(self, session):
        self.session = session


def _request(options=None):
    return CanonicalRequest(
        model="test-model",
        messages=[
            Message(role="system", content="be brief"),
            Message(role="user", content="hi"),
            Message(role="assistant", content="hello"),
            Message(role="user", content="again"),
        ],
        options=options,
    )


OPENAI_BODY = {
    "choices": [{"message": {"content": "ok"}, "finish_reason": "stop"}],
    "usage": {"prompt_tokens": 12, "completion_tokens": 3},
}


# ═══════════════════════════════════════════════════════════════
#  Translation and parsing
# ═══════════════════════════════════════════════════════════════
class TestOpenAIAdapter:
    def test_translate(self) -> None:
        adapter = OpenAIAdapter(_Client(None))
        wire = adapter.translate(_request(LLMOptions(max_tokens=50, temperature=0.2)))
        assert wire.url == "https://api.openai.com/v1/chat/completions"
        assert wire.payload["model"] == "test-model"
        assert wire.payload["messages"][0] == {"role": "system", "content": "be brief"}
        assert wire.payload["max_tokens"] == 50
        assert wire.payload["temperature"] == 0.2
        assert "top_p" not in wire.payload

    def test_auth_headers(self) -> None:
        adapter = OpenAIAdapter(_Client(None))
        assert adapter.auth_headers("sk-1") == {"Authorization": "Bearer sk-1"}
        assert adapter.auth_headers(None) == {}

    def test_parse(self) -> None:
        response = OpenAIAdapter(_Client(None)).parse(OPENAI_BODY)
        assert response.content == "ok"
        assert (response.input_tokens, response.output_tokens) == (12, 3)
        assert response.finish_reason == "stop"

    def test_base_url_override(self) -> None:
        adapter = OpenAIAdapter(_Client(None), base_url="http://localhost:8000/v1/")
        assert adapter.translate(_request()).url == "http://localhost:8000/v1/chat/completions"


class TestAnthropicAdapter:
    def test_translate_moves_system_prompt(self) -> None:
        wire = AnthropicAdapter(_Client(None)).translate(_request(LLMOptions(stop=["END"])))
        assert wire.url == "https://api.anthropic.com/v1/messages"
        assert wire.payload["system"] == "be brief"
        assert [m["role"] for m in wire.payload["messages"]] == ["user", "assistant", "user"]
        assert wire.payload["max_tokens"] == 1024
        assert wire.payload["stop_sequences"] == ["END"]

    def test_parse(self) -> None:
        body = {
            "content": [{"type": "text", "text": "a"}, {"type": "tool_use"}, {"type": "text", "text": "b"}],
            "usage": {"input_tokens": 7, "output_tokens": 2},
            "stop_reason": "end_turn",
        }
        response = AnthropicAdapter(_Client(None)).parse(body)
        assert response.content == "ab"
        assert (response.input_tokens, response.output_tokens) == (7, 2)
        assert response.finish_reason == "end_turn"

    def test_auth_headers(self) -> None:
        headers = AnthropicAdapter(_Client(None)).auth_headers("key")
        assert headers["x-api-key"] == "key"
        assert headers["anthropic-version"] == "2023-06-01"


class TestGeminiAdapter:
    def test_translate(self) -> None:
        wire = GeminiAdapter(_Client(None)).translate(_request(LLMOptions(max_tokens=20, top_p=0.9)))
        assert wire.url.endswith("/models/test-model:generateContent")
        assert wire.payload["systemInstruction"] == {"parts": [{"text": "be brief"}]}
        assert [c["role"] for c in wire.payload["contents"]] == ["user", "model", "user"]
        assert wire.payload["generationConfig"] == {"maxOutputTokens": 20, "topP": 0.9}

    def test_parse(self) -> None:
        body = {
            "candidates": [{"content": {"parts": [{"text": "x"}, {"text": "y"}]}, "finishReason": "STOP"}],
            "usageMetadata": {"promptTokenCount": 4, "candidatesTokenCount": 6},
        }
        response = GeminiAdapter(_Client(None)).parse(body)
        assert response.content == "xy"
        assert (response.input_tokens, response.output_tokens) == (4, 6)


class TestOllamaAdapter:
    def test_translate(self) -> None:
        wire = OllamaAdapter(_Client(None)).translate(_request(LLMOptions(max_tokens=8)))
        assert wire.url == "http://127.0.0.1:11434/api/chat"
        assert wire.payload["stream"] is False
        assert wire.payload["options"] == {"num_predict": 8}

    def test_parse(self) -> None:
        body = {"message": {"content": "local"}, "prompt_eval_count": 9, "eval_count": 1, "done_reason": "stop"}
        response = OllamaAdapter(_Client(None)).parse(body)
        assert response.content == "local"
        assert (response.input_tokens, response.output_tokens) == (9, 1)

    def test_health_url_uses_tags_endpoint(self) -> None:
        assert OllamaAdapter(_Client(None)).health_url() == "http://127.0.0.1:11434/api/tags"


# ═══════════════════════════════════════════════════════════════
#  HTTP boundary
# ═══════════════════════════════════════════════════════════════
class TestInvoke:
    @pytest.mark.asyncio
    async def test_successful_call(self) -> None:
        session = _FakeSession(200, OPENAI_BODY)
        adapter = OpenAIAdapter(_Client(session))

        response = await adapter.complete(_request(), "sk-1", timeout=5)

        assert response.content == "ok"
        method, url, kwargs = session.requests[0]
        assert method == "POST"
        assert kwargs["headers"]["Authorization"] == "Bearer sk-1"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status,kind", [
        (429, ErrorKind.RATE_LIMITED),
        (503, ErrorKind.OVERLOADED),
        (529, ErrorKind.OVERLOADED),
        (500, ErrorKind.SERVER_ERROR),
        (502, ErrorKind.SERVER_ERROR),
        (401, ErrorKind.AUTH_FAILED),
        (403, ErrorKind.AUTH_FAILED),
        (400, ErrorKind.VALIDATION_ERROR),
        (404, ErrorKind.VALIDATION_ERROR),
    ])
    async def test_status_classification(self, status, kind) -> None:
        adapter = AnthropicAdapter(_Client(_FakeSession(status, "nope")))
        with pytest.raises(ProviderError) as exc_info:
            await adapter.complete(_request(), "key", timeout=5)
        assert exc_info.value.kind == kind
        assert exc_info.value.status_code == status

    @pytest.mark.asyncio
    @pytest.mark.parametrize("exc", [
        aiohttp.ClientConnectionError("refused"),
        asyncio.TimeoutError(),
    ])
    async def test_transport_failures_are_network_errors(self, exc) -> None:
        adapter = GeminiAdapter(_Client(_FakeSession(exc=exc)))
        with pytest.raises(ProviderError) as exc_info:
            await adapter.complete(_request(), "key", timeout=5)
        assert exc_info.value.kind == ErrorKind.NETWORK_ERROR

    @pytest.mark.asyncio
    async def test_malformed_body_is_server_error(self) -> None:
        adapter = OpenAIAdapter(_Client(_FakeSession(200, {"unexpected": True})))
        with pytest.raises(ProviderError) as exc_info:
            await adapter.complete(_request(), "sk", timeout=5)
        assert exc_info.value.kind == ErrorKind.SERVER_ERROR

    @pytest.mark.asyncio
    @pytest.mark.parametrize("raw_body", ["<html>bad gateway</html>", "[]", "\"ok\"", "42"])
    async def test_non_object_body_is_server_error(self, raw_body) -> None:
        adapter = OpenAIAdapter(_Client(_FakeSession(200, raw_body)))
        with pytest.raises(ProviderError) as exc_info:
            await adapter.complete(_request(), "sk", timeout=5)
        assert exc_info.value.kind == ErrorKind.SERVER_ERROR
        assert exc_info.value.status_code == 200

    @pytest.mark.asyncio
    async def test_health_check(self) -> None:
        assert await OllamaAdapter(_Client(_FakeSession(200))).health_check(None) is True
        assert await OllamaAdapter(_Client(_FakeSession(500))).health_check(None) is False
        failing = _FakeSession(exc=aiohttp.ClientConnectionError("down"))
        assert await OllamaAdapter(_Client(failing)).health_check(None) is False


# ═══════════════════════════════════════════════════════════════
#  LLMClient
# ═══════════════════════════════════════════════════════════════
def _provider(adapter, base_url=None):
    model = ModelConfig(id="m", provider_id="p", tier=Tier.LITE)
    return ProviderConfig(id="p", name="P", adapter=adapter, enabled=True, credential=None,
                          fallback_chain=("m",), priority=0, models=(model,), base_url=base_url)


class TestLLMClient:
    def test_adapter_is_cached_per_provider(self) -> None:
        client = LLMClient()
        first = client.get_adapter(_provider("ollama", "http://gpu-box:11434"))
        assert isinstance(first, OllamaAdapter)
        assert first.base_url == "http://gpu-box:11434"
        assert client.get_adapter(_provider("ollama", "http://gpu-box:11434")) is first

    def test_unknown_adapter_raises(self) -> None:
        with pytest.raises(ConfigInvalid):
            LLMClient().get_adapter(_provider("telegraph"))

    @pytest.mark.asyncio
    async def test_start_and_stop(self) -> None:
        client = LLMClient()
        await client.start()
        assert client.session is not None
        await client.stop()
        assert client.session is None
