"""Tests for the responder gateway and HTTP responder."""

import json
from datetime import UTC, datetime

import httpx
import pytest

from chatdesk.config import AssistantConfig, Settings
from chatdesk.responder import (
    ConfigError,
    HTTPResponder,
    ProviderEndpoint,
    ProviderError,
    RetryConfig,
    build_chat_messages,
    build_responder,
)
from chatdesk.session import Message, SenderKind


def make_message(body: str, sender: SenderKind, seq: int = 1) -> Message:
    return Message(
        id=f"m{seq}",
        session_id="s1",
        body=body,
        sender=sender,
        timestamp=datetime.now(UTC),
        seq=seq,
    )


def completion(content) -> dict:
    return {"choices": [{"index": 0, "message": {"role": "assistant", "content": content}}]}


@pytest.fixture
def config() -> AssistantConfig:
    return AssistantConfig(
        is_enabled=True,
        provider="openrouter",
        model="z-ai/glm-4.5-air:free",
        system_prompt="Be brief.",
        temperature=0.2,
        max_tokens=100,
    )


@pytest.fixture
def history() -> list[Message]:
    return [make_message("Hello", SenderKind.VISITOR)]


def make_responder(handler, api_key: str | None = "secret", max_attempts: int = 3) -> HTTPResponder:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HTTPResponder(
        providers={"openrouter": ProviderEndpoint("https://llm.example.test/api/v1/", api_key)},
        http_client=client,
        retry_config=RetryConfig(max_attempts=max_attempts, base_delay_ms=1, max_delay_ms=5),
    )


class TestBuildChatMessages:
    """Tests for prompt construction."""

    def test_system_prompt_first(self, config):
        history = [
            make_message("Hello", SenderKind.VISITOR, 1),
            make_message("Hi!", SenderKind.ASSISTANT, 2),
            make_message("I'm Sam from support", SenderKind.OPERATOR, 3),
            make_message("Thanks", SenderKind.VISITOR, 4),
        ]

        messages = build_chat_messages(history, config)

        assert messages == [
            {"role": "system", "content": "Be brief."},
            {"role": "user", "content": "Hello"},
            {"role": "assistant", "content": "Hi!"},
            {"role": "assistant", "content": "I'm Sam from support"},
            {"role": "user", "content": "Thanks"},
        ]

    def test_blank_system_prompt_omitted(self, config, history):
        config = config.model_copy(update={"system_prompt": "  "})

        assert build_chat_messages(history, config) == [{"role": "user", "content": "Hello"}]


class TestHTTPResponder:
    """Tests for HTTPResponder."""

    @pytest.mark.asyncio
    async def test_generate_success(self, config, history):
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json=completion("  Hi there!  "))

        responder = make_responder(handler)
        reply = await responder.generate(history, config)

        assert reply == "Hi there!"
        request = requests[0]
        assert str(request.url) == "https://llm.example.test/api/v1/chat/completions"
        assert request.headers["Authorization"] == "Bearer secret"
        body = json.loads(request.content)
        assert body["model"] == "z-ai/glm-4.5-air:free"
        assert body["temperature"] == 0.2
        assert body["max_tokens"] == 100
        assert body["messages"][0] == {"role": "system", "content": "Be brief."}
        assert body["messages"][-1] == {"role": "user", "content": "Hello"}

    @pytest.mark.asyncio
    async def test_disabled_assistant(self, config, history):
        responder = make_responder(lambda request: httpx.Response(200, json=completion("x")))

        with pytest.raises(ConfigError):
            await responder.generate(history, config.model_copy(update={"is_enabled": False}))

    @pytest.mark.asyncio
    async def test_unknown_provider(self, config, history):
        responder = make_responder(lambda request: httpx.Response(200, json=completion("x")))

        with pytest.raises(ConfigError, match="Unknown provider"):
            await responder.generate(history, config.model_copy(update={"provider": "acme"}))

    @pytest.mark.asyncio
    async def test_missing_api_key(self, config, history):
        responder = make_responder(
            lambda request: httpx.Response(200, json=completion("x")), api_key=None
        )

        with pytest.raises(ConfigError, match="No API key"):
            await responder.generate(history, config)

    @pytest.mark.asyncio
    async def test_retries_transient_errors(self, config, history):
        """503 responses are retried until one succeeds."""
        statuses = iter([503, 503, 200])
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            status = next(statuses)
            calls.append(status)
            if status != 200:
                return httpx.Response(status, json={"error": "overloaded"})
            return httpx.Response(200, json=completion("Recovered"))

        responder = make_responder(handler)

        assert await responder.generate(history, config) == "Recovered"
        assert calls == [503, 503, 200]

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self, config, history):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(429, json={"error": "rate limited"})

        responder = make_responder(handler, max_attempts=2)

        with pytest.raises(ProviderError) as exc_info:
            await responder.generate(history, config)

        assert len(calls) == 2
        assert exc_info.value.status_code == 429
        assert exc_info.value.attempts == 2
        assert exc_info.value.is_retryable is True

    @pytest.mark.asyncio
    async def test_client_error_not_retried(self, config, history):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(400, json={"error": "bad model"})

        responder = make_responder(handler)

        with pytest.raises(ProviderError) as exc_info:
            await responder.generate(history, config)

        assert len(calls) == 1
        assert exc_info.value.status_code == 400
        assert exc_info.value.is_retryable is False

    @pytest.mark.asyncio
    async def test_connection_errors_retried(self, config, history):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            raise httpx.ConnectError("connection refused", request=request)

        responder = make_responder(handler)

        with pytest.raises(ProviderError) as exc_info:
            await responder.generate(history, config)

        assert len(calls) == 3
        assert exc_info.value.status_code is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "payload",
        [
            {"choices": []},
            {"id": "no-choices"},
            completion(""),
            completion("   "),
            completion(None),
        ],
    )
    async def test_malformed_response(self, config, history, payload):
        responder = make_responder(lambda request: httpx.Response(200, json=payload))

        with pytest.raises(ProviderError):
            await responder.generate(history, config)

    @pytest.mark.asyncio
    async def test_invalid_json(self, config, history):
        responder = make_responder(
            lambda request: httpx.Response(200, content=b"<html>oops</html>")
        )

        with pytest.raises(ProviderError, match="invalid JSON"):
            await responder.generate(history, config)

    @pytest.mark.asyncio
    async def test_close_keeps_shared_client(self, config, history):
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200)))
        responder = HTTPResponder(providers={}, http_client=client)

        await responder.close()

        assert client.is_closed is False
        await client.aclose()


class TestBuildResponder:
    """Tests for build_responder."""

    def test_builds_known_providers(self):
        settings = Settings(openrouter_api_key="or-key", retry_attempts=0)

        responder = build_responder(settings)

        assert isinstance(responder, HTTPResponder)
        assert responder.providers == ["openai", "openrouter"]
