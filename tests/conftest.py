"""Pytest configuration and fixtures."""

import os
import uuid
from typing import Any

import pytest

# Must be set before chatdesk.main is imported anywhere
os.environ.setdefault("CHATDESK_OPERATOR_TOKENS", '["test-token"]')
os.environ.setdefault("CHATDESK_AUDIT_ENABLED", "false")

from chatdesk.config import AssistantConfig, AssistantConfigStore  # noqa: E402
from chatdesk.config.settings import DEFAULT_HANDOFF_PHRASES  # noqa: E402
from chatdesk.presence import Party, PresenceTracker  # noqa: E402
from chatdesk.realtime import ChannelManager  # noqa: E402
from chatdesk.routing import ConversationRouter, compile_handoff_pattern  # noqa: E402
from chatdesk.session import SessionStore  # noqa: E402

OPERATOR_TOKEN = "test-token"


@pytest.fixture(autouse=True)
def test_settings(monkeypatch):
    """Pin operator credentials and clear the settings cache for every test."""
    monkeypatch.setenv("CHATDESK_OPERATOR_TOKENS", f'["{OPERATOR_TOKEN}"]')
    monkeypatch.setenv("CHATDESK_AUDIT_ENABLED", "false")
    monkeypatch.delenv("CHATDESK_ASSISTANT_CONFIG_PATH", raising=False)

    from chatdesk.config.settings import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class FakeConnection:
    """Connection double that records every delivered frame."""

    def __init__(self, role: Party, connection_id: str | None = None) -> None:
        self.id = connection_id or uuid.uuid4().hex
        self.role = role
        self.events: list[tuple[str, dict[str, Any]]] = []
        self.broken = False

    async def send(self, event: str, data: dict[str, Any]) -> None:
        if self.broken:
            raise RuntimeError("connection closed")
        self.events.append((event, data))

    def named(self, event: str) -> list[dict[str, Any]]:
        """Payloads of every received frame with the given event name."""
        return [data for name, data in self.events if name == event]

    def event_names(self) -> list[str]:
        return [name for name, _ in self.events]


class StubResponder:
    """Responder double returning a fixed reply or raising a fixed error."""

    def __init__(self, reply: str = "Hi there!", error: Exception | None = None) -> None:
        self.reply = reply
        self.error = error
        self.calls: list[tuple[list, AssistantConfig]] = []
        self.closed = False

    async def generate(self, history, config: AssistantConfig) -> str:
        self.calls.append((list(history), config))
        if self.error is not None:
            raise self.error
        return self.reply

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def make_connection():
    """Factory for FakeConnection instances."""

    def _make(role: Party = Party.VISITOR, connection_id: str | None = None) -> FakeConnection:
        return FakeConnection(role, connection_id)

    return _make


@pytest.fixture
def stub_responder() -> StubResponder:
    return StubResponder()


@pytest.fixture
def config_store() -> AssistantConfigStore:
    """Assistant config with the assistant switched on."""
    return AssistantConfigStore(AssistantConfig(is_enabled=True))


@pytest.fixture
async def build_router(config_store):
    """Factory for routers wired to in-memory collaborators."""
    routers: list[ConversationRouter] = []

    def _build(responder, **kwargs) -> ConversationRouter:
        kwargs.setdefault("handoff_pattern", compile_handoff_pattern(DEFAULT_HANDOFF_PHRASES))
        kwargs.setdefault("audit_enabled", False)
        router = ConversationRouter(
            store=SessionStore(),
            config_store=kwargs.pop("config_store", config_store),
            channels=ChannelManager(),
            presence=PresenceTracker(typing_timeout=kwargs.pop("typing_timeout", 0.05)),
            responder=responder,
            **kwargs,
        )
        routers.append(router)
        return router

    yield _build

    for router in routers:
        await router.aclose()


@pytest.fixture
def router(build_router, stub_responder):
    """Router with the stub responder and the assistant enabled."""
    return build_router(stub_responder)


@pytest.fixture
def stub_app_responder(monkeypatch) -> StubResponder:
    """Make the FastAPI app use a StubResponder instead of the HTTP one."""
    responder = StubResponder()
    monkeypatch.setattr("chatdesk.main.build_responder", lambda settings: responder)
    return responder
