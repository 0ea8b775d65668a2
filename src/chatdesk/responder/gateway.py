"""Responder gateway contract and prompt construction."""

from collections.abc import Sequence
from typing import Protocol

from chatdesk.config import AssistantConfig
from chatdesk.session.models import Message, SenderKind

# Sender kind -> chat completion role
_ROLE_BY_SENDER = {
    SenderKind.VISITOR: "user",
    SenderKind.ASSISTANT: "assistant",
    SenderKind.OPERATOR: "assistant",
}


class Responder(Protocol):
    """A pluggable automated-reply generator."""

    async def generate(self, history: Sequence[Message], config: AssistantConfig) -> str:
        """Generate a reply to the conversation so far.

        Raises:
            ProviderError: The backend was unavailable or returned bad output.
            ConfigError: The assistant is disabled or misconfigured.
        """
        ...

    async def close(self) -> None:
        """Release any held resources."""
        ...


def build_chat_messages(
    history: Sequence[Message],
    config: AssistantConfig,
) -> list[dict[str, str]]:
    """Build a chat-completion message list.

    The system prompt always leads. Operator replies are presented as
    assistant turns so the model continues in the same voice.
    """
    messages: list[dict[str, str]] = []
    if config.system_prompt.strip():
        messages.append({"role": "system", "content": config.system_prompt.strip()})
    for message in history:
        messages.append({"role": _ROLE_BY_SENDER[message.sender], "content": message.body})
    return messages
