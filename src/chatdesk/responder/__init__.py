"""Responder gateway: pluggable automated-assistant backends."""

from chatdesk.config import Settings
from chatdesk.responder.errors import ConfigError, ProviderError, ResponderError
from chatdesk.responder.gateway import Responder, build_chat_messages
from chatdesk.responder.http import HTTPResponder, ProviderEndpoint
from chatdesk.responder.retry import RetryConfig, is_retryable_error


def build_responder(settings: Settings) -> Responder:
    """Build the HTTP responder from settings."""
    providers = {
        "openrouter": ProviderEndpoint(
            base_url=settings.openrouter_base_url,
            api_key=settings.openrouter_api_key,
        ),
        "openai": ProviderEndpoint(
            base_url=settings.openai_base_url,
            api_key=settings.openai_api_key,
        ),
    }
    retry_config = RetryConfig(
        max_attempts=max(settings.retry_attempts, 1),
        base_delay_ms=settings.retry_backoff_ms,
    )
    return HTTPResponder(
        providers=providers,
        timeout=settings.responder_timeout_seconds,
        retry_config=retry_config,
    )


__all__ = [
    "ConfigError",
    "HTTPResponder",
    "ProviderEndpoint",
    "ProviderError",
    "Responder",
    "ResponderError",
    "RetryConfig",
    "build_chat_messages",
    "build_responder",
    "is_retryable_error",
]
