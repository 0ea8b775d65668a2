"""HTTP responder for OpenAI-compatible chat completion backends.

This module provides the HTTPResponder class that turns a conversation
history and the current AssistantConfig into a single reply, retrying
transient upstream failures with exponential backoff.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass

import httpx

from chatdesk.config import AssistantConfig
from chatdesk.responder.errors import ConfigError, ProviderError
from chatdesk.responder.gateway import build_chat_messages
from chatdesk.responder.retry import RetryConfig, is_retryable_error
from chatdesk.session.models import Message

logger = logging.getLogger(__name__)

# Constants
DEFAULT_TIMEOUT = 30.0  # seconds


@dataclass(frozen=True)
class ProviderEndpoint:
    """Base URL and credential for one generation provider."""

    base_url: str
    api_key: str | None = None

    @property
    def completions_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/chat/completions"


class HTTPResponder:
    """Responder backed by OpenAI-compatible ``/chat/completions`` endpoints.

    Providers are looked up by ``AssistantConfig.provider``. Each call sends
    the system prompt followed by the conversation history and returns the
    first choice's text.
    """

    def __init__(
        self,
        providers: dict[str, ProviderEndpoint],
        http_client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        retry_config: RetryConfig | None = None,
    ):
        """Initialize the responder.

        Args:
            providers: Endpoint per provider identifier.
            http_client: Optional shared HTTP client. If not provided,
                a new client will be created on first use.
            timeout: Request timeout in seconds.
            retry_config: Optional retry configuration.
        """
        self._providers = providers
        self._http_client = http_client
        self._owns_client = http_client is None
        self._timeout = timeout
        self._retry_config = retry_config or RetryConfig()

    @property
    def providers(self) -> list[str]:
        """Get the configured provider identifiers."""
        return sorted(self._providers)

    async def close(self) -> None:
        """Close the responder and release resources."""
        if self._owns_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def generate(self, history: Sequence[Message], config: AssistantConfig) -> str:
        """Generate an assistant reply.

        Args:
            history: Recent conversation messages in arrival order.
            config: The current assistant configuration.

        Returns:
            The reply text (stripped, non-empty).

        Raises:
            ConfigError: If the assistant is disabled, the provider is unknown,
                or the provider has no API key.
            ProviderError: If the request fails after all retries or the
                response is malformed.
        """
        endpoint = self._resolve_endpoint(config)

        payload = {
            "model": config.model,
            "messages": build_chat_messages(history, config),
            "temperature": config.temperature,
            "max_tokens": config.max_tokens,
        }
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "Authorization": f"Bearer {endpoint.api_key}",
        }

        logger.debug(
            "Requesting completion (provider=%s, model=%s, messages=%d)",
            config.provider,
            config.model,
            len(payload["messages"]),
        )

        last_error: Exception | None = None
        attempts = 0

        for attempt in range(self._retry_config.max_attempts):
            attempts = attempt + 1

            if attempt > 0:
                await self._retry_config.wait_before_retry(attempt)
                logger.info(
                    "Retrying completion request (attempt %d/%d)",
                    attempts,
                    self._retry_config.max_attempts,
                )

            try:
                data = await self._post(endpoint.completions_url, payload, headers)
            except (httpx.HTTPStatusError, httpx.TransportError) as e:
                last_error = e
                if not is_retryable_error(e):
                    logger.error("Completion request failed with non-retryable error: %s", e)
                    break
                if attempt < self._retry_config.max_attempts - 1:
                    logger.warning(
                        "Completion request failed (attempt %d/%d): %s",
                        attempts,
                        self._retry_config.max_attempts,
                        e,
                    )
                else:
                    logger.error("Completion request failed after %d attempts: %s", attempts, e)
                continue

            return self._extract_reply(data)

        status_code = None
        if isinstance(last_error, httpx.HTTPStatusError):
            status_code = last_error.response.status_code
        raise ProviderError(
            f"Provider {config.provider} failed after {attempts} attempt(s): {last_error}",
            status_code=status_code,
            is_retryable=is_retryable_error(last_error) if last_error else False,
            attempts=attempts,
        )

    def _resolve_endpoint(self, config: AssistantConfig) -> ProviderEndpoint:
        if not config.is_enabled:
            raise ConfigError("Assistant is disabled")
        endpoint = self._providers.get(config.provider)
        if endpoint is None:
            raise ConfigError(
                f"Unknown provider '{config.provider}'. Available providers: {self.providers}"
            )
        if not endpoint.api_key:
            raise ConfigError(f"No API key configured for provider '{config.provider}'")
        return endpoint

    async def _post(self, url: str, payload: dict, headers: dict[str, str]) -> dict:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout)
            self._owns_client = True

        response = await self._http_client.post(
            url,
            json=payload,
            headers=headers,
            timeout=self._timeout,
        )
        response.raise_for_status()
        try:
            return response.json()
        except ValueError as e:
            raise ProviderError(f"Provider returned invalid JSON: {e}") from e

    @staticmethod
    def _extract_reply(data: dict) -> str:
        """Pull the first choice's text out of a completion response.

        Raises:
            ProviderError: If the response has no usable text.
        """
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderError(f"Malformed completion response: missing {e}") from e

        if not isinstance(content, str) or not content.strip():
            raise ProviderError("Completion response contained no text")
        return content.strip()
