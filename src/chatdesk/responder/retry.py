"""Retry logic with exponential backoff for responder requests.

This module provides retry configuration and utilities for retrying
failed generation requests with exponential backoff.
"""

import asyncio
import logging
from dataclasses import dataclass

import httpx

logger = logging.getLogger(__name__)


@dataclass
class RetryConfig:
    """Configuration for retry behavior.

    Attributes:
        max_attempts: Maximum number of attempts (including initial).
        base_delay_ms: Base delay in milliseconds for exponential backoff.
        max_delay_ms: Maximum delay in milliseconds.
    """

    max_attempts: int = 3
    base_delay_ms: int = 500
    max_delay_ms: int = 5000

    def get_delay_ms(self, attempt: int) -> int:
        """Calculate delay for a given attempt using exponential backoff.

        Args:
            attempt: The current attempt number (0-indexed).

        Returns:
            Delay in milliseconds before the next retry.
        """
        if attempt <= 0:
            return 0
        delay = self.base_delay_ms * (2 ** (attempt - 1))
        return min(delay, self.max_delay_ms)

    async def wait_before_retry(self, attempt: int) -> None:
        """Wait before retrying based on the attempt number.

        Args:
            attempt: The current attempt number (0-indexed).
        """
        delay_ms = self.get_delay_ms(attempt)
        if delay_ms > 0:
            logger.debug("Waiting %dms before retry attempt %d", delay_ms, attempt + 1)
            await asyncio.sleep(delay_ms / 1000.0)


def is_retryable_status(status_code: int) -> bool:
    """Retry on 429 Too Many Requests and 5xx; never on other 4xx."""
    return status_code == 429 or 500 <= status_code < 600


def is_retryable_error(error: Exception) -> bool:
    """Determine if an httpx error should trigger a retry.

    Retryable errors include:
    - Timeouts and connection failures
    - 429 and 5xx responses

    Args:
        error: The exception to check.

    Returns:
        True if the error is retryable.
    """
    if isinstance(error, httpx.HTTPStatusError):
        return is_retryable_status(error.response.status_code)
    if isinstance(error, (httpx.TimeoutException, httpx.TransportError)):
        return True
    return False
