"""Responder gateway failures."""


class ResponderError(Exception):
    """Base class for assistant generation failures."""

    pass


class ProviderError(ResponderError):
    """Raised when the upstream generation backend fails.

    Covers timeouts, transport errors, rate limiting, HTTP errors and
    malformed or empty output.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        is_retryable: bool = False,
        attempts: int = 1,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.is_retryable = is_retryable
        self.attempts = attempts


class ConfigError(ResponderError):
    """Raised when the assistant is disabled or misconfigured."""

    pass
