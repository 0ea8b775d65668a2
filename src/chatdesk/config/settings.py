"""Pydantic settings configuration for the chat service."""

from enum import Enum
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class LogLevel(str, Enum):
    """Valid logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


DEFAULT_HANDOFF_PHRASES = [
    "human agent",
    "real person",
    "live agent",
    "talk to a human",
    "speak to a human",
    "talk to someone",
    "speak to someone",
    "talk to an agent",
    "speak to an agent",
]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="CHATDESK_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Server settings
    host: str = "0.0.0.0"
    port: int = 5000
    log_level: LogLevel = LogLevel.INFO
    cors_origins: list[str] = ["*"]

    # Operator bearer credentials
    operator_tokens: list[str] = []

    # Assistant defaults file (optional)
    assistant_config_path: str | None = None

    # Presence settings
    typing_timeout_seconds: float = 2.0

    # Routing settings
    history_window: int = 20
    handoff_phrase_detection: bool = True
    handoff_phrases: list[str] = DEFAULT_HANDOFF_PHRASES

    # Responder settings
    responder_timeout_seconds: float = 30.0
    retry_attempts: int = 2
    retry_backoff_ms: int = 500
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    openrouter_api_key: str | None = None
    openai_base_url: str = "https://api.openai.com/v1"
    openai_api_key: str | None = None

    # Observability settings
    audit_enabled: bool = True
    audit_log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
