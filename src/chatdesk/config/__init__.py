"""Configuration module for the chat service."""

from chatdesk.config.assistant import (
    AssistantConfig,
    AssistantConfigStore,
    ConfigLoadError,
    load_assistant_config,
)
from chatdesk.config.settings import LogLevel, Settings, get_settings

__all__ = [
    "AssistantConfig",
    "AssistantConfigStore",
    "ConfigLoadError",
    "LogLevel",
    "Settings",
    "get_settings",
    "load_assistant_config",
]
