"""Assistant configuration model, YAML defaults loader and runtime store."""

import logging
import threading
from pathlib import Path
from typing import Annotated, Any

import yaml
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = (
    "You are a friendly customer support assistant. Answer briefly and "
    "accurately. If you cannot help, tell the visitor that a human operator "
    "can take over the conversation."
)


class AssistantConfig(BaseModel):
    """Process-wide automated assistant settings.

    Serialized with camelCase aliases (``isEnabled``, ``systemPrompt``,
    ``maxTokens``) to match the operator dashboard.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    is_enabled: bool = False
    provider: Annotated[str, Field(min_length=1, max_length=100)] = "openrouter"
    model: Annotated[str, Field(min_length=1, max_length=200)] = "z-ai/glm-4.5-air:free"
    system_prompt: Annotated[str, Field(max_length=4000)] = DEFAULT_SYSTEM_PROMPT
    temperature: float = Field(default=0.7, ge=0.0, le=1.0)
    max_tokens: int = Field(default=500, ge=50, le=2000)


class ConfigLoadError(Exception):
    """Raised when configuration loading fails."""

    pass


# Note: /tmp included for testing; in production the file is mounted to /config
ALLOWED_CONFIG_DIRS = ["/config", "/app/config", "/tmp", "config", "."]


def _validate_config_path(path: Path, allowed_dirs: list[str]) -> Path:
    """Canonicalize a config path and reject paths outside allowed directories.

    Raises:
        ConfigLoadError: If path is outside allowed directories.
    """
    resolved = path.resolve()

    for allowed_dir in allowed_dirs:
        allowed_resolved = Path(allowed_dir).resolve()
        try:
            resolved.relative_to(allowed_resolved)
            return resolved
        except ValueError:
            continue

    raise ConfigLoadError(
        f"Configuration path '{resolved}' is outside allowed directories: {allowed_dirs}"
    )


def load_assistant_config(config_path: str | Path) -> AssistantConfig:
    """Load and validate assistant defaults from a YAML file.

    Args:
        config_path: Path to the YAML file.

    Returns:
        Validated AssistantConfig instance.

    Raises:
        ConfigLoadError: If the file cannot be read, validation fails, or the
            path lies outside the allowed directories.
    """
    path = _validate_config_path(Path(config_path), ALLOWED_CONFIG_DIRS)

    if not path.exists():
        raise ConfigLoadError(f"Configuration file not found: {path}")

    try:
        with path.open("r", encoding="utf-8") as f:
            raw_config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigLoadError(f"Invalid YAML in {path}: {e}") from e
    except OSError as e:
        raise ConfigLoadError(f"Failed to read {path}: {e}") from e

    if raw_config is None:
        raise ConfigLoadError(f"Empty configuration file: {path}")

    # Allow either a bare mapping or one nested under "assistant"
    if isinstance(raw_config, dict) and isinstance(raw_config.get("assistant"), dict):
        raw_config = raw_config["assistant"]

    try:
        return AssistantConfig.model_validate(raw_config)
    except ValueError as e:
        raise ConfigLoadError(f"Configuration validation failed: {e}") from e


class AssistantConfigStore:
    """Thread-safe holder of the singleton AssistantConfig.

    Updates are validated as a whole before being swapped in, so a rejected
    update never leaves a partially applied config behind.
    """

    def __init__(self, initial: AssistantConfig | None = None) -> None:
        self._config = initial or AssistantConfig()
        self._lock = threading.Lock()

    def get(self) -> AssistantConfig:
        """Return the current configuration."""
        with self._lock:
            return self._config

    def update(self, **fields: Any) -> AssistantConfig:
        """Apply a partial update.

        Args:
            **fields: Field names (snake_case) to overwrite. ``None`` values
                are ignored.

        Returns:
            The new configuration.

        Raises:
            pydantic.ValidationError: If the merged config violates a bound.
        """
        changes = {key: value for key, value in fields.items() if value is not None}
        with self._lock:
            merged = self._config.model_dump()
            merged.update(changes)
            self._config = AssistantConfig.model_validate(merged)
            config = self._config

        logger.info("Assistant config updated (fields=%s)", sorted(changes))
        return config

    def toggle(self, is_enabled: bool | None = None) -> AssistantConfig:
        """Flip the enabled flag, or set it when ``is_enabled`` is given."""
        with self._lock:
            target = (not self._config.is_enabled) if is_enabled is None else is_enabled
            self._config = self._config.model_copy(update={"is_enabled": target})
            config = self._config

        logger.info("Assistant %s", "enabled" if config.is_enabled else "disabled")
        return config
