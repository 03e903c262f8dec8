"""Configuration models and the YAML loader."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from platformdirs import user_config_dir

from .core.errors import ConfigurationError
from .core.keybindings import KeyBindingMap

logger = logging.getLogger(__name__)

APP_NAME = "crosstalk"
CONFIG_ENV = "CROSSTALK_CONFIG"
CONFIG_FILENAME = "config.yaml"


def default_config_path() -> Path:
    return Path(user_config_dir(APP_NAME)) / CONFIG_FILENAME


def _env(key: str) -> Optional[str]:
    value = os.getenv(key)
    if value is None:
        return None
    value = value.strip()
    return value or None


class Activation(str, Enum):
    """Whether a provider is registered: always, never, or when usable."""

    AUTO = "auto"
    ENABLED = "enabled"
    DISABLED = "disabled"


@dataclass
class OpenAIConfig:
    """Settings for the OpenAI Chat Completions API."""

    activate: Activation = Activation.AUTO
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    organization: Optional[str] = None
    timeout: float = 60.0
    models: List[str] = field(
        default_factory=lambda: [
            "gpt-4o",
            "gpt-4o-mini",
            "gpt-4.1",
            "gpt-4.1-mini",
            "o3",
            "o4-mini",
        ]
    )


@dataclass
class OllamaConfig:
    """Connection details for the Ollama HTTP API.

    When ``models`` is empty the installed models are discovered at startup.
    """

    activate: Activation = Activation.AUTO
    host: str = "http://localhost:11434"
    timeout: float = 30.0
    models: List[str] = field(default_factory=list)


@dataclass
class AnthropicConfig:
    """Settings for the Anthropic Messages API."""

    activate: Activation = Activation.AUTO
    api_key: Optional[str] = None
    base_url: str = "https://api.anthropic.com"
    max_tokens: int = 4096
    timeout: float = 60.0
    models: List[str] = field(
        default_factory=lambda: [
            "claude-3-5-sonnet-latest",
            "claude-3-5-haiku-latest",
            "claude-3-opus-latest",
        ]
    )


@dataclass
class ProvidersConfig:
    openai: OpenAIConfig = field(default_factory=OpenAIConfig)
    ollama: OllamaConfig = field(default_factory=OllamaConfig)
    anthropic: AnthropicConfig = field(default_factory=AnthropicConfig)


@dataclass
class AppConfig:
    """Aggregate configuration handed to the registry and the chat command."""

    default_model: Optional[str] = None
    editor: Optional[str] = None
    system_prompt: Optional[str] = None
    keybindings: KeyBindingMap = field(default_factory=lambda: KeyBindingMap.from_config(None))
    providers: ProvidersConfig = field(default_factory=ProvidersConfig)


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def _section(instance: Any, values: Any, where: str) -> None:
    """Copy the keys of *values* onto the dataclass *instance*."""
    if values is None:
        return
    if not isinstance(values, dict):
        raise ConfigurationError(f"'{where}' must be a mapping")
    known = {f.name: f for f in fields(instance)}
    for key, value in values.items():
        if key not in known:
            logger.warning("ignoring unknown configuration key '%s.%s'", where, key)
            continue
        if key == "activate":
            try:
                value = Activation(str(value).lower())
            except ValueError:
                raise ConfigurationError(
                    f"'{where}.activate' must be one of auto, enabled, disabled (got {value!r})"
                ) from None
        elif key == "models":
            if not isinstance(value, list) or not all(isinstance(m, str) for m in value):
                raise ConfigurationError(f"'{where}.models' must be a list of model names")
        elif key in ("timeout", "max_tokens"):
            if not isinstance(value, (int, float)) or isinstance(value, bool):
                raise ConfigurationError(f"'{where}.{key}' must be a number")
        elif value is not None and not isinstance(value, str):
            raise ConfigurationError(f"'{where}.{key}' must be a string")
        setattr(instance, key, value)


def parse_config(data: Dict[str, Any]) -> AppConfig:
    config = AppConfig()
    for key in ("default_model", "editor", "system_prompt"):
        value = data.get(key)
        if value is not None and not isinstance(value, str):
            raise ConfigurationError(f"'{key}' must be a string")
        setattr(config, key, value)

    keybindings = data.get("keybindings")
    if keybindings is not None and not isinstance(keybindings, dict):
        raise ConfigurationError("'keybindings' must be a mapping of key gesture to action")
    config.keybindings = KeyBindingMap.from_config(keybindings)

    providers = data.get("providers") or {}
    if not isinstance(providers, dict):
        raise ConfigurationError("'providers' must be a mapping")
    for name in providers:
        if name not in ("openai", "ollama", "anthropic"):
            raise ConfigurationError(f"unknown provider '{name}' in configuration")
    _section(config.providers.openai, providers.get("openai"), "providers.openai")
    _section(config.providers.ollama, providers.get("ollama"), "providers.ollama")
    _section(config.providers.anthropic, providers.get("anthropic"), "providers.anthropic")

    for key in data:
        if key not in ("default_model", "editor", "system_prompt", "keybindings", "providers"):
            logger.warning("ignoring unknown configuration key '%s'", key)
    return config


def apply_environment(config: AppConfig) -> AppConfig:
    """Fill unset values from the environment."""
    openai = config.providers.openai
    openai.api_key = openai.api_key or _env("OPENAI_API_KEY")
    openai.base_url = openai.base_url or _env("OPENAI_BASE_URL")

    anthropic = config.providers.anthropic
    anthropic.api_key = anthropic.api_key or _env("ANTHROPIC_API_KEY")

    host = _env("OLLAMA_HOST")
    if host:
        config.providers.ollama.host = host if "://" in host else f"http://{host}"

    config.default_model = _env("CROSSTALK_DEFAULT_MODEL") or config.default_model
    config.editor = config.editor or _env("VISUAL") or _env("EDITOR")
    return config


def load_config(path: Optional[Path] = None) -> AppConfig:
    """Load the configuration file, falling back to defaults when absent.

    An explicitly given path must exist.
    """
    explicit = path is not None or _env(CONFIG_ENV) is not None
    if path is None:
        env_path = _env(CONFIG_ENV)
        path = Path(env_path).expanduser() if env_path else default_config_path()

    if not path.exists():
        if explicit:
            raise ConfigurationError(f"configuration file {path} does not exist")
        logger.debug("no configuration at %s, using defaults", path)
        return apply_environment(AppConfig())

    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigurationError(f"cannot read configuration {path}: {exc}") from exc

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"configuration {path} must contain a mapping at the top level")
    logger.debug("loaded configuration from %s", path)
    return apply_environment(parse_config(data))
