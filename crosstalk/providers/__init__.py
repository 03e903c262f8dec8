"""Provider back-ends and registry population."""

from __future__ import annotations

import logging
from typing import List, Optional

import httpx

from ..config import Activation, AppConfig
from ..core.errors import CompletionError, ConfigurationError
from ..core.registry import ProviderDescriptor, ProviderIdentifier, Registry
from .anthropic import AnthropicBackend
from .ollama import OllamaBackend
from .openai import OpenAIBackend

logger = logging.getLogger(__name__)

__all__ = [
    "AnthropicBackend",
    "OllamaBackend",
    "OpenAIBackend",
    "populate",
]


def _key_provider_enabled(activation: Activation, api_key: Optional[str], name: str) -> bool:
    """Decide whether a key-based provider is registered."""
    if activation is Activation.DISABLED:
        return False
    if api_key:
        return True
    if activation is Activation.ENABLED:
        raise ConfigurationError(f"provider '{name}' is enabled but no API key is configured")
    logger.info("skipping provider %s: no API key", name)
    return False


async def _ollama_descriptor(config: AppConfig, ollama_client: Optional[httpx.AsyncClient]) -> Optional[ProviderDescriptor]:
    settings = config.providers.ollama
    if settings.activate is Activation.DISABLED:
        return None
    backend = OllamaBackend(settings.host, timeout=settings.timeout, client=ollama_client)
    models = list(settings.models)
    if not models:
        try:
            models = await backend.list_models()
        except (httpx.HTTPError, CompletionError, ValueError) as exc:
            if settings.activate is Activation.ENABLED:
                raise ConfigurationError(f"cannot reach Ollama at {settings.host}: {exc}") from exc
            logger.info("skipping provider ollama: %s unreachable (%s)", settings.host, exc)
            return None
    if not models and settings.activate is Activation.AUTO:
        logger.info("skipping provider ollama: no models installed")
        return None
    return ProviderDescriptor(ProviderIdentifier.OLLAMA, "Ollama", tuple(models), backend)


async def populate(config: AppConfig, *, ollama_client: Optional[httpx.AsyncClient] = None) -> Registry:
    """Build the registry of enabled providers from *config*.

    Registration order (OpenAI, Anthropic, Ollama) is the priority order used
    when one model name is served by several providers.
    """
    descriptors: List[ProviderDescriptor] = []

    openai_settings = config.providers.openai
    if _key_provider_enabled(openai_settings.activate, openai_settings.api_key, "openai"):
        backend = OpenAIBackend.from_settings(
            openai_settings.api_key,
            base_url=openai_settings.base_url,
            organization=openai_settings.organization,
            timeout=openai_settings.timeout,
        )
        descriptors.append(
            ProviderDescriptor(ProviderIdentifier.OPENAI, "OpenAI", tuple(openai_settings.models), backend)
        )

    anthropic_settings = config.providers.anthropic
    if _key_provider_enabled(anthropic_settings.activate, anthropic_settings.api_key, "anthropic"):
        backend = AnthropicBackend(
            anthropic_settings.api_key,
            base_url=anthropic_settings.base_url,
            max_tokens=anthropic_settings.max_tokens,
            timeout=anthropic_settings.timeout,
        )
        descriptors.append(
            ProviderDescriptor(ProviderIdentifier.ANTHROPIC, "Anthropic", tuple(anthropic_settings.models), backend)
        )

    ollama = await _ollama_descriptor(config, ollama_client)
    if ollama is not None:
        descriptors.append(ollama)

    registry = Registry(descriptors)
    logger.debug("registered providers: %s", ", ".join(d.identifier.value for d in registry.providers()) or "<none>")
    return registry
