"""Provider registry: maps provider identifiers and model names to back-ends."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Iterable, List, Mapping, Optional, Tuple

from .errors import DuplicateProviderError, UnknownModelError
from .protocol import CompletionBackend

logger = logging.getLogger(__name__)


class ProviderIdentifier(str, Enum):
    OPENAI = "openai"
    OLLAMA = "ollama"
    ANTHROPIC = "anthropic"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class ProviderDescriptor:
    identifier: ProviderIdentifier
    name: str
    models: Tuple[str, ...]
    backend: CompletionBackend

    def serves(self, model: str) -> bool:
        return model in self.models


class Registry:
    """Immutable set of enabled providers, in registration order."""

    def __init__(self, descriptors: Iterable[ProviderDescriptor] = ()):
        providers = {}
        for descriptor in descriptors:
            if descriptor.identifier in providers:
                raise DuplicateProviderError(descriptor.identifier.value)
            providers[descriptor.identifier] = descriptor
        self._providers: Mapping[ProviderIdentifier, ProviderDescriptor] = MappingProxyType(providers)

    def __len__(self) -> int:
        return len(self._providers)

    def __contains__(self, identifier: object) -> bool:
        return identifier in self._providers

    def get(self, identifier: ProviderIdentifier) -> Optional[ProviderDescriptor]:
        return self._providers.get(identifier)

    def providers(self) -> List[ProviderDescriptor]:
        return list(self._providers.values())

    def models(self, provider: Optional[ProviderIdentifier] = None) -> List[Tuple[ProviderIdentifier, str]]:
        """Return ``(provider, model)`` pairs, optionally for one provider only."""
        return [
            (descriptor.identifier, model)
            for descriptor in self._providers.values()
            if provider is None or descriptor.identifier == provider
            for model in descriptor.models
        ]

    def model_names(self) -> List[str]:
        return [model for _, model in self.models()]

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def resolve(
        self,
        model: Optional[str],
        default: Optional[str] = None,
        provider: Optional[ProviderIdentifier] = None,
    ) -> Tuple[ProviderDescriptor, str]:
        """Resolve *model*, else *default*, to a provider and model name.

        An explicitly requested model that matches nothing fails even when a
        default is configured. ``provider/model`` restricts the search to one
        provider, as does the *provider* argument.
        """
        requested = model if model is not None else default
        if requested is None:
            raise UnknownModelError(None, self.model_names())

        name = requested
        if provider is None and "/" in requested:
            prefix, _, rest = requested.partition("/")
            try:
                provider = ProviderIdentifier(prefix)
                name = rest
            except ValueError:
                # Model names such as "library/model:tag" contain slashes.
                pass

        matches = [
            descriptor
            for descriptor in self._providers.values()
            if (provider is None or descriptor.identifier == provider) and descriptor.serves(name)
        ]
        if not matches:
            raise UnknownModelError(requested, self.model_names())
        if len(matches) > 1:
            logger.warning(
                "model '%s' is served by %s; using %s (pass provider/model to choose)",
                name,
                ", ".join(m.identifier.value for m in matches),
                matches[0].identifier.value,
            )
        return matches[0], name
