"""Registry-based construction of embedding providers.

The backend is looked up once per distinct resolved
:class:`~docvault.models.options.EmbeddingOptions`; afterwards callers
only hold an :class:`IEmbeddingProvider` and never branch on the
provider name again.

# ─── RESOLUTION ───────────────────────────────────────────────────────
#
#   defaults (from Settings)  +  call-site overrides  →  merged options
#   merged options            →  cached BoundedEmbeddingProvider
#
# All providers built by one factory share a single semaphore, so the
# concurrency cap holds across ingestion and search no matter which
# overrides a call used.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping
from typing import Any

import structlog

from docvault.interfaces.embedding_provider import IEmbeddingProvider
from docvault.models.options import EmbeddingOptions
from docvault.providers.embedding.bounded_embedding_provider import (
    BoundedEmbeddingProvider,
)
from docvault.providers.embedding.ollama_embedding_provider import (
    OllamaEmbeddingProvider,
)
from docvault.providers.embedding.openai_embedding_provider import (
    OpenAIEmbeddingProvider,
)
from docvault.utils.errors import ConfigurationError

logger = structlog.get_logger(logger_name=__name__)

ProviderBuilder = Callable[[EmbeddingOptions], IEmbeddingProvider]

DEFAULT_REGISTRY: dict[str, ProviderBuilder] = {
    "openai": OpenAIEmbeddingProvider,
    "ollama": OllamaEmbeddingProvider,
}


class EmbeddingProviderFactory:
    """Build and cache bounded embedding providers.

    Parameters
    ----------
    default_options:
        Options used when a call supplies no overrides.
    max_concurrency:
        Size of the semaphore shared by every provider this factory builds.
    registry:
        Provider name → builder.  Defaults to :data:`DEFAULT_REGISTRY`.
    """

    def __init__(
        self,
        default_options: EmbeddingOptions,
        max_concurrency: int = 4,
        registry: Mapping[str, ProviderBuilder] | None = None,
    ) -> None:
        if max_concurrency < 1:
            msg = f"max_concurrency must be >= 1, got {max_concurrency}"
            raise ValueError(msg)
        self._defaults = default_options
        self._registry = dict(registry or DEFAULT_REGISTRY)
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._cache: dict[EmbeddingOptions, IEmbeddingProvider] = {}

    @property
    def default_options(self) -> EmbeddingOptions:
        return self._defaults

    @property
    def default(self) -> IEmbeddingProvider:
        """The provider for the configured defaults."""
        return self.resolve(None)

    def resolve(
        self,
        overrides: EmbeddingOptions | Mapping[str, Any] | None = None,
    ) -> IEmbeddingProvider:
        """Return the provider for the defaults merged with *overrides*."""
        options = self._defaults.merged(overrides)
        cached = self._cache.get(options)
        if cached is not None:
            return cached

        builder = self._registry.get(options.provider)
        if builder is None:
            raise ConfigurationError(
                message=(
                    f"Unknown embedding provider '{options.provider}'. "
                    f"Registered: {sorted(self._registry)}"
                ),
                provider_name="embedding_factory",
            )

        provider = BoundedEmbeddingProvider(
            builder(options),
            self._semaphore,
            options.timeout_seconds,
        )
        self._cache[options] = provider
        logger.info(
            "embedding_provider_built",
            provider=provider.get_provider_name(),
            model=options.resolved_model,
            dimensions=provider.get_dimension(),
        )
        return provider

    async def close(self) -> None:
        """Close every provider built so far."""
        providers = list(self._cache.values())
        self._cache.clear()
        for provider in providers:
            await provider.close()
