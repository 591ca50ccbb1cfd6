"""Abstract base class for text-embedding service providers.

Defines the contract for generating embedding vectors from text.  One
concrete class exists per backend capability:

    OpenAIEmbeddingProvider -- hosted, batched (one request for N texts)
    OllamaEmbeddingProvider -- self-hosted, one text per request

The active backend is chosen once from configuration by
:class:`~docvault.providers.embedding.factory.EmbeddingProviderFactory`;
callers only ever see this interface.

A backend describes its upstream traffic in two steps:
:meth:`IEmbeddingProvider.plan_requests` splits a batch into the groups
it sends together, and :meth:`IEmbeddingProvider.embed_request` performs
exactly one upstream request.  Wrappers that meter provider traffic work
at the request level, never around a whole batch.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class IEmbeddingProvider(ABC):
    """Contract for text-embedding services used by ingestion and search.

    Embeddings are consumed by
    :class:`~docvault.interfaces.vector_store_provider.IVectorStoreProvider`
    for indexing and query-time similarity search.
    """

    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Generate embedding vectors for a batch of texts.

        Parameters
        ----------
        texts:
            Zero or more text strings to embed.

        Returns
        -------
        list[list[float]]
            Embedding vectors corresponding positionally to *texts*.  An
            empty input yields an empty list, not an error.

        Raises
        ------
        docvault.utils.errors.ProviderUnavailableError
            If a required credential or endpoint is not configured.
        docvault.utils.errors.ProviderError
            If an upstream request fails or times out.
        """
        vectors: list[list[float]] = []
        for group in self.plan_requests(texts):
            vectors.extend(await self.embed_request(group))
        return vectors

    def plan_requests(self, texts: list[str]) -> list[list[str]]:
        """Split *texts* into the groups sent as single upstream requests."""
        return [list(texts)] if texts else []

    @abstractmethod
    async def embed_request(self, texts: list[str]) -> list[list[float]]:
        """Embed one group from :meth:`plan_requests` with one upstream request."""

    @abstractmethod
    def get_dimension(self) -> int:
        """Return the dimensionality of the embedding vectors.

        Must match the dimension the vector store was created with, e.g.
        ``1536`` (``text-embedding-3-small``) or ``768``
        (``nomic-embed-text``).
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"openai_embedding"``."""

    async def close(self) -> None:
        """Release network clients held by the provider."""
        return None
