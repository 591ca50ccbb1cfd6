"""Semantic search over ingested document chunks.

Embeds the query text with the same provider family used at ingestion
time and asks the vector store for the nearest chunks.  Results are
ranked purely by vector distance; no re-ranking is applied.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import structlog

from docvault.interfaces.vector_store_provider import IVectorStoreProvider
from docvault.models.document import SearchResult
from docvault.models.options import EmbeddingOptions
from docvault.providers.embedding.factory import EmbeddingProviderFactory
from docvault.utils.errors import ProviderError

logger = structlog.get_logger(logger_name=__name__)


class SearchService:
    """Embeds a query and returns the nearest stored chunks.

    Parameters
    ----------
    embedding_factory:
        Resolves the embedding provider (defaults merged with overrides).
    vector_store:
        Store holding the chunk embeddings.
    default_limit:
        Number of results returned when the caller gives no limit.
    """

    def __init__(
        self,
        embedding_factory: EmbeddingProviderFactory,
        vector_store: IVectorStoreProvider,
        default_limit: int = 5,
    ) -> None:
        self._embedding_factory = embedding_factory
        self._vector_store = vector_store
        self._default_limit = default_limit

    async def search(
        self,
        query_text: str,
        limit: int | None = None,
        embedding: EmbeddingOptions | Mapping[str, Any] | None = None,
    ) -> list[SearchResult]:
        """Return up to *limit* chunks closest to *query_text*, nearest first.

        Raises
        ------
        ValueError
            If the query is blank or *limit* is below 1.
        ProviderUnavailableError, ProviderError
            If the query could not be embedded.
        """
        if not query_text or not query_text.strip():
            msg = "query_text must not be empty"
            raise ValueError(msg)
        effective_limit = self._default_limit if limit is None else limit
        if effective_limit < 1:
            msg = f"limit must be >= 1, got {effective_limit}"
            raise ValueError(msg)

        provider = self._embedding_factory.resolve(embedding)
        vectors = await provider.embed([query_text])
        if len(vectors) != 1:
            raise ProviderError(
                message=f"Expected 1 query embedding, received {len(vectors)}",
                provider_name=provider.get_provider_name(),
            )
        results = await self._vector_store.search_similar(vectors[0], limit=effective_limit)

        logger.info(
            "search_executed",
            query_length=len(query_text),
            limit=effective_limit,
            results=len(results),
            provider=provider.get_provider_name(),
        )
        return results
