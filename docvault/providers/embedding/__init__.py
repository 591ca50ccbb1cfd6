"""Embedding provider implementations.

Embeddings convert text into numeric vectors that capture semantic meaning.
These vectors are stored by the SQLite vector store and used for
similarity search.

Two backends implement IEmbeddingProvider:
    1. OpenAIEmbeddingProvider -- text-embedding-3-small (1536 dims) by
       default.  One batched request for many texts; needs an API key.
    2. OllamaEmbeddingProvider -- nomic-embed-text (768 dims) by default,
       one request per text against a local Ollama server.

BoundedEmbeddingProvider wraps either with a shared concurrency cap and a
per-call timeout; EmbeddingProviderFactory picks the backend from
configuration and returns the wrapped provider.
"""

from docvault.providers.embedding.bounded_embedding_provider import BoundedEmbeddingProvider
from docvault.providers.embedding.factory import DEFAULT_REGISTRY, EmbeddingProviderFactory
from docvault.providers.embedding.ollama_embedding_provider import OllamaEmbeddingProvider
from docvault.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider

__all__ = [
    "DEFAULT_REGISTRY",
    "BoundedEmbeddingProvider",
    "EmbeddingProviderFactory",
    "OllamaEmbeddingProvider",
    "OpenAIEmbeddingProvider",
]
