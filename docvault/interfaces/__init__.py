"""Public interface definitions for docvault's pluggable components.

Business logic (ingestion, search) talks only to these abstract base
classes; concrete adapters live in ``docvault/providers/`` and are wired
together in ``docvault/main.py``.

CONCRETE PROVIDER MAP:
    Interface                  →  Concrete implementations (in docvault/providers/)
    ─────────────────────────────────────────────────────────────────────
    IEmbeddingProvider         →  OpenAIEmbeddingProvider,
                                  OllamaEmbeddingProvider,
                                  BoundedEmbeddingProvider (decorator)
    IVectorIndex               →  FlatVectorIndex
    IVectorStoreProvider       →  SQLiteVectorStore
"""

from docvault.interfaces.embedding_provider import IEmbeddingProvider
from docvault.interfaces.vector_index import IVectorIndex
from docvault.interfaces.vector_store_provider import IVectorStoreProvider

__all__ = [
    "IEmbeddingProvider",
    "IVectorIndex",
    "IVectorStoreProvider",
]
