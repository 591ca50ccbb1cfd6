"""Vector store provider implementations.

SQLiteVectorStore is the sole store.  It keeps documents, chunks and
embeddings in one SQLite file (WAL journal, foreign-key cascades) and
delegates nearest-neighbour search to an IVectorIndex.  FlatVectorIndex
is an exact numpy scan over float32 vectors kept in the same file.

To swap in another vector database, implement IVectorStoreProvider (or
just IVectorIndex) and wire it in main.py.
"""

from docvault.providers.vector_store.flat_vector_index import FlatVectorIndex
from docvault.providers.vector_store.sqlite_vector_store import SQLiteVectorStore

__all__ = ["FlatVectorIndex", "SQLiteVectorStore"]
