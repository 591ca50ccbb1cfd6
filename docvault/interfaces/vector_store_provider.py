"""Abstract base class for the document/chunk/embedding store.

Defines the contract for the only durable state in docvault: documents,
their chunks, and the embedding vectors keyed by chunk id.  The concrete
implementation is
:class:`~docvault.providers.vector_store.sqlite_vector_store.SQLiteVectorStore`
(one SQLite file per application instance, WAL journal, foreign-key
cascades).  Could be swapped for Postgres + pgvector via this interface.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from pathlib import Path

from docvault.models.document import (
    ChunkEmbedding,
    Document,
    DocumentChunk,
    DocumentCreate,
    DocumentState,
    SearchResult,
)


class IVectorStoreProvider(ABC):
    """Contract for document storage and vector similarity search.

    All methods are async so that long writes never block the event loop
    that is serving searches.
    """

    @abstractmethod
    async def initialize(self) -> None:
        """Create directories, tables and indices if they don't exist."""

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    @abstractmethod
    async def create_document(self, metadata: DocumentCreate) -> Document:
        """Persist a new document row with a fresh id and ``chunk_count=0``.

        Raises
        ------
        docvault.utils.errors.IntegrityViolationError
            If ``masked_name`` (or the generated id) already exists.
        """

    @abstractmethod
    async def get_document(self, document_id: str) -> Document:
        """Return the document or raise :class:`NotFoundError`."""

    @abstractmethod
    async def get_document_by_masked_name(self, masked_name: str) -> Document:
        """Return the document stored under *masked_name* or raise :class:`NotFoundError`."""

    @abstractmethod
    async def list_documents(self, limit: int = 100, offset: int = 0) -> list[Document]:
        """Return one page of documents, newest ``uploaded_at`` first."""

    @abstractmethod
    async def delete_document(self, document_id: str) -> bool:
        """Delete the document with its file, backup, chunks and embeddings.

        Sub-parts that are already gone are skipped.  Returns ``False`` if
        no document row existed.
        """

    @abstractmethod
    async def get_document_count(self) -> int:
        """Return the total number of documents."""

    @abstractmethod
    async def get_document_state(self, document_id: str) -> DocumentState:
        """Return where the document is in the ingestion lifecycle."""

    # ------------------------------------------------------------------
    # Chunks and embeddings
    # ------------------------------------------------------------------

    @abstractmethod
    async def save_chunks(self, document_id: str, texts: Sequence[str]) -> list[DocumentChunk]:
        """Persist *texts* as chunks 0..N-1 and set ``chunk_count = N``.

        Insertion and the count update are one transaction.

        Raises
        ------
        docvault.utils.errors.NotFoundError
            If the document does not exist (e.g. deleted mid-ingestion).
        """

    @abstractmethod
    async def get_chunks(self, document_id: str) -> list[DocumentChunk]:
        """Return the document's chunks ordered by ``chunk_index`` ascending."""

    @abstractmethod
    async def save_embeddings(self, embeddings: Sequence[ChunkEmbedding]) -> int:
        """Upsert every embedding keyed by chunk id as one atomic batch.

        Raises
        ------
        docvault.utils.errors.NotFoundError
            If any referenced chunk no longer exists; nothing is written.
        """

    @abstractmethod
    async def get_embedding_count(self, document_id: str) -> int:
        """Return how many of the document's chunks have an embedding."""

    @abstractmethod
    async def search_similar(
        self,
        query_vector: Sequence[float],
        limit: int = 5,
    ) -> list[SearchResult]:
        """Return up to *limit* results ordered by ascending distance."""

    @abstractmethod
    async def save_embeddings_to_file(
        self,
        document_id: str,
        chunks: Sequence[DocumentChunk],
        embeddings: Sequence[ChunkEmbedding],
    ) -> Path:
        """Write a human-readable embedding summary for operator inspection.

        The file is never read back by docvault.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"sqlite_vector_store"``."""

    async def close(self) -> None:
        """Release resources held by the store."""
        return None
