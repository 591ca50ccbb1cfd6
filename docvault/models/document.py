"""Document, chunk, and search-result models for the docvault store.

Defines Pydantic v2 models for the three persisted relations (documents,
chunks, embeddings) and for the projections handed to the external
upload/retrieve/search boundary.  All models use frozen config; the one
mutable column (``documents.chunk_count``) is rewritten by the store and
re-read as a new :class:`Document` value.

How the pieces relate:

    Document 1 ──< DocumentChunk 1 ── 1 ChunkEmbedding

    1. UPLOAD: bytes are written under a masked name and a Document row
       is created with ``chunk_count=0``.
    2. CHUNK: the extracted text is split and persisted as DocumentChunks
       (contiguous ``chunk_index`` 0..N-1) together with ``chunk_count=N``.
    3. EMBED: one ChunkEmbedding per chunk is upserted into the vector
       index keyed by ``chunk_id``.
    4. SEARCH: the vector index is joined back to chunks and documents to
       produce SearchResult projections.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# DocumentState -- the ingestion lifecycle of one document.
# ---------------------------------------------------------------------------
class DocumentState(str, Enum):  # noqa: UP042
    """Lifecycle of a document as observed in the store.

        CREATED → CHUNKED → EMBEDDED
           └────────┴─────────┴──→ DELETED

    Only EMBEDDED documents are visible to search, because search joins an
    embedding row to every chunk it returns.
    """

    CREATED = "CREATED"    # Row exists, no chunks yet (chunk_count=0)
    CHUNKED = "CHUNKED"    # Chunks committed, embeddings pending
    EMBEDDED = "EMBEDDED"  # Every chunk has an embedding
    DELETED = "DELETED"    # Terminal; no row remains


class DocumentCreate(BaseModel):
    """Metadata supplied to :meth:`create_document` -- everything but the id."""

    model_config = ConfigDict(frozen=True)

    original_name: str = Field(description="Filename supplied by the uploader.")
    masked_name: str = Field(description="Anonymized, unique on-disk filename.")
    mime_type: str = Field(description="Declared MIME type of the upload.")
    size_bytes: int = Field(ge=0, description="Size of the uploaded bytes.")
    storage_path: str = Field(description="Absolute path of the stored file.")
    uploaded_at: datetime = Field(description="Upload timestamp (UTC).")


class Document(BaseModel):
    """A stored document and its ingestion progress counter."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Unique identifier (UUID4).")
    original_name: str
    masked_name: str
    mime_type: str
    size_bytes: int = Field(ge=0)
    storage_path: str
    uploaded_at: datetime
    # Rewritten atomically together with the chunk rows; 0 while ingestion
    # is in flight or when the document had no extractable text.
    chunk_count: int = Field(default=0, ge=0)


class DocumentChunk(BaseModel):
    """One retrieval-sized slice of a document's extracted text."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Unique identifier (UUID4) for this chunk.")
    document_id: str = Field(description="Owning document.")
    chunk_index: int = Field(ge=0, description="0-based, contiguous within a document.")
    content: str = Field(description="The chunk's text.")


class ChunkEmbedding(BaseModel):
    """An embedding vector keyed 1:1 by chunk id."""

    model_config = ConfigDict(frozen=True)

    chunk_id: str
    vector: list[float] = Field(min_length=1)


class SearchResult(BaseModel):
    """A ranked search hit: a chunk joined with its document.

    ``distance`` is the raw vector distance reported by the index (lower
    is closer); no re-ranking is applied.
    """

    model_config = ConfigDict(frozen=True)

    document_id: str
    original_name: str
    chunk_index: int = Field(ge=0)
    content: str
    distance: float = Field(ge=0.0)


# ---------------------------------------------------------------------------
# Boundary projections -- what the upload/retrieve layer hands back.
# ---------------------------------------------------------------------------
class UploadResult(BaseModel):
    """Public view of a document returned by upload, get and list."""

    model_config = ConfigDict(frozen=True)

    id: str
    original_name: str
    masked_name: str
    size: int = Field(ge=0)
    mime_type: str
    uploaded_at: datetime
    chunk_count: int = Field(default=0, ge=0)

    @classmethod
    def from_document(cls, doc: Document) -> UploadResult:
        return cls(
            id=doc.id,
            original_name=doc.original_name,
            masked_name=doc.masked_name,
            size=doc.size_bytes,
            mime_type=doc.mime_type,
            uploaded_at=doc.uploaded_at,
            chunk_count=doc.chunk_count,
        )


class DocumentPage(BaseModel):
    """One page of the document listing plus the overall total."""

    model_config = ConfigDict(frozen=True)

    files: list[UploadResult] = Field(default_factory=list)
    total: int = Field(default=0, ge=0)
    limit: int = Field(ge=1)
    offset: int = Field(ge=0)


class DownloadedFile(BaseModel):
    """Raw bytes of a stored document with the name it was uploaded under."""

    model_config = ConfigDict(frozen=True)

    data: bytes
    filename: str
    mime_type: str


class DocumentStats(BaseModel):
    """Aggregate statistics for one docvault instance."""

    model_config = ConfigDict(frozen=True)

    total_documents: int = Field(default=0, ge=0)
    storage_dir: str
