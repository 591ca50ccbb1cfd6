"""docvault domain models -- re-exports all public model classes.

The models are organized across three submodules:
    - document.py  -- Document / DocumentChunk / ChunkEmbedding rows and the
                     boundary projections (UploadResult, SearchResult, ...)
    - ingestion.py -- background ingestion job snapshots and run results
    - options.py   -- immutable chunking and embedding option values
"""

from __future__ import annotations

from docvault.models.document import (
    ChunkEmbedding,
    Document,
    DocumentChunk,
    DocumentCreate,
    DocumentPage,
    DocumentState,
    DocumentStats,
    DownloadedFile,
    SearchResult,
    UploadResult,
)
from docvault.models.ingestion import IngestionJob, IngestionResult, JobStatus
from docvault.models.options import ChunkingOptions, EmbeddingOptions

__all__ = [
    "ChunkEmbedding",
    "ChunkingOptions",
    "Document",
    "DocumentChunk",
    "DocumentCreate",
    "DocumentPage",
    "DocumentState",
    "DocumentStats",
    "DownloadedFile",
    "EmbeddingOptions",
    "IngestionJob",
    "IngestionResult",
    "JobStatus",
    "SearchResult",
    "UploadResult",
]
