"""Per-document ingestion pipeline.

Pipeline stages: **extract -> chunk -> embed -> store**.

The :class:`IngestionPipeline` is the only component that touches all four
lower layers.  It coordinates them without any of them knowing about each
other:

    1. TextExtractor -- bytes + MIME type → plain text (worker thread)
    2. TextChunker -- plain text → overlapping character windows
    3. IVectorStoreProvider.save_chunks -- chunks + chunk_count, one transaction
    4. IEmbeddingProvider -- chunk texts → vectors (bounded, no retry)
    5. IVectorStoreProvider.save_embeddings -- vectors, one transaction
    6. Optional human-readable embedding backup

A document with no extractable text is recorded with zero chunks and is
not an error.  Any exception propagates to the caller (the ingestion
queue), which decides how to report it.
"""

from __future__ import annotations

import asyncio
import time
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog

from docvault.models.document import ChunkEmbedding, DocumentChunk, DocumentState
from docvault.models.ingestion import IngestionResult
from docvault.models.options import ChunkingOptions, EmbeddingOptions
from docvault.utils.errors import ProviderError

if TYPE_CHECKING:
    from collections.abc import Mapping

    from docvault.interfaces.vector_store_provider import IVectorStoreProvider
    from docvault.providers.embedding.factory import EmbeddingProviderFactory
    from docvault.services.extraction.text_extractor import TextExtractor
    from docvault.services.ingestion.chunker import TextChunker

logger = structlog.get_logger(logger_name=__name__)


class IngestionPipeline:
    """Runs extract -> chunk -> embed -> store for one document.

    Parameters
    ----------
    extractor:
        Converts raw bytes to text.
    chunker:
        Splits text into windows; its options are the chunking defaults.
    embedding_factory:
        Resolves the embedding provider for each run's options.
    vector_store:
        Durable storage for chunks and embeddings.
    write_backups:
        Write ``embeddings.<masked_name>.txt`` after each successful run.
    """

    def __init__(
        self,
        extractor: TextExtractor,
        chunker: TextChunker,
        embedding_factory: EmbeddingProviderFactory,
        vector_store: IVectorStoreProvider,
        write_backups: bool = True,
    ) -> None:
        self._extractor = extractor
        self._chunker = chunker
        self._embedding_factory = embedding_factory
        self._vector_store = vector_store
        self._write_backups = write_backups

    async def run(
        self,
        document_id: str,
        data: bytes,
        mime_type: str,
        chunking: ChunkingOptions | Mapping[str, Any] | None = None,
        embedding: EmbeddingOptions | Mapping[str, Any] | None = None,
    ) -> IngestionResult:
        """Ingest *data* as the content of *document_id*.

        Parameters
        ----------
        document_id:
            An existing document row.
        data:
            The uploaded bytes.
        mime_type:
            Declared MIME type; selects the extractor.
        chunking, embedding:
            Call-site overrides; explicitly set fields win over defaults.

        Raises
        ------
        UnsupportedFormatError, ExtractionError
            Extraction failed.
        ProviderUnavailableError, ProviderError
            Embedding failed or returned the wrong number of vectors.
        NotFoundError
            The document was deleted while the run was in flight.
        StorageError, IntegrityViolationError
            Persisting chunks or vectors failed.
        """
        started = time.monotonic()
        chunk_options = self._chunker.options.merged(chunking)

        text = await asyncio.to_thread(self._extractor.extract, data, mime_type)
        logger.info(
            "document_text_extracted",
            document_id=document_id,
            characters=len(text),
            mime_type=mime_type,
        )

        if not text.strip():
            await self._vector_store.save_chunks(document_id, [])
            logger.warning("document_has_no_text", document_id=document_id)
            return IngestionResult(
                document_id=document_id,
                characters=len(text),
                elapsed_seconds=time.monotonic() - started,
            )

        texts = self._chunker.chunk(text, chunk_options)
        chunks = await self._vector_store.save_chunks(document_id, texts)

        provider = self._embedding_factory.resolve(embedding)
        vectors = await provider.embed([chunk.content for chunk in chunks])
        if len(vectors) != len(chunks):
            raise ProviderError(
                message=f"Expected {len(chunks)} embeddings, received {len(vectors)}",
                provider_name=provider.get_provider_name(),
            )

        embeddings = [
            ChunkEmbedding(chunk_id=chunk.id, vector=vector)
            for chunk, vector in zip(chunks, vectors)
        ]
        embedded = await self._vector_store.save_embeddings(embeddings)

        backup_path: Path | None = None
        if self._write_backups:
            backup_path = await self._write_backup(document_id, chunks, embeddings)

        elapsed = time.monotonic() - started
        logger.info(
            "document_ingested",
            document_id=document_id,
            chunk_count=len(chunks),
            embedded=embedded,
            provider=provider.get_provider_name(),
            elapsed_seconds=round(elapsed, 3),
        )
        return IngestionResult(
            document_id=document_id,
            characters=len(text),
            chunk_count=len(chunks),
            embedded_count=embedded,
            backup_path=backup_path,
            elapsed_seconds=elapsed,
        )

    async def _write_backup(
        self,
        document_id: str,
        chunks: list[DocumentChunk],
        embeddings: list[ChunkEmbedding],
    ) -> Path | None:
        path = await self._vector_store.save_embeddings_to_file(document_id, chunks, embeddings)
        # A delete that landed between the embedding commit and the backup
        # write would leave the file behind; remove it again.
        state = await self._vector_store.get_document_state(document_id)
        if state is DocumentState.DELETED:
            await asyncio.to_thread(path.unlink, missing_ok=True)
            logger.info("embedding_backup_discarded", document_id=document_id)
            return None
        return path
