"""Upload, retrieval and search façade consumed by the HTTP/CLI layer.

:class:`DocumentService` is the single entry point the outer application
talks to.  It owns no storage logic of its own; it composes:

    - the filesystem (uploaded bytes under a masked name),
    - :class:`IVectorStoreProvider` (document rows, chunks, vectors),
    - :class:`IngestionQueue` (background extract/chunk/embed),
    - :class:`SearchService` (query embedding + KNN).

Boundary errors (NotFoundError, IntegrityViolationError, StorageError,
ProviderError, ...) propagate unchanged so the caller can map them to
its own responses.
"""

from __future__ import annotations

import asyncio
import re
import uuid
from collections.abc import Mapping
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import structlog

from docvault.interfaces.vector_store_provider import IVectorStoreProvider
from docvault.models.document import (
    DocumentCreate,
    DocumentPage,
    DocumentStats,
    DownloadedFile,
    SearchResult,
    UploadResult,
)
from docvault.models.ingestion import IngestionJob
from docvault.models.options import ChunkingOptions, EmbeddingOptions
from docvault.providers.embedding.factory import EmbeddingProviderFactory
from docvault.services.ingestion.ingestion_queue import IngestionQueue
from docvault.services.search_service import SearchService
from docvault.utils.errors import IntegrityViolationError, NotFoundError, StorageError

logger = structlog.get_logger(logger_name=__name__)

_PROVIDER_NAME = "document_service"

# Extensions carried over onto the masked name; anything else is dropped.
_SAFE_EXTENSION = re.compile(r"^\.[A-Za-z0-9]{1,16}$")


def masked_filename(original_name: str) -> str:
    """Return ``<uuid4><ext>`` for *original_name*, keeping a safe extension."""
    suffix = Path(original_name.replace("\\", "/")).suffix
    if not _SAFE_EXTENSION.match(suffix):
        suffix = ""
    return f"{uuid.uuid4()}{suffix}"


class DocumentService:
    """Stores uploads, schedules their ingestion and serves queries.

    Parameters
    ----------
    vector_store:
        Durable store for documents, chunks and embeddings.
    ingestion_queue:
        Background worker pool that runs the ingestion pipeline.
    search_service:
        Query embedding + similarity search.
    embedding_factory:
        Closed together with the service.
    documents_dir:
        Directory uploaded files are written to.
    """

    def __init__(
        self,
        vector_store: IVectorStoreProvider,
        ingestion_queue: IngestionQueue,
        search_service: SearchService,
        embedding_factory: EmbeddingProviderFactory,
        documents_dir: str | Path,
    ) -> None:
        self._store = vector_store
        self._queue = ingestion_queue
        self._search = search_service
        self._embedding_factory = embedding_factory
        self._documents_dir = Path(documents_dir)

    @property
    def ingestion_queue(self) -> IngestionQueue:
        return self._queue

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Create storage and start the ingestion workers."""
        await self._store.initialize()
        self._queue.start()
        logger.info("document_service_started", documents_dir=str(self._documents_dir))

    async def close(self, drain: bool = False) -> None:
        """Stop workers and release provider and store resources."""
        await self._queue.stop(drain=drain)
        await self._embedding_factory.close()
        await self._store.close()
        logger.info("document_service_closed")

    # ------------------------------------------------------------------
    # Upload / retrieve
    # ------------------------------------------------------------------

    async def upload(
        self,
        data: bytes,
        original_name: str,
        mime_type: str,
        size: int | None = None,
        chunking: ChunkingOptions | Mapping[str, Any] | None = None,
        embedding: EmbeddingOptions | Mapping[str, Any] | None = None,
    ) -> UploadResult:
        """Store *data*, record its metadata and queue it for ingestion.

        Returns before ingestion completes, so ``chunk_count`` is 0.
        """
        masked_name = masked_filename(original_name)
        storage_path = self._documents_dir / masked_name

        try:
            await asyncio.to_thread(self._write_file, storage_path, data)
        except FileExistsError as exc:
            raise IntegrityViolationError(
                message=f"Masked name already in use: {masked_name}",
                provider_name=_PROVIDER_NAME,
            ) from exc
        except OSError as exc:
            raise StorageError(
                message=f"Cannot store upload {original_name}: {exc}",
                provider_name=_PROVIDER_NAME,
            ) from exc

        metadata = DocumentCreate(
            original_name=original_name,
            masked_name=masked_name,
            mime_type=mime_type,
            size_bytes=len(data) if size is None else size,
            storage_path=str(storage_path.resolve()),
            uploaded_at=datetime.now(tz=timezone.utc),  # noqa: UP017
        )
        try:
            document = await self._store.create_document(metadata)
        except Exception:
            await asyncio.to_thread(storage_path.unlink, missing_ok=True)
            raise

        job = self._queue.submit(
            document.id,
            data,
            mime_type,
            chunking=chunking,
            embedding=embedding,
        )
        logger.info(
            "document_uploaded",
            document_id=document.id,
            original_name=original_name,
            masked_name=masked_name,
            size_bytes=metadata.size_bytes,
            mime_type=mime_type,
            job_id=job.job_id,
        )
        return UploadResult.from_document(document)

    async def get_file(self, document_id: str) -> UploadResult:
        """Raises :class:`NotFoundError` for an unknown id."""
        return UploadResult.from_document(await self._store.get_document(document_id))

    async def list_files(self, limit: int = 100, offset: int = 0) -> DocumentPage:
        documents = await self._store.list_documents(limit=limit, offset=offset)
        total = await self._store.get_document_count()
        return DocumentPage(
            files=[UploadResult.from_document(doc) for doc in documents],
            total=total,
            limit=limit,
            offset=offset,
        )

    async def download(self, document_id: str) -> DownloadedFile:
        """Return the stored bytes of a document.

        Raises
        ------
        NotFoundError
            If the document row or its file is missing.
        """
        document = await self._store.get_document(document_id)
        data = await self._read_stored_file(Path(document.storage_path))
        return DownloadedFile(
            data=data,
            filename=document.original_name,
            mime_type=document.mime_type,
        )

    async def delete(self, document_id: str) -> bool:
        """Delete a document and everything derived from it.

        Returns ``False`` if the document did not exist.  An ingestion job
        still in flight for it ends as ABANDONED, after which its status is
        no longer reported.
        """
        deleted = await self._store.delete_document(document_id)
        self._queue.forget(document_id)
        logger.info("document_delete_requested", document_id=document_id, deleted=deleted)
        return deleted

    # ------------------------------------------------------------------
    # Ingestion control
    # ------------------------------------------------------------------

    async def reingest(
        self,
        document_id: str,
        chunking: ChunkingOptions | Mapping[str, Any] | None = None,
        embedding: EmbeddingOptions | Mapping[str, Any] | None = None,
    ) -> IngestionJob:
        """Queue the stored file of *document_id* for a fresh ingestion run.

        The previous chunks and embeddings are replaced when the run
        commits its chunks.
        """
        document = await self._store.get_document(document_id)
        data = await self._read_stored_file(Path(document.storage_path))
        job = self._queue.submit(
            document.id,
            data,
            document.mime_type,
            chunking=chunking,
            embedding=embedding,
        )
        logger.info("document_reingest_queued", document_id=document_id, job_id=job.job_id)
        return job

    def get_ingestion_status(self, document_id: str) -> IngestionJob | None:
        """Return the latest ingestion job snapshot for *document_id*."""
        return self._queue.get_job(document_id)

    async def wait_for_ingestion(
        self,
        document_id: str,
        timeout: float | None = None,
    ) -> IngestionJob:
        return await self._queue.wait_for(document_id, timeout=timeout)

    # ------------------------------------------------------------------
    # Search / stats
    # ------------------------------------------------------------------

    async def search(
        self,
        query: str,
        limit: int | None = None,
        embedding: EmbeddingOptions | Mapping[str, Any] | None = None,
    ) -> list[SearchResult]:
        return await self._search.search(query, limit=limit, embedding=embedding)

    async def get_stats(self) -> DocumentStats:
        return DocumentStats(
            total_documents=await self._store.get_document_count(),
            storage_dir=str(self._documents_dir),
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _write_file(path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        # Exclusive create: never overwrite another document's file.
        with open(path, "xb") as f:
            f.write(data)

    @staticmethod
    async def _read_stored_file(path: Path) -> bytes:
        try:
            return await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError as exc:
            raise NotFoundError(
                message=f"File not found: {path}",
                provider_name=_PROVIDER_NAME,
            ) from exc
        except OSError as exc:
            raise StorageError(
                message=f"Cannot read {path}: {exc}",
                provider_name=_PROVIDER_NAME,
            ) from exc
