"""docvault composition root.

Wires together every provider and service via dependency injection.
Loads configuration from ``config/config.yaml`` and ``.env``, configures
structured logging, and hands back a ready :class:`DocumentService` for
the outer application (HTTP routes, CLI) to call.

Typical use::

    async with open_document_service() as documents:
        uploaded = await documents.upload(data, "notes.pdf", "application/pdf")
        results = await documents.search("quarterly revenue")
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

import structlog

from docvault.config.loader import load_settings
from docvault.config.settings import Settings
from docvault.interfaces.embedding_provider import IEmbeddingProvider
from docvault.providers.embedding.factory import EmbeddingProviderFactory
from docvault.providers.vector_store.flat_vector_index import FlatVectorIndex
from docvault.providers.vector_store.sqlite_vector_store import SQLiteVectorStore
from docvault.services.document_service import DocumentService
from docvault.services.extraction.text_extractor import TextExtractor
from docvault.services.ingestion.chunker import TextChunker
from docvault.services.ingestion.ingestion_pipeline import IngestionPipeline
from docvault.services.ingestion.ingestion_queue import IngestionQueue
from docvault.services.search_service import SearchService
from docvault.utils.logging import configure_logging, get_logger

_logger: structlog.BoundLogger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Individual builders
# ---------------------------------------------------------------------------


def build_embedding_factory(app_settings: Settings) -> EmbeddingProviderFactory:
    """Build the factory for the configured backend with the shared call limits."""
    return EmbeddingProviderFactory(
        default_options=app_settings.embedding_options(),
        max_concurrency=app_settings.embedding_max_concurrency,
    )


def build_embedding_provider(app_settings: Settings) -> IEmbeddingProvider:
    """Return the bounded provider for the configured defaults."""
    return build_embedding_factory(app_settings).default


def build_vector_store(app_settings: Settings, dimensions: int) -> SQLiteVectorStore:
    index = FlatVectorIndex(
        dimensions=dimensions,
        metric=app_settings.vector_distance_metric,
    )
    return SQLiteVectorStore(
        documents_dir=app_settings.documents_dir,
        index=index,
        db_path=app_settings.database_path,
        busy_timeout_ms=app_settings.sqlite_busy_timeout_ms,
    )


# ---------------------------------------------------------------------------
# Full assembly
# ---------------------------------------------------------------------------


def build_document_service(
    app_settings: Settings | None = None,
    embedding_factory: EmbeddingProviderFactory | None = None,
    configure_logs: bool = True,
) -> DocumentService:
    """Construct every component and return the :class:`DocumentService`.

    Parameters
    ----------
    app_settings:
        Resolved settings; loaded via :func:`load_settings` when omitted.
    embedding_factory:
        Pre-built factory (tests inject one with a fake backend).
    configure_logs:
        Apply :func:`configure_logging` from the settings.

    The returned service is not started; call :meth:`DocumentService.start`
    (or use :func:`open_document_service`).
    """
    app_settings = app_settings or load_settings()
    if configure_logs:
        configure_logging(
            log_level=app_settings.log_level,
            json_output=(app_settings.app_env == "production"),
            app_env=app_settings.app_env,
        )

    factory = embedding_factory or build_embedding_factory(app_settings)
    dimensions = factory.default.get_dimension()
    vector_store = build_vector_store(app_settings, dimensions)

    chunker = TextChunker.from_options(app_settings.chunking_options())
    pipeline = IngestionPipeline(
        extractor=TextExtractor(),
        chunker=chunker,
        embedding_factory=factory,
        vector_store=vector_store,
        write_backups=app_settings.write_embedding_backups,
    )
    queue = IngestionQueue(pipeline, workers=app_settings.ingestion_workers)
    search_service = SearchService(
        embedding_factory=factory,
        vector_store=vector_store,
        default_limit=app_settings.search_default_limit,
    )

    _logger.info(
        "document_service_built",
        embedding_provider=factory.default.get_provider_name(),
        dimensions=dimensions,
        data_dir=str(Path(app_settings.data_dir)),
        workers=app_settings.ingestion_workers,
    )
    return DocumentService(
        vector_store=vector_store,
        ingestion_queue=queue,
        search_service=search_service,
        embedding_factory=factory,
        documents_dir=app_settings.documents_dir,
    )


@asynccontextmanager
async def open_document_service(
    app_settings: Settings | None = None,
    embedding_factory: EmbeddingProviderFactory | None = None,
) -> AsyncIterator[DocumentService]:
    """Build, start and finally close a :class:`DocumentService`."""
    service = build_document_service(app_settings, embedding_factory=embedding_factory)
    await service.start()
    try:
        yield service
    finally:
        await service.close(drain=True)
