"""Shared pytest fixtures for the docvault test suite."""

from __future__ import annotations

import asyncio
import hashlib
import re
from pathlib import Path

import numpy as np
import pytest

from docvault.config.settings import Settings
from docvault.interfaces.embedding_provider import IEmbeddingProvider
from docvault.main import build_document_service
from docvault.models.options import EmbeddingOptions
from docvault.providers.embedding.factory import EmbeddingProviderFactory
from docvault.providers.vector_store.flat_vector_index import FlatVectorIndex
from docvault.providers.vector_store.sqlite_vector_store import SQLiteVectorStore
from docvault.services.document_service import DocumentService

MOCK_DIMENSIONS = 32

_WORD = re.compile(r"[a-z0-9]+")


# ---------------------------------------------------------------------------
# Fake embedding backend
# ---------------------------------------------------------------------------


def hashed_bag_of_words(text: str, dimensions: int = MOCK_DIMENSIONS) -> list[float]:
    """Deterministic, unit-length bag-of-words vector for *text*.

    Texts sharing words land close together, which is all the search
    tests need.
    """
    vector = np.zeros(dimensions, dtype=np.float64)
    for word in _WORD.findall(text.lower()):
        bucket = int(hashlib.md5(word.encode()).hexdigest(), 16) % dimensions  # noqa: S324
        vector[bucket] += 1.0
    norm = np.linalg.norm(vector)
    if norm > 0:
        vector /= norm
    return vector.tolist()


class MockEmbeddingProvider(IEmbeddingProvider):
    """In-process embedding backend with call accounting."""

    def __init__(self, dimensions: int = MOCK_DIMENSIONS) -> None:
        self._dimensions = dimensions
        self.calls: list[list[str]] = []
        self.closed = False

    async def embed_request(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        await asyncio.sleep(0)
        return [hashed_bag_of_words(t, self._dimensions) for t in texts]

    def get_dimension(self) -> int:
        return self._dimensions

    def get_provider_name(self) -> str:
        return "mock_embedding"

    async def close(self) -> None:
        self.closed = True


def make_mock_factory(
    provider: IEmbeddingProvider | None = None,
    max_concurrency: int = 4,
) -> EmbeddingProviderFactory:
    """Factory whose "mock" backend always resolves to *provider*."""
    backend = provider or MockEmbeddingProvider()
    return EmbeddingProviderFactory(
        default_options=EmbeddingOptions(provider="mock", dimensions=MOCK_DIMENSIONS),
        max_concurrency=max_concurrency,
        registry={"mock": lambda _options: backend},
    )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_embedding_provider() -> MockEmbeddingProvider:
    return MockEmbeddingProvider()


@pytest.fixture
def embedding_factory(mock_embedding_provider: MockEmbeddingProvider) -> EmbeddingProviderFactory:
    return make_mock_factory(mock_embedding_provider)


@pytest.fixture
def documents_dir(tmp_path: Path) -> Path:
    return tmp_path / "documents"


@pytest.fixture
async def vector_store(documents_dir: Path) -> SQLiteVectorStore:
    store = SQLiteVectorStore(
        documents_dir=documents_dir,
        index=FlatVectorIndex(dimensions=MOCK_DIMENSIONS),
    )
    await store.initialize()
    return store


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    return Settings(
        data_dir=str(tmp_path),
        embedding_provider="openai",
        openai_api_key="",
        ingestion_workers=2,
        chunk_max_size=2000,
        chunk_overlap=200,
        search_default_limit=5,
        write_embedding_backups=True,
        app_env="development",
        log_level="WARNING",
    )


@pytest.fixture
async def document_service(
    test_settings: Settings,
    embedding_factory: EmbeddingProviderFactory,
) -> DocumentService:
    service = build_document_service(
        test_settings,
        embedding_factory=embedding_factory,
        configure_logs=False,
    )
    await service.start()
    yield service
    await service.close()


@pytest.fixture
def sample_text() -> str:
    """A few paragraphs of prose with clear sentence boundaries."""
    paragraphs = [
        "The vault stores every uploaded document under a masked name. "
        "Nobody browsing the storage directory can tell what a file contains.",
        "Ingestion extracts plain text, splits it into overlapping windows and "
        "embeds each window. Search compares the query vector against them.",
        "Deleting a document removes its file, its chunks and its vectors. "
        "Late writes from an unfinished ingestion never bring it back!",
    ]
    return "\n\n".join(paragraphs)
