"""Unit tests for SQLiteVectorStore -- documents, chunks, embeddings, search and state."""

from __future__ import annotations

import asyncio
import sqlite3
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path

import aiosqlite
import pytest

from docvault.models.document import ChunkEmbedding, DocumentCreate, DocumentState
from docvault.providers.vector_store.flat_vector_index import FlatVectorIndex
from docvault.providers.vector_store import sqlite_vector_store
from docvault.providers.vector_store.sqlite_vector_store import SQLiteVectorStore
from docvault.utils.errors import IntegrityViolationError, NotFoundError, StorageError
from tests.conftest import MOCK_DIMENSIONS, hashed_bag_of_words

_BASE_TIME = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)  # noqa: UP017


def _metadata(
    documents_dir: Path,
    name: str = "report.pdf",
    uploaded_at: datetime | None = None,
    write_file: bool = False,
) -> DocumentCreate:
    masked = f"{uuid.uuid4()}.pdf"
    path = documents_dir / masked
    if write_file:
        path.write_bytes(b"%PDF-1.4 stub")
    return DocumentCreate(
        original_name=name,
        masked_name=masked,
        mime_type="application/pdf",
        size_bytes=13,
        storage_path=str(path),
        uploaded_at=uploaded_at or _BASE_TIME,
    )


def _embeddings_for(chunks) -> list[ChunkEmbedding]:  # noqa: ANN001
    return [ChunkEmbedding(chunk_id=c.id, vector=hashed_bag_of_words(c.content)) for c in chunks]


def _count_rows(db_path: Path, table: str) -> int:
    with sqlite3.connect(db_path) as conn:
        return conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]  # noqa: S608


# ======================================================================
# Initialisation
# ======================================================================


class TestInitialize:
    async def test_creates_directories_and_tables(
        self, vector_store: SQLiteVectorStore, documents_dir: Path
    ) -> None:
        db_path = documents_dir / "documents.db"
        assert db_path.exists()
        assert (documents_dir / "embeddings").is_dir()
        with sqlite3.connect(db_path) as conn:
            tables = {
                row[0]
                for row in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")
            }
        assert {"documents", "document_chunks", "vec_embeddings"} <= tables

    async def test_initialize_is_idempotent(self, vector_store: SQLiteVectorStore) -> None:
        await vector_store.initialize()
        assert await vector_store.get_document_count() == 0

    async def test_custom_db_path(self, tmp_path: Path) -> None:
        store = SQLiteVectorStore(
            documents_dir=tmp_path / "files",
            index=FlatVectorIndex(MOCK_DIMENSIONS),
            db_path=tmp_path / "db" / "vault.db",
        )
        await store.initialize()
        assert (tmp_path / "db" / "vault.db").exists()
        assert store.get_provider_name() == "sqlite_vector_store"


# ======================================================================
# Documents
# ======================================================================


class TestDocuments:
    async def test_create_and_get(
        self, vector_store: SQLiteVectorStore, documents_dir: Path
    ) -> None:
        meta = _metadata(documents_dir)
        created = await vector_store.create_document(meta)

        fetched = await vector_store.get_document(created.id)

        assert fetched == created
        assert fetched.chunk_count == 0
        assert fetched.uploaded_at == _BASE_TIME
        assert (await vector_store.get_document_by_masked_name(meta.masked_name)).id == created.id

    async def test_unknown_document_is_not_found(self, vector_store: SQLiteVectorStore) -> None:
        with pytest.raises(NotFoundError):
            await vector_store.get_document("missing")
        with pytest.raises(NotFoundError):
            await vector_store.get_document_by_masked_name("missing.pdf")

    async def test_duplicate_masked_name_is_integrity_violation(
        self, vector_store: SQLiteVectorStore, documents_dir: Path
    ) -> None:
        meta = _metadata(documents_dir)
        await vector_store.create_document(meta)

        with pytest.raises(IntegrityViolationError):
            await vector_store.create_document(meta)
        assert await vector_store.get_document_count() == 1

    async def test_list_is_newest_first_with_stable_ties(
        self, vector_store: SQLiteVectorStore, documents_dir: Path
    ) -> None:
        older = await vector_store.create_document(
            _metadata(documents_dir, "older.pdf", _BASE_TIME - timedelta(days=1))
        )
        tie_first = await vector_store.create_document(_metadata(documents_dir, "a.pdf"))
        tie_second = await vector_store.create_document(_metadata(documents_dir, "b.pdf"))

        listed = await vector_store.list_documents()

        assert [d.id for d in listed] == [tie_second.id, tie_first.id, older.id]

    async def test_pages_are_disjoint(
        self, vector_store: SQLiteVectorStore, documents_dir: Path
    ) -> None:
        for i in range(5):
            await vector_store.create_document(
                _metadata(documents_dir, f"doc{i}.pdf", _BASE_TIME + timedelta(minutes=i))
            )

        first = await vector_store.list_documents(limit=2, offset=0)
        second = await vector_store.list_documents(limit=2, offset=2)
        third = await vector_store.list_documents(limit=2, offset=4)

        ids = [d.id for d in first + second + third]
        assert len(ids) == len(set(ids)) == 5
        assert [d.original_name for d in first] == ["doc4.pdf", "doc3.pdf"]
        assert await vector_store.get_document_count() == 5

    @pytest.mark.parametrize(("limit", "offset"), [(0, 0), (-1, 0), (10, -1)])
    async def test_list_rejects_bad_paging(
        self, vector_store: SQLiteVectorStore, limit: int, offset: int
    ) -> None:
        with pytest.raises(ValueError):
            await vector_store.list_documents(limit=limit, offset=offset)


# ======================================================================
# Chunks and embeddings
# ======================================================================


class TestChunksAndEmbeddings:
    async def test_save_chunks_sets_count_and_indices(
        self, vector_store: SQLiteVectorStore, documents_dir: Path
    ) -> None:
        doc = await vector_store.create_document(_metadata(documents_dir))

        chunks = await vector_store.save_chunks(doc.id, ["one", "two", "three"])

        assert [c.chunk_index for c in chunks] == [0, 1, 2]
        assert await vector_store.get_chunks(doc.id) == chunks
        assert (await vector_store.get_document(doc.id)).chunk_count == 3

    async def test_resaving_replaces_previous_chunks(
        self, vector_store: SQLiteVectorStore, documents_dir: Path
    ) -> None:
        doc = await vector_store.create_document(_metadata(documents_dir))
        old = await vector_store.save_chunks(doc.id, ["old a", "old b", "old c"])
        await vector_store.save_embeddings(_embeddings_for(old))

        new = await vector_store.save_chunks(doc.id, ["new"])

        assert [c.content for c in await vector_store.get_chunks(doc.id)] == ["new"]
        assert (await vector_store.get_document(doc.id)).chunk_count == 1
        assert await vector_store.get_embedding_count(doc.id) == 0
        assert _count_rows(documents_dir / "documents.db", "vec_embeddings") == 0
        assert new[0].chunk_index == 0

    async def test_save_chunks_for_missing_document(self, vector_store: SQLiteVectorStore) -> None:
        with pytest.raises(NotFoundError):
            await vector_store.save_chunks("missing", ["text"])

    async def test_save_empty_chunk_list(
        self, vector_store: SQLiteVectorStore, documents_dir: Path
    ) -> None:
        doc = await vector_store.create_document(_metadata(documents_dir))
        assert await vector_store.save_chunks(doc.id, []) == []
        assert (await vector_store.get_document(doc.id)).chunk_count == 0

    async def test_save_embeddings(
        self, vector_store: SQLiteVectorStore, documents_dir: Path
    ) -> None:
        doc = await vector_store.create_document(_metadata(documents_dir))
        chunks = await vector_store.save_chunks(doc.id, ["alpha", "beta"])

        written = await vector_store.save_embeddings(_embeddings_for(chunks))

        assert written == 2
        assert await vector_store.get_embedding_count(doc.id) == 2
        assert await vector_store.save_embeddings([]) == 0

    async def test_embedding_for_missing_chunk_writes_nothing(
        self, vector_store: SQLiteVectorStore, documents_dir: Path
    ) -> None:
        doc = await vector_store.create_document(_metadata(documents_dir))
        chunks = await vector_store.save_chunks(doc.id, ["alpha"])
        batch = _embeddings_for(chunks) + [
            ChunkEmbedding(chunk_id="ghost", vector=[0.1] * MOCK_DIMENSIONS)
        ]

        with pytest.raises(NotFoundError, match="ghost"):
            await vector_store.save_embeddings(batch)
        assert await vector_store.get_embedding_count(doc.id) == 0

    async def test_dimension_mismatch_is_integrity_violation(
        self, vector_store: SQLiteVectorStore, documents_dir: Path
    ) -> None:
        doc = await vector_store.create_document(_metadata(documents_dir))
        chunks = await vector_store.save_chunks(doc.id, ["alpha"])

        with pytest.raises(IntegrityViolationError):
            await vector_store.save_embeddings(
                [ChunkEmbedding(chunk_id=chunks[0].id, vector=[0.5] * (MOCK_DIMENSIONS + 1))]
            )


# ======================================================================
# Search
# ======================================================================


class TestSearch:
    async def test_stored_vector_is_its_own_nearest_neighbour(
        self, vector_store: SQLiteVectorStore, documents_dir: Path
    ) -> None:
        doc = await vector_store.create_document(_metadata(documents_dir, "animals.txt"))
        texts = ["cats purr softly", "dogs bark loudly", "fish swim silently"]
        chunks = await vector_store.save_chunks(doc.id, texts)
        await vector_store.save_embeddings(_embeddings_for(chunks))

        results = await vector_store.search_similar(hashed_bag_of_words("dogs bark loudly"), 3)

        assert results[0].content == "dogs bark loudly"
        assert results[0].distance == pytest.approx(0.0, abs=1e-6)
        assert results[0].original_name == "animals.txt"
        assert results[0].document_id == doc.id
        assert results[0].chunk_index == 1
        distances = [r.distance for r in results]
        assert distances == sorted(distances)

    async def test_limit_caps_results(
        self, vector_store: SQLiteVectorStore, documents_dir: Path
    ) -> None:
        doc = await vector_store.create_document(_metadata(documents_dir))
        chunks = await vector_store.save_chunks(doc.id, [f"chunk number {i}" for i in range(8)])
        await vector_store.save_embeddings(_embeddings_for(chunks))

        assert len(await vector_store.search_similar([0.1] * MOCK_DIMENSIONS, 3)) == 3

    async def test_empty_store_returns_nothing(self, vector_store: SQLiteVectorStore) -> None:
        assert await vector_store.search_similar([0.1] * MOCK_DIMENSIONS, 5) == []

    async def test_limit_below_one_is_rejected(self, vector_store: SQLiteVectorStore) -> None:
        with pytest.raises(ValueError, match="limit"):
            await vector_store.search_similar([0.1] * MOCK_DIMENSIONS, 0)


# ======================================================================
# Deletion and state
# ======================================================================


class TestDeletionAndState:
    async def test_delete_removes_rows_vectors_and_files(
        self, vector_store: SQLiteVectorStore, documents_dir: Path
    ) -> None:
        doc = await vector_store.create_document(_metadata(documents_dir, write_file=True))
        chunks = await vector_store.save_chunks(doc.id, ["alpha", "beta"])
        embeddings = _embeddings_for(chunks)
        await vector_store.save_embeddings(embeddings)
        backup = await vector_store.save_embeddings_to_file(doc.id, chunks, embeddings)
        assert backup.exists()

        assert await vector_store.delete_document(doc.id) is True

        db_path = documents_dir / "documents.db"
        assert _count_rows(db_path, "documents") == 0
        assert _count_rows(db_path, "document_chunks") == 0
        assert _count_rows(db_path, "vec_embeddings") == 0
        assert not Path(doc.storage_path).exists()
        assert not backup.exists()
        assert await vector_store.search_similar([0.1] * MOCK_DIMENSIONS, 5) == []

    async def test_second_delete_returns_false(
        self, vector_store: SQLiteVectorStore, documents_dir: Path
    ) -> None:
        doc = await vector_store.create_document(_metadata(documents_dir))
        assert await vector_store.delete_document(doc.id) is True
        assert await vector_store.delete_document(doc.id) is False

    async def test_delete_leaves_other_documents(
        self, vector_store: SQLiteVectorStore, documents_dir: Path
    ) -> None:
        keep = await vector_store.create_document(_metadata(documents_dir, "keep.txt"))
        drop = await vector_store.create_document(_metadata(documents_dir, "drop.txt"))
        for doc in (keep, drop):
            chunks = await vector_store.save_chunks(doc.id, [f"{doc.original_name} text"])
            await vector_store.save_embeddings(_embeddings_for(chunks))

        await vector_store.delete_document(drop.id)

        results = await vector_store.search_similar([0.1] * MOCK_DIMENSIONS, 10)
        assert [r.document_id for r in results] == [keep.id]

    async def test_writes_after_delete_are_rejected(
        self, vector_store: SQLiteVectorStore, documents_dir: Path
    ) -> None:
        doc = await vector_store.create_document(_metadata(documents_dir))
        chunks = await vector_store.save_chunks(doc.id, ["alpha"])
        await vector_store.delete_document(doc.id)

        with pytest.raises(NotFoundError):
            await vector_store.save_chunks(doc.id, ["late"])
        with pytest.raises(NotFoundError):
            await vector_store.save_embeddings(_embeddings_for(chunks))
        assert _count_rows(documents_dir / "documents.db", "document_chunks") == 0

    async def test_state_transitions(
        self, vector_store: SQLiteVectorStore, documents_dir: Path
    ) -> None:
        doc = await vector_store.create_document(_metadata(documents_dir))
        assert await vector_store.get_document_state(doc.id) == DocumentState.CREATED

        chunks = await vector_store.save_chunks(doc.id, ["alpha", "beta"])
        assert await vector_store.get_document_state(doc.id) == DocumentState.CHUNKED

        await vector_store.save_embeddings(_embeddings_for(chunks[:1]))
        assert await vector_store.get_document_state(doc.id) == DocumentState.CHUNKED

        await vector_store.save_embeddings(_embeddings_for(chunks[1:]))
        assert await vector_store.get_document_state(doc.id) == DocumentState.EMBEDDED

        await vector_store.delete_document(doc.id)
        assert await vector_store.get_document_state(doc.id) == DocumentState.DELETED


# ======================================================================
# Embedding backups
# ======================================================================


class TestEmbeddingBackup:
    async def test_backup_file_layout(
        self, vector_store: SQLiteVectorStore, documents_dir: Path
    ) -> None:
        doc = await vector_store.create_document(_metadata(documents_dir, "notes.md"))
        chunks = await vector_store.save_chunks(doc.id, ["first chunk", "second chunk"])
        embeddings = _embeddings_for(chunks)

        path = await vector_store.save_embeddings_to_file(doc.id, chunks, embeddings)

        assert path == vector_store.backup_path_for(doc)
        assert path.name == f"embeddings.{doc.masked_name}.txt"
        text = path.read_text(encoding="utf-8")
        assert text.startswith("Document: notes.md\n")
        assert f"Document ID: {doc.id}" in text
        assert "Total Chunks: 2" in text
        assert f"Embedding Dimensions: {MOCK_DIMENSIONS}" in text
        assert f"Chunk 1 (ID: {chunks[1].id}):" in text
        assert f"(showing first 10 of {MOCK_DIMENSIONS})" in text

    async def test_backup_for_missing_document(self, vector_store: SQLiteVectorStore) -> None:
        with pytest.raises(NotFoundError):
            await vector_store.save_embeddings_to_file("missing", [], [])


# ======================================================================
# Transactions and concurrent reads
# ======================================================================


class TestTransactions:
    async def test_failed_chunk_save_keeps_previous_chunks_and_count(
        self,
        vector_store: SQLiteVectorStore,
        documents_dir: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        doc = await vector_store.create_document(_metadata(documents_dir))
        old = await vector_store.save_chunks(doc.id, ["first", "second"])
        await vector_store.save_embeddings(_embeddings_for(old))

        # Fails after the old chunks are deleted and the new ones inserted.
        monkeypatch.setattr(
            sqlite_vector_store,
            "_UPDATE_CHUNK_COUNT_SQL",
            "UPDATE no_such_table SET chunk_count = ? WHERE id = ?;",
        )
        with pytest.raises(StorageError):
            await vector_store.save_chunks(doc.id, ["replacement one", "two", "three"])

        assert await vector_store.get_chunks(doc.id) == old
        assert (await vector_store.get_document(doc.id)).chunk_count == 2
        assert await vector_store.get_embedding_count(doc.id) == 2

    async def test_search_is_not_blocked_by_an_open_write_transaction(
        self, vector_store: SQLiteVectorStore, documents_dir: Path
    ) -> None:
        doc = await vector_store.create_document(_metadata(documents_dir, "notes.txt"))
        chunks = await vector_store.save_chunks(doc.id, ["quiet harbor at dawn"])
        await vector_store.save_embeddings(_embeddings_for(chunks))

        async with aiosqlite.connect(
            str(documents_dir / "documents.db"), isolation_level=None
        ) as writer:
            await writer.execute("BEGIN IMMEDIATE;")
            await writer.execute(
                "UPDATE documents SET original_name = ? WHERE id = ?;",
                ("renamed.txt", doc.id),
            )

            results = await asyncio.wait_for(
                vector_store.search_similar(hashed_bag_of_words("quiet harbor at dawn"), 5),
                timeout=2,
            )

            await writer.execute("ROLLBACK;")

        assert [r.content for r in results] == ["quiet harbor at dawn"]
        assert results[0].original_name == "notes.txt"
