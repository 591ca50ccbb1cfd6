"""SQLite-backed document, chunk and embedding store.

Persists documents, their chunks and the chunk embeddings to a single
SQLite database at ``<data_dir>/documents/documents.db``.  Uses
``aiosqlite`` for async I/O; each operation opens its own connection so
ingestion jobs and searches never share a cursor.

# ─── CONSISTENCY MODEL ────────────────────────────────────────────────
#
#   - WAL journal: readers (search) proceed while a writer (ingestion)
#     holds the write lock.
#   - Writes run inside ``BEGIN IMMEDIATE`` so the write lock is taken
#     up front and the existence check + insert are atomic.
#   - Foreign keys are switched on per connection; deleting a document
#     cascades to its chunks, and deleting a chunk cascades to its
#     vector in ``vec_embeddings``.
#   - A write for a document (or chunk) that was deleted meanwhile fails
#     with NotFoundError and never resurrects rows.
# ──────────────────────────────────────────────────────────────────────

The KNN capability itself is delegated to an
:class:`~docvault.interfaces.vector_index.IVectorIndex`, which receives
the store's connection so vector writes join the same transaction.
"""

from __future__ import annotations

import asyncio
import sqlite3
import uuid
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path

import aiosqlite
import structlog

from docvault.interfaces.vector_index import IVectorIndex
from docvault.interfaces.vector_store_provider import IVectorStoreProvider
from docvault.models.document import (
    ChunkEmbedding,
    Document,
    DocumentChunk,
    DocumentCreate,
    DocumentState,
    SearchResult,
)
from docvault.utils.errors import (
    IntegrityViolationError,
    NotFoundError,
    StorageError,
)

logger = structlog.get_logger(logger_name=__name__)

_PROVIDER_NAME = "sqlite_vector_store"

# Fixed-width UTC timestamps sort lexicographically in time order.
_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"

_BACKUP_PREVIEW_COMPONENTS = 10

_CREATE_DOCUMENTS_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS documents (
    id            TEXT    PRIMARY KEY,
    original_name TEXT    NOT NULL,
    masked_name   TEXT    NOT NULL UNIQUE,
    mime_type     TEXT    NOT NULL,
    size          INTEGER NOT NULL,
    storage_path  TEXT    NOT NULL,
    uploaded_at   TEXT    NOT NULL,
    chunk_count   INTEGER NOT NULL DEFAULT 0
);
"""

_CREATE_CHUNKS_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS document_chunks (
    id          TEXT    PRIMARY KEY,
    document_id TEXT    NOT NULL REFERENCES documents(id) ON DELETE CASCADE,
    chunk_index INTEGER NOT NULL,
    content     TEXT    NOT NULL,
    created_at  TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now')),
    UNIQUE (document_id, chunk_index)
);
"""

_CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_document_chunks_document ON document_chunks(document_id);",
    "CREATE INDEX IF NOT EXISTS idx_documents_uploaded_at ON documents(uploaded_at DESC);",
]

_DOCUMENT_COLUMNS = (
    "id, original_name, masked_name, mime_type, size, storage_path, uploaded_at, chunk_count"
)

_INSERT_DOCUMENT_SQL = f"""\
INSERT INTO documents ({_DOCUMENT_COLUMNS})
VALUES (?, ?, ?, ?, ?, ?, ?, 0);
"""

_SELECT_DOCUMENT_SQL = f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE id = ?;"

_SELECT_DOCUMENT_BY_MASKED_NAME_SQL = (
    f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE masked_name = ?;"
)

_LIST_DOCUMENTS_SQL = f"""\
SELECT {_DOCUMENT_COLUMNS}
FROM documents
ORDER BY uploaded_at DESC, rowid DESC
LIMIT ? OFFSET ?;
"""

_COUNT_DOCUMENTS_SQL = "SELECT COUNT(*) FROM documents;"

_DOCUMENT_EXISTS_SQL = "SELECT 1 FROM documents WHERE id = ?;"

_DELETE_DOCUMENT_SQL = "DELETE FROM documents WHERE id = ?;"

_UPDATE_CHUNK_COUNT_SQL = "UPDATE documents SET chunk_count = ? WHERE id = ?;"

_INSERT_CHUNK_SQL = """\
INSERT INTO document_chunks (id, document_id, chunk_index, content)
VALUES (?, ?, ?, ?);
"""

_SELECT_CHUNKS_SQL = """\
SELECT id, document_id, chunk_index, content
FROM document_chunks
WHERE document_id = ?
ORDER BY chunk_index ASC;
"""

_SELECT_CHUNK_IDS_SQL = "SELECT id FROM document_chunks WHERE document_id = ?;"

_DELETE_CHUNKS_SQL = "DELETE FROM document_chunks WHERE document_id = ?;"

_CHUNK_EXISTS_SQL = "SELECT 1 FROM document_chunks WHERE id = ?;"

_SELECT_SEARCH_ROWS_SQL = """\
SELECT c.id, c.document_id, c.chunk_index, c.content, d.original_name
FROM document_chunks c
JOIN documents d ON d.id = c.document_id
WHERE c.id IN ({placeholders});
"""


def _format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)  # noqa: UP017
    return value.astimezone(timezone.utc).strftime(_TIMESTAMP_FORMAT)  # noqa: UP017


def _parse_timestamp(value: str) -> datetime:
    return datetime.strptime(value, _TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)  # noqa: UP017


def _row_to_document(row: aiosqlite.Row) -> Document:
    return Document(
        id=row["id"],
        original_name=row["original_name"],
        masked_name=row["masked_name"],
        mime_type=row["mime_type"],
        size_bytes=row["size"],
        storage_path=row["storage_path"],
        uploaded_at=_parse_timestamp(row["uploaded_at"]),
        chunk_count=row["chunk_count"],
    )


def _row_to_chunk(row: aiosqlite.Row) -> DocumentChunk:
    return DocumentChunk(
        id=row["id"],
        document_id=row["document_id"],
        chunk_index=row["chunk_index"],
        content=row["content"],
    )


class SQLiteVectorStore(IVectorStoreProvider):
    """SQLite persistence for documents, chunks and embeddings.

    Parameters
    ----------
    documents_dir:
        Directory holding uploaded files; the database and the
        ``embeddings/`` backup directory live inside it.
    index:
        KNN index operating on the store's connection.
    db_path:
        Override for the database location (defaults to
        ``documents_dir / "documents.db"``).
    busy_timeout_ms:
        How long a connection waits for the write lock before failing.
    """

    def __init__(
        self,
        documents_dir: str | Path,
        index: IVectorIndex,
        db_path: str | Path | None = None,
        busy_timeout_ms: int = 5000,
    ) -> None:
        self._documents_dir = Path(documents_dir)
        self._embeddings_dir = self._documents_dir / "embeddings"
        self._db_path = Path(db_path) if db_path else self._documents_dir / "documents.db"
        self._index = index
        self._busy_timeout_ms = busy_timeout_ms

    @property
    def documents_dir(self) -> Path:
        return self._documents_dir

    @property
    def index(self) -> IVectorIndex:
        return self._index

    # ------------------------------------------------------------------
    # Connection helpers
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _connect(self) -> AsyncIterator[aiosqlite.Connection]:
        """Open a connection with foreign keys on; map sqlite errors to ours."""
        try:
            async with aiosqlite.connect(
                str(self._db_path),
                isolation_level=None,
                timeout=self._busy_timeout_ms / 1000,
            ) as db:
                db.row_factory = aiosqlite.Row
                await db.execute("PRAGMA foreign_keys = ON;")
                await db.execute(f"PRAGMA busy_timeout = {int(self._busy_timeout_ms)};")
                yield db
        except sqlite3.IntegrityError as exc:
            raise IntegrityViolationError(
                message=str(exc), provider_name=_PROVIDER_NAME
            ) from exc
        except sqlite3.Error as exc:
            logger.error("sqlite_operation_failed", error=str(exc), path=str(self._db_path))
            raise StorageError(message=str(exc), provider_name=_PROVIDER_NAME) from exc

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """``BEGIN IMMEDIATE`` … ``COMMIT``, rolled back on any exception."""
        async with self._connect() as db:
            await db.execute("BEGIN IMMEDIATE;")
            try:
                yield db
            except BaseException:
                if db.in_transaction:
                    await db.execute("ROLLBACK;")
                raise
            await db.execute("COMMIT;")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """Create the directories, tables and indices if they don't exist."""
        try:
            self._documents_dir.mkdir(parents=True, exist_ok=True)
            self._embeddings_dir.mkdir(parents=True, exist_ok=True)
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError(
                message=f"Cannot create storage directories: {exc}",
                provider_name=_PROVIDER_NAME,
            ) from exc

        async with self._connect() as db:
            await db.execute("PRAGMA journal_mode = WAL;")
            await db.execute(_CREATE_DOCUMENTS_TABLE_SQL)
            await db.execute(_CREATE_CHUNKS_TABLE_SQL)
            await self._index.initialize(db)
            for idx_sql in _CREATE_INDICES_SQL:
                await db.execute(idx_sql)

        logger.info(
            "vector_store_initialized",
            path=str(self._db_path),
            dimensions=self._index.get_dimension(),
        )

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    async def create_document(self, metadata: DocumentCreate) -> Document:
        document = Document(
            id=str(uuid.uuid4()),
            original_name=metadata.original_name,
            masked_name=metadata.masked_name,
            mime_type=metadata.mime_type,
            size_bytes=metadata.size_bytes,
            storage_path=metadata.storage_path,
            uploaded_at=metadata.uploaded_at,
            chunk_count=0,
        )
        async with self._transaction() as db:
            await db.execute(
                _INSERT_DOCUMENT_SQL,
                (
                    document.id,
                    document.original_name,
                    document.masked_name,
                    document.mime_type,
                    document.size_bytes,
                    document.storage_path,
                    _format_timestamp(document.uploaded_at),
                ),
            )
        logger.info(
            "document_created",
            document_id=document.id,
            masked_name=document.masked_name,
            size_bytes=document.size_bytes,
        )
        return document

    async def get_document(self, document_id: str) -> Document:
        async with self._connect() as db:
            cursor = await db.execute(_SELECT_DOCUMENT_SQL, (document_id,))
            row = await cursor.fetchone()
        if row is None:
            raise NotFoundError(
                message=f"Document not found: {document_id}",
                provider_name=_PROVIDER_NAME,
            )
        return _row_to_document(row)

    async def get_document_by_masked_name(self, masked_name: str) -> Document:
        async with self._connect() as db:
            cursor = await db.execute(_SELECT_DOCUMENT_BY_MASKED_NAME_SQL, (masked_name,))
            row = await cursor.fetchone()
        if row is None:
            raise NotFoundError(
                message=f"Document not found: {masked_name}",
                provider_name=_PROVIDER_NAME,
            )
        return _row_to_document(row)

    async def list_documents(self, limit: int = 100, offset: int = 0) -> list[Document]:
        if limit < 1:
            msg = f"limit must be >= 1, got {limit}"
            raise ValueError(msg)
        if offset < 0:
            msg = f"offset must be >= 0, got {offset}"
            raise ValueError(msg)
        async with self._connect() as db:
            cursor = await db.execute(_LIST_DOCUMENTS_SQL, (limit, offset))
            rows = await cursor.fetchall()
        return [_row_to_document(row) for row in rows]

    async def get_document_count(self) -> int:
        async with self._connect() as db:
            cursor = await db.execute(_COUNT_DOCUMENTS_SQL)
            row = await cursor.fetchone()
        return row[0] if row else 0

    async def delete_document(self, document_id: str) -> bool:
        async with self._transaction() as db:
            cursor = await db.execute(_SELECT_DOCUMENT_SQL, (document_id,))
            row = await cursor.fetchone()
            if row is None:
                logger.info("document_delete_skipped", document_id=document_id)
                return False
            document = _row_to_document(row)

            cursor = await db.execute(_SELECT_CHUNK_IDS_SQL, (document_id,))
            chunk_ids = [r["id"] for r in await cursor.fetchall()]
            removed_vectors = await self._index.remove_many(db, chunk_ids)
            await db.execute(_DELETE_CHUNKS_SQL, (document_id,))
            await db.execute(_DELETE_DOCUMENT_SQL, (document_id,))

        # Files go after the commit; a crash in between leaves at most an
        # unreferenced file, never a row pointing at a missing one.
        await asyncio.to_thread(self._unlink_quietly, Path(document.storage_path))
        await asyncio.to_thread(self._unlink_quietly, self._backup_path(document.masked_name))

        logger.info(
            "document_deleted",
            document_id=document_id,
            chunks=len(chunk_ids),
            vectors=removed_vectors,
        )
        return True

    async def get_document_state(self, document_id: str) -> DocumentState:
        async with self._connect() as db:
            await db.execute("BEGIN;")
            try:
                cursor = await db.execute(_DOCUMENT_EXISTS_SQL, (document_id,))
                if await cursor.fetchone() is None:
                    return DocumentState.DELETED
                cursor = await db.execute(_SELECT_CHUNK_IDS_SQL, (document_id,))
                chunk_ids = [r["id"] for r in await cursor.fetchall()]
                if not chunk_ids:
                    return DocumentState.CREATED
                embedded = await self._index.count_keys(db, chunk_ids)
            finally:
                await db.execute("COMMIT;")
        if embedded < len(chunk_ids):
            return DocumentState.CHUNKED
        return DocumentState.EMBEDDED

    # ------------------------------------------------------------------
    # Chunks and embeddings
    # ------------------------------------------------------------------

    async def save_chunks(self, document_id: str, texts: Sequence[str]) -> list[DocumentChunk]:
        chunks = [
            DocumentChunk(
                id=str(uuid.uuid4()),
                document_id=document_id,
                chunk_index=i,
                content=text,
            )
            for i, text in enumerate(texts)
        ]
        async with self._transaction() as db:
            cursor = await db.execute(_DOCUMENT_EXISTS_SQL, (document_id,))
            if await cursor.fetchone() is None:
                raise NotFoundError(
                    message=f"Document not found: {document_id}",
                    provider_name=_PROVIDER_NAME,
                )
            # Re-ingestion replaces the previous chunk set wholesale; their
            # vectors go with them through the cascade.
            await db.execute(_DELETE_CHUNKS_SQL, (document_id,))
            await db.executemany(
                _INSERT_CHUNK_SQL,
                [(c.id, c.document_id, c.chunk_index, c.content) for c in chunks],
            )
            await db.execute(_UPDATE_CHUNK_COUNT_SQL, (len(chunks), document_id))

        logger.info("chunks_saved", document_id=document_id, chunk_count=len(chunks))
        return chunks

    async def get_chunks(self, document_id: str) -> list[DocumentChunk]:
        async with self._connect() as db:
            cursor = await db.execute(_SELECT_CHUNKS_SQL, (document_id,))
            rows = await cursor.fetchall()
        return [_row_to_chunk(row) for row in rows]

    async def save_embeddings(self, embeddings: Sequence[ChunkEmbedding]) -> int:
        if not embeddings:
            return 0
        async with self._transaction() as db:
            for item in embeddings:
                cursor = await db.execute(_CHUNK_EXISTS_SQL, (item.chunk_id,))
                if await cursor.fetchone() is None:
                    raise NotFoundError(
                        message=f"Chunk not found: {item.chunk_id}",
                        provider_name=_PROVIDER_NAME,
                    )
            written = await self._index.upsert_many(
                db, [(item.chunk_id, item.vector) for item in embeddings]
            )
        logger.info("embeddings_saved", count=written)
        return written

    async def get_embedding_count(self, document_id: str) -> int:
        async with self._connect() as db:
            cursor = await db.execute(_SELECT_CHUNK_IDS_SQL, (document_id,))
            chunk_ids = [r["id"] for r in await cursor.fetchall()]
            if not chunk_ids:
                return 0
            return await self._index.count_keys(db, chunk_ids)

    async def search_similar(
        self,
        query_vector: Sequence[float],
        limit: int = 5,
    ) -> list[SearchResult]:
        if limit < 1:
            msg = f"limit must be >= 1, got {limit}"
            raise ValueError(msg)

        async with self._connect() as db:
            # One read transaction so the KNN hits and the joined rows come
            # from the same snapshot.
            await db.execute("BEGIN;")
            try:
                hits = await self._index.query(db, query_vector, limit)
                rows_by_id: dict[str, aiosqlite.Row] = {}
                if hits:
                    placeholders = ",".join("?" for _ in hits)
                    cursor = await db.execute(
                        _SELECT_SEARCH_ROWS_SQL.format(placeholders=placeholders),
                        [chunk_id for chunk_id, _ in hits],
                    )
                    rows_by_id = {row["id"]: row for row in await cursor.fetchall()}
            finally:
                await db.execute("COMMIT;")

        results: list[SearchResult] = []
        for chunk_id, distance in hits:
            row = rows_by_id.get(chunk_id)
            if row is None:
                continue
            results.append(
                SearchResult(
                    document_id=row["document_id"],
                    original_name=row["original_name"],
                    chunk_index=row["chunk_index"],
                    content=row["content"],
                    distance=max(distance, 0.0),
                )
            )
        logger.debug("search_completed", limit=limit, results=len(results))
        return results

    # ------------------------------------------------------------------
    # Embedding backups
    # ------------------------------------------------------------------

    async def save_embeddings_to_file(
        self,
        document_id: str,
        chunks: Sequence[DocumentChunk],
        embeddings: Sequence[ChunkEmbedding],
    ) -> Path:
        document = await self.get_document(document_id)
        vectors = {item.chunk_id: item.vector for item in embeddings}
        dimensions = len(embeddings[0].vector) if embeddings else self._index.get_dimension()

        lines = [
            f"Document: {document.original_name}",
            f"Document ID: {document.id}",
            f"Masked Name: {document.masked_name}",
            f"Generated: {datetime.now(tz=timezone.utc).isoformat()}",  # noqa: UP017
            f"Total Chunks: {len(chunks)}",
            f"Embedding Dimensions: {dimensions}",
            "",
            "---",
            "",
        ]
        for chunk in chunks:
            vector = vectors.get(chunk.id)
            if vector is None:
                continue
            preview = ", ".join(str(v) for v in vector[:_BACKUP_PREVIEW_COMPONENTS])
            lines.append(f"Chunk {chunk.chunk_index} (ID: {chunk.id}):")
            lines.append(
                f"Embedding: [{preview}...] "
                f"(showing first {_BACKUP_PREVIEW_COMPONENTS} of {len(vector)})"
            )
            lines.append("")

        path = self._backup_path(document.masked_name)
        try:
            await asyncio.to_thread(self._write_text, path, "\n".join(lines))
        except OSError as exc:
            raise StorageError(
                message=f"Cannot write embedding backup {path}: {exc}",
                provider_name=_PROVIDER_NAME,
            ) from exc

        logger.info("embedding_backup_written", document_id=document_id, path=str(path))
        return path

    def backup_path_for(self, document: Document) -> Path:
        """Return where the embedding backup of *document* is (or would be) written."""
        return self._backup_path(document.masked_name)

    def _backup_path(self, masked_name: str) -> Path:
        return self._embeddings_dir / f"embeddings.{masked_name}.txt"

    @staticmethod
    def _write_text(path: Path, text: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")

    @staticmethod
    def _unlink_quietly(path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("file_unlink_failed", path=str(path), error=str(exc))

    def get_provider_name(self) -> str:
        return _PROVIDER_NAME
