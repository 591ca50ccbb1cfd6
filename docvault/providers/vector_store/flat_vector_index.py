"""Exact brute-force KNN index stored inside the docvault SQLite file.

Vectors live in the ``vec_embeddings`` table as packed float32 BLOBs keyed
by chunk id.  The table's foreign key points at ``document_chunks(id)``
with ``ON DELETE CASCADE``, so deleting a chunk (or its document) removes
the vector in the same statement and orphans cannot exist.

Queries load every vector of the configured width into one numpy matrix
and rank by exact distance.  This is a flat scan: O(N·d) per query, which
is fine for the per-application corpora docvault serves (tens of
thousands of chunks).  A larger deployment would swap in an ANN-backed
:class:`~docvault.interfaces.vector_index.IVectorIndex`.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from typing import Literal

import aiosqlite
import numpy as np
import structlog

from docvault.interfaces.vector_index import IVectorIndex
from docvault.utils.errors import IntegrityViolationError

logger = structlog.get_logger(logger_name=__name__)

DistanceMetric = Literal["l2", "cosine"]

_CREATE_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS vec_embeddings (
    chunk_id    TEXT    PRIMARY KEY
                        REFERENCES document_chunks(id) ON DELETE CASCADE,
    dimensions  INTEGER NOT NULL,
    embedding   BLOB    NOT NULL
);
"""

_UPSERT_SQL = """\
INSERT INTO vec_embeddings (chunk_id, dimensions, embedding)
VALUES (?, ?, ?)
ON CONFLICT(chunk_id)
DO UPDATE SET dimensions = excluded.dimensions,
              embedding  = excluded.embedding;
"""

_SELECT_ALL_SQL = "SELECT chunk_id, embedding FROM vec_embeddings WHERE dimensions = ?;"

_DELETE_SQL = "DELETE FROM vec_embeddings WHERE chunk_id = ?;"

# SQLite's default SQLITE_MAX_VARIABLE_NUMBER is 999 on older builds.
_MAX_PARAMS = 900


class FlatVectorIndex(IVectorIndex):
    """Exact L2 (or cosine) nearest-neighbour search over SQLite-stored vectors.

    Parameters
    ----------
    dimensions:
        Width every vector must have; mirrors the configured embedding model.
    metric:
        ``"l2"`` (Euclidean, the default) or ``"cosine"`` (1 − cosine
        similarity, in ``[0, 2]``).
    """

    def __init__(self, dimensions: int, metric: DistanceMetric = "l2") -> None:
        if dimensions <= 0:
            msg = f"dimensions must be positive, got {dimensions}"
            raise ValueError(msg)
        if metric not in ("l2", "cosine"):
            msg = f"Unknown distance metric: {metric}"
            raise ValueError(msg)
        self._dimensions = dimensions
        self._metric = metric

    async def initialize(self, db: aiosqlite.Connection) -> None:
        await db.execute(_CREATE_TABLE_SQL)

    def get_dimension(self) -> int:
        return self._dimensions

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def upsert(
        self,
        db: aiosqlite.Connection,
        key: str,
        vector: Sequence[float],
    ) -> None:
        await db.execute(_UPSERT_SQL, (key, self._dimensions, self._pack(key, vector)))

    async def upsert_many(
        self,
        db: aiosqlite.Connection,
        items: Sequence[tuple[str, Sequence[float]]],
    ) -> int:
        # Pack (and validate) everything before touching the database so a
        # bad vector late in the batch fails without partial statements.
        rows = [(key, self._dimensions, self._pack(key, vector)) for key, vector in items]
        await db.executemany(_UPSERT_SQL, rows)
        return len(rows)

    async def remove(self, db: aiosqlite.Connection, key: str) -> bool:
        cursor = await db.execute(_DELETE_SQL, (key,))
        return cursor.rowcount > 0

    async def remove_many(self, db: aiosqlite.Connection, keys: Sequence[str]) -> int:
        removed = 0
        for start in range(0, len(keys), _MAX_PARAMS):
            batch = list(keys[start : start + _MAX_PARAMS])
            placeholders = ",".join("?" for _ in batch)
            cursor = await db.execute(
                f"DELETE FROM vec_embeddings WHERE chunk_id IN ({placeholders});",  # noqa: S608
                batch,
            )
            removed += max(cursor.rowcount, 0)
        return removed

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def query(
        self,
        db: aiosqlite.Connection,
        vector: Sequence[float],
        k: int,
    ) -> list[tuple[str, float]]:
        if k <= 0:
            return []
        query_vec = np.asarray(vector, dtype=np.float32)
        if query_vec.shape != (self._dimensions,):
            msg = (
                f"Query vector has {query_vec.size} dimensions, "
                f"index expects {self._dimensions}"
            )
            raise ValueError(msg)

        cursor = await db.execute(_SELECT_ALL_SQL, (self._dimensions,))
        rows = await cursor.fetchall()
        if not rows:
            return []

        # The scan is CPU bound; keep it off the event loop.
        hits = await asyncio.to_thread(self._rank, rows, query_vec, k)
        logger.debug("vector_index_query", candidates=len(rows), k=k, metric=self._metric)
        return hits

    async def count_keys(self, db: aiosqlite.Connection, keys: Sequence[str]) -> int:
        total = 0
        for start in range(0, len(keys), _MAX_PARAMS):
            batch = list(keys[start : start + _MAX_PARAMS])
            placeholders = ",".join("?" for _ in batch)
            cursor = await db.execute(
                f"SELECT COUNT(*) FROM vec_embeddings WHERE chunk_id IN ({placeholders});",  # noqa: S608
                batch,
            )
            row = await cursor.fetchone()
            total += row[0] if row else 0
        return total

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _pack(self, key: str, vector: Sequence[float]) -> bytes:
        """Validate *vector* and return it as packed little-endian float32."""
        arr = np.asarray(vector, dtype=np.float32)
        if arr.shape != (self._dimensions,):
            raise IntegrityViolationError(
                message=(
                    f"Embedding for chunk {key} has {arr.size} dimensions, "
                    f"index expects {self._dimensions}"
                ),
                provider_name="flat_vector_index",
            )
        if not np.all(np.isfinite(arr)):
            raise IntegrityViolationError(
                message=f"Embedding for chunk {key} contains NaN or infinite values",
                provider_name="flat_vector_index",
            )
        return arr.astype("<f4").tobytes()

    def _rank(
        self,
        rows: Sequence[tuple[str, bytes]],
        query_vec: np.ndarray,
        k: int,
    ) -> list[tuple[str, float]]:
        keys = [row[0] for row in rows]
        matrix = np.frombuffer(b"".join(row[1] for row in rows), dtype="<f4")
        matrix = matrix.reshape(len(rows), self._dimensions)

        distances = self._distances(matrix, query_vec)
        if k >= len(keys):
            order = np.argsort(distances, kind="stable")
        else:
            nearest = np.argpartition(distances, k - 1)[:k]
            order = nearest[np.argsort(distances[nearest], kind="stable")]
        return [(keys[i], float(distances[i])) for i in order]

    def _distances(self, matrix: np.ndarray, query_vec: np.ndarray) -> np.ndarray:
        if self._metric == "l2":
            return np.linalg.norm(matrix - query_vec, axis=1)

        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query_vec)
        dots = matrix @ query_vec
        with np.errstate(divide="ignore", invalid="ignore"):
            similarity = np.where(norms > 0, dots / norms, 0.0)
        return np.clip(1.0 - similarity, 0.0, 2.0)
