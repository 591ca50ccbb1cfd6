"""Abstract base class for K-nearest-neighbour vector indexes.

The vector index is the capability the store needs from an embedded KNN
engine: ``upsert(key, vector)``, ``query(vector, k)`` and ``remove(key)``
over fixed-width vectors keyed by chunk id.

Every method receives the caller's open ``aiosqlite`` connection so that
index writes take part in the store's transactions: an embedding batch is
committed or rolled back together with the rest of the store write, and
a cascading chunk delete removes the index entry in the same statement.
An implementation backed by an external vector database would ignore the
connection argument and give up that atomicity.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence

import aiosqlite


class IVectorIndex(ABC):
    """Contract for the KNN index behind the SQLite vector store."""

    @abstractmethod
    async def initialize(self, db: aiosqlite.Connection) -> None:
        """Create the index's backing structures if they don't exist."""

    @abstractmethod
    def get_dimension(self) -> int:
        """Return the fixed width every stored vector must have."""

    @abstractmethod
    async def upsert(
        self,
        db: aiosqlite.Connection,
        key: str,
        vector: Sequence[float],
    ) -> None:
        """Insert or overwrite the vector stored under *key*.

        Raises
        ------
        docvault.utils.errors.IntegrityViolationError
            If ``len(vector)`` differs from :meth:`get_dimension`.
        """

    async def upsert_many(
        self,
        db: aiosqlite.Connection,
        items: Sequence[tuple[str, Sequence[float]]],
    ) -> int:
        """Upsert every ``(key, vector)`` pair; returns the number written."""
        for key, vector in items:
            await self.upsert(db, key, vector)
        return len(items)

    @abstractmethod
    async def query(
        self,
        db: aiosqlite.Connection,
        vector: Sequence[float],
        k: int,
    ) -> list[tuple[str, float]]:
        """Return up to *k* ``(key, distance)`` pairs, nearest first.

        Distances are non-negative and non-decreasing along the result.
        """

    @abstractmethod
    async def remove(self, db: aiosqlite.Connection, key: str) -> bool:
        """Remove the entry for *key*; returns ``False`` if it was absent."""

    async def remove_many(self, db: aiosqlite.Connection, keys: Sequence[str]) -> int:
        """Remove every key in *keys*; returns the number actually removed."""
        removed = 0
        for key in keys:
            if await self.remove(db, key):
                removed += 1
        return removed

    @abstractmethod
    async def count_keys(self, db: aiosqlite.Connection, keys: Sequence[str]) -> int:
        """Return how many of *keys* currently have a stored vector."""
