"""Concurrency- and time-bounded decorator for embedding providers.

Every ingestion job and every search embeds through the same backend, so
in-flight upstream requests share one :class:`asyncio.Semaphore`.  The
semaphore and the ``timeout`` apply to each request the backend plans,
not to a whole batch: a sequential backend gives the slot back between
texts, so a query embedding waits for at most one request of a running
ingestion.  A timeout surfaces as
:class:`~docvault.utils.errors.ProviderError` and is not retried.
"""

from __future__ import annotations

import asyncio

from docvault.interfaces.embedding_provider import IEmbeddingProvider
from docvault.utils.concurrency import bounded_call


class BoundedEmbeddingProvider(IEmbeddingProvider):
    """Wrap *inner* so each upstream request respects a shared semaphore and a time bound."""

    def __init__(
        self,
        inner: IEmbeddingProvider,
        semaphore: asyncio.Semaphore,
        timeout: float | None,
    ) -> None:
        self._inner = inner
        self._semaphore = semaphore
        self._timeout = timeout

    @property
    def inner(self) -> IEmbeddingProvider:
        return self._inner

    def plan_requests(self, texts: list[str]) -> list[list[str]]:
        return self._inner.plan_requests(texts)

    async def embed_request(self, texts: list[str]) -> list[list[float]]:
        return await bounded_call(
            self._inner.embed_request(texts),
            self._semaphore,
            self._timeout,
            provider_name=self._inner.get_provider_name(),
        )

    def get_dimension(self) -> int:
        return self._inner.get_dimension()

    def get_provider_name(self) -> str:
        return self._inner.get_provider_name()

    async def close(self) -> None:
        await self._inner.close()
