"""Shared concurrency primitives for embedding-provider calls.

Embedding calls are blocking network I/O from the pipeline's point of
view.  Ingestion jobs for unrelated documents run concurrently, so the
number of in-flight provider calls must be capped to respect provider
rate limits, and every call needs an upper time bound so one stuck
request cannot wedge a worker forever.

**bounded_call** acquires a semaphore, awaits a coroutine under
``asyncio.wait_for`` and converts a timeout into
:class:`~docvault.utils.errors.ProviderError`.  No retry is attempted.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, TypeVar

import structlog

from docvault.utils.errors import ProviderError

_T = TypeVar("_T")

logger = structlog.get_logger(logger_name=__name__)


async def bounded_call(
    coro: Awaitable[_T],
    semaphore: asyncio.Semaphore,
    timeout: float | None,
    provider_name: str | None = None,
) -> _T:
    """Await *coro* while holding *semaphore*, bounded by *timeout* seconds.

    Parameters
    ----------
    coro:
        The provider call to run.
    semaphore:
        Shared limiter for concurrent provider calls.
    timeout:
        Upper bound in seconds for the call itself (time spent waiting for
        the semaphore is not counted).  ``None`` disables the bound.
    provider_name:
        Attached to the :class:`ProviderError` raised on timeout.

    Raises
    ------
    ProviderError
        If the call does not finish within *timeout*.
    """
    async with semaphore:
        try:
            return await asyncio.wait_for(coro, timeout=timeout)
        except asyncio.TimeoutError as exc:
            logger.warning(
                "provider_call_timed_out",
                provider=provider_name,
                timeout_seconds=timeout,
            )
            raise ProviderError(
                message=f"Embedding call timed out after {timeout}s",
                provider_name=provider_name,
            ) from exc

