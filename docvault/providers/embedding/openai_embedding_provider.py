"""OpenAI-compatible embedding provider adapter.

Wraps the ``openai`` async client to implement :class:`IEmbeddingProvider`.
Supports both real OpenAI and OpenAI-compatible providers (TogetherAI,
Azure proxies, vLLM) via custom ``base_url`` and model name options.
One request embeds a whole batch of texts.
"""

from __future__ import annotations

from typing import Any

import openai
import structlog

from docvault.interfaces.embedding_provider import IEmbeddingProvider
from docvault.models.options import EmbeddingOptions
from docvault.utils.errors import ProviderError, ProviderUnavailableError

logger = structlog.get_logger(logger_name=__name__)

_OPENAI_BATCH_LIMIT = 2048

# Only the v3 family accepts a caller-chosen output width.
_DIMENSIONS_PARAM_PREFIX = "text-embedding-3"


class OpenAIEmbeddingProvider(IEmbeddingProvider):
    """Embedding provider backed by an OpenAI-compatible embeddings API.

    Uses ``text-embedding-3-small`` (1536 dims) by default.  When
    ``base_url`` is set the client points at that host instead.  The
    client is built with ``max_retries=0``; retrying is the caller's
    decision, not the adapter's.
    """

    def __init__(self, options: EmbeddingOptions) -> None:
        self._options = options
        self._api_key = options.api_key
        self._model = options.resolved_model
        self._dimension = options.resolved_dimensions
        self._provider_label = (
            "openai-compatible_embedding" if options.base_url else "openai_embedding"
        )

        self._client: openai.AsyncOpenAI | None = None
        if self._api_key:
            # Build client kwargs -- add base_url only when configured.
            client_kwargs: dict[str, Any] = {
                "api_key": self._api_key,
                "max_retries": 0,
                "timeout": options.timeout_seconds,
            }
            if options.base_url:
                client_kwargs["base_url"] = options.base_url
            self._client = openai.AsyncOpenAI(**client_kwargs)

    # ------------------------------------------------------------------
    # IEmbeddingProvider implementation
    # ------------------------------------------------------------------

    def plan_requests(self, texts: list[str]) -> list[list[str]]:
        """Split *texts* into batches of at most 2048, the per-request limit."""
        return [
            texts[start : start + _OPENAI_BATCH_LIMIT]
            for start in range(0, len(texts), _OPENAI_BATCH_LIMIT)
        ]

    async def embed_request(self, texts: list[str]) -> list[list[float]]:
        """Embed one batch with a single ``embeddings.create`` call.

        Results are re-ordered by the response's ``index`` field so output
        order always matches input order.
        """
        if self._client is None:
            raise ProviderUnavailableError(
                message="OPENAI_API_KEY is not configured",
                provider_name=self.get_provider_name(),
            )

        extra: dict[str, Any] = {}
        if self._options.dimensions and self._model.startswith(_DIMENSIONS_PARAM_PREFIX):
            extra["dimensions"] = self._options.dimensions

        try:
            response = await self._client.embeddings.create(
                input=texts,
                model=self._model,
                **extra,
            )
        except openai.APIError as exc:
            raise ProviderError(
                message=f"{self._provider_label} API error: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        items = sorted(response.data, key=lambda item: item.index)
        if len(items) != len(texts):
            raise ProviderError(
                message=f"Expected {len(texts)} embeddings, received {len(items)}",
                provider_name=self.get_provider_name(),
            )
        logger.info(
            "openai_embedding_batch",
            model=self._model,
            provider=self._provider_label,
            batch_size=len(texts),
            tokens=response.usage.total_tokens if response.usage else None,
        )
        return [list(item.embedding) for item in items]

    def get_dimension(self) -> int:
        return self._dimension

    def get_provider_name(self) -> str:
        return self._provider_label

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
