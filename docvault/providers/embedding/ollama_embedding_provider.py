"""Ollama embedding provider adapter (local/free).

Talks to Ollama's native ``/api/embeddings`` endpoint with ``httpx``:

    POST {base_url}/api/embeddings   {"model": ..., "prompt": ...}
    → {"embedding": [...]}

The endpoint embeds one prompt per request, so a batch is sent as a
sequence of requests in input order.  Uses ``nomic-embed-text``
(768 dimensions) unless another model is configured.
"""

from __future__ import annotations

import httpx
import structlog

from docvault.interfaces.embedding_provider import IEmbeddingProvider
from docvault.models.options import EmbeddingOptions
from docvault.utils.errors import ProviderError, ProviderUnavailableError

logger = structlog.get_logger(logger_name=__name__)


class OllamaEmbeddingProvider(IEmbeddingProvider):
    """Embedding provider backed by a self-hosted Ollama server.

    Parameters
    ----------
    options:
        Resolved embedding options; ``base_url`` is the Ollama root URL.
    client:
        Optional pre-built ``httpx.AsyncClient`` (tests inject one with a
        mock transport).  A client passed in is not closed by
        :meth:`close`.
    """

    def __init__(
        self,
        options: EmbeddingOptions,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = (options.base_url or "").rstrip("/")
        self._model = options.resolved_model
        self._dimension = options.resolved_dimensions
        self._timeout = options.timeout_seconds
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=self._timeout)

    # ------------------------------------------------------------------
    # IEmbeddingProvider implementation
    # ------------------------------------------------------------------

    def plan_requests(self, texts: list[str]) -> list[list[str]]:
        """One group per text; the endpoint embeds a single prompt per request."""
        return [[text] for text in texts]

    async def embed_request(self, texts: list[str]) -> list[list[float]]:
        """Embed the text of one planned group."""
        if not self._base_url:
            raise ProviderUnavailableError(
                message="OLLAMA_BASE_URL is not configured",
                provider_name=self.get_provider_name(),
            )
        return [await self._post_prompt(text) for text in texts]

    async def _post_prompt(self, text: str) -> list[float]:
        try:
            response = await self._client.post(
                f"{self._base_url}/api/embeddings",
                json={"model": self._model, "prompt": text},
                timeout=self._timeout,
            )
            response.raise_for_status()
            payload = response.json()
        except httpx.TimeoutException as exc:
            raise ProviderError(
                message=f"Ollama request timed out after {self._timeout}s",
                provider_name=self.get_provider_name(),
            ) from exc
        except httpx.HTTPStatusError as exc:
            raise ProviderError(
                message=(
                    f"Ollama returned HTTP {exc.response.status_code}: "
                    f"{exc.response.text[:200]}"
                ),
                provider_name=self.get_provider_name(),
            ) from exc
        except httpx.HTTPError as exc:
            raise ProviderError(
                message=f"Ollama request failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        except ValueError as exc:
            raise ProviderError(
                message=f"Ollama returned invalid JSON: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        embedding = payload.get("embedding") if isinstance(payload, dict) else None
        if not embedding:
            raise ProviderError(
                message="Ollama response did not contain an embedding",
                provider_name=self.get_provider_name(),
            )
        logger.debug("ollama_embedding_request", model=self._model, characters=len(text))
        return [float(v) for v in embedding]

    def get_dimension(self) -> int:
        return self._dimension

    def get_provider_name(self) -> str:
        return "ollama_embedding"

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
