"""Immutable option values for chunking and embedding.

Both option types are resolved once per call: stored defaults (built from
:class:`~docvault.config.settings.Settings`) are merged with call-site
overrides via :meth:`merged`, and only the fields the caller explicitly
set win.  The resulting value is frozen, so a pipeline run or search
request sees one consistent configuration from start to finish.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

# Known embedding model dimensions.
_MODEL_DIMENSIONS: dict[str, int] = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
    "nomic-embed-text": 768,
    "mxbai-embed-large": 1024,
    "all-minilm": 384,
    "BAAI/bge-base-en-v1.5": 768,
    "BAAI/bge-large-en-v1.5": 1024,
}

_DEFAULT_MODELS: dict[str, str] = {
    "openai": "text-embedding-3-small",
    "ollama": "nomic-embed-text",
}


def _merge(base: BaseModel, overrides: BaseModel | Mapping[str, Any] | None) -> dict[str, Any]:
    """Return *base* as a dict with the explicitly-set fields of *overrides* on top."""
    data = base.model_dump()
    if overrides is None:
        return data
    if isinstance(overrides, BaseModel):
        data.update(overrides.model_dump(include=overrides.model_fields_set))
    else:
        data.update({k: v for k, v in overrides.items() if v is not None})
    return data


class ChunkingOptions(BaseModel):
    """Window size and overlap for :class:`~docvault.services.ingestion.chunker.TextChunker`.

    Both values are measured in characters.  ``overlap`` must be strictly
    less than ``max_chunk_size`` so that every window advances.
    """

    model_config = ConfigDict(frozen=True)

    max_chunk_size: int = Field(default=2000, gt=0)
    overlap: int = Field(default=200, ge=0)

    @model_validator(mode="after")
    def _check_overlap(self) -> ChunkingOptions:
        if self.overlap >= self.max_chunk_size:
            msg = (
                f"overlap ({self.overlap}) must be strictly less than "
                f"max_chunk_size ({self.max_chunk_size})"
            )
            raise ValueError(msg)
        return self

    def merged(
        self,
        overrides: ChunkingOptions | Mapping[str, Any] | None,
    ) -> ChunkingOptions:
        """Return a new value where call-site *overrides* win over these defaults."""
        if overrides is None:
            return self
        return ChunkingOptions(**_merge(self, overrides))


class EmbeddingOptions(BaseModel):
    """Backend selection and call parameters for an embedding provider.

    ``model`` and ``dimensions`` may be left unset; :attr:`resolved_model`
    and :attr:`resolved_dimensions` fill them from the per-provider
    defaults.
    """

    model_config = ConfigDict(frozen=True)

    # Registry key of the backend; built-ins are "openai" and "ollama".
    provider: str = "openai"
    model: str | None = None
    dimensions: int | None = Field(default=None, gt=0)
    api_key: str | None = Field(default=None, repr=False)
    base_url: str | None = None
    timeout_seconds: float = Field(default=30.0, gt=0)

    @property
    def resolved_model(self) -> str:
        return self.model or _DEFAULT_MODELS.get(self.provider, "")

    @property
    def resolved_dimensions(self) -> int:
        """Explicit dimensions, else the known size of the model, else 1536."""
        if self.dimensions:
            return self.dimensions
        return _MODEL_DIMENSIONS.get(self.resolved_model, 1536)

    def merged(
        self,
        overrides: EmbeddingOptions | Mapping[str, Any] | None,
    ) -> EmbeddingOptions:
        """Return a new value where call-site *overrides* win over these defaults."""
        if overrides is None:
            return self
        return EmbeddingOptions(**_merge(self, overrides))
