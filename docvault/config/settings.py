"""Application settings loaded from environment variables via pydantic-settings.

# ─── HOW SETTINGS WORK ────────────────────────────────────────────────
#
# pydantic-settings reads configuration from two sources (in priority
# order):
#
#   1. **Environment variables** -- e.g. OPENAI_API_KEY=sk-abc123
#   2. **.env file** -- key=value lines in the project root .env file
#
# Field ``embedding_provider`` maps to env var ``EMBEDDING_PROVIDER`` and
# so on.  Defaults apply when neither source sets a value.  The YAML
# layer in ``loader.py`` sits underneath both.
# ──────────────────────────────────────────────────────────────────────
"""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from docvault.models.options import ChunkingOptions, EmbeddingOptions


class Settings(BaseSettings):
    """docvault settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === Storage ===
    # One directory per application instance; holds documents/, the
    # SQLite database and the embedding backups.
    data_dir: str = "./data"
    sqlite_busy_timeout_ms: int = Field(default=5000, ge=0)
    write_embedding_backups: bool = True

    # === Embedding provider ===
    embedding_provider: Literal["openai", "ollama"] = "openai"
    embedding_model: str = ""  # Empty = provider default
    embedding_dimensions: int = Field(default=0, ge=0)  # 0 = model default
    openai_api_key: str = ""
    openai_base_url: str = ""  # OpenAI-compatible hosts (TogetherAI, Azure proxies, ...)
    ollama_base_url: str = "http://localhost:11434"
    embedding_timeout_seconds: float = Field(default=30.0, gt=0)
    embedding_max_concurrency: int = Field(default=4, ge=1)

    # === Ingestion ===
    ingestion_workers: int = Field(default=4, ge=1)
    chunk_max_size: int = Field(default=2000, gt=0)
    chunk_overlap: int = Field(default=200, ge=0)

    # === Search ===
    search_default_limit: int = Field(default=5, ge=1)
    vector_distance_metric: Literal["l2", "cosine"] = "l2"

    # === App Config ===
    app_env: str = "development"
    log_level: str = "INFO"

    @property
    def documents_dir(self) -> Path:
        return Path(self.data_dir) / "documents"

    @property
    def database_path(self) -> Path:
        return self.documents_dir / "documents.db"

    @property
    def embeddings_dir(self) -> Path:
        return self.documents_dir / "embeddings"

    def embedding_options(self) -> EmbeddingOptions:
        """Build the default :class:`EmbeddingOptions` for the configured provider."""
        if self.embedding_provider == "openai":
            api_key = self.openai_api_key or None
            base_url = self.openai_base_url or None
        else:
            api_key = None
            base_url = self.ollama_base_url or None
        return EmbeddingOptions(
            provider=self.embedding_provider,
            model=self.embedding_model or None,
            dimensions=self.embedding_dimensions or None,
            api_key=api_key,
            base_url=base_url,
            timeout_seconds=self.embedding_timeout_seconds,
        )

    def chunking_options(self) -> ChunkingOptions:
        """Build the default :class:`ChunkingOptions`; validates overlap < size."""
        return ChunkingOptions(
            max_chunk_size=self.chunk_max_size,
            overlap=self.chunk_overlap,
        )
