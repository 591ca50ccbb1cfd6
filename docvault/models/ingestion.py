"""Ingestion job and result models.

A job snapshot (:class:`IngestionJob`) is what the ingestion queue exposes
to callers who want to observe background work: it is replaced, never
mutated, as the job moves QUEUED → RUNNING → one terminal status.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field


class JobStatus(str, Enum):  # noqa: UP042
    """Status of one background ingestion job."""

    QUEUED = "QUEUED"
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"  # Chunks and embeddings committed
    EMPTY = "EMPTY"          # No extractable text; zero chunks recorded
    FAILED = "FAILED"        # Extraction, chunking, embedding or storage error
    ABANDONED = "ABANDONED"  # Document was deleted while the job was in flight

    @property
    def is_terminal(self) -> bool:
        return self not in (JobStatus.QUEUED, JobStatus.RUNNING)


class IngestionJob(BaseModel):
    """Point-in-time snapshot of a background ingestion job."""

    model_config = ConfigDict(frozen=True)

    job_id: str
    document_id: str
    status: JobStatus = JobStatus.QUEUED
    chunk_count: int = Field(default=0, ge=0)
    error: str | None = None
    enqueued_at: datetime = Field(
        default_factory=lambda: datetime.now(tz=timezone.utc)  # noqa: UP017
    )
    started_at: datetime | None = None
    finished_at: datetime | None = None


class IngestionResult(BaseModel):
    """Summary of one completed pipeline run for a document."""

    model_config = ConfigDict(frozen=True)

    document_id: str
    characters: int = Field(default=0, ge=0, description="Length of the extracted text.")
    chunk_count: int = Field(default=0, ge=0)
    embedded_count: int = Field(default=0, ge=0)
    backup_path: Path | None = Field(
        default=None,
        description="Human-readable embedding backup, if one was written.",
    )
    elapsed_seconds: float = Field(default=0.0, ge=0.0)
