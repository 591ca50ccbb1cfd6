"""Background ingestion job queue with a bounded worker pool.

Uploads return as soon as the document row exists; the heavy work
(extract, chunk, embed, store) runs here, off the request path.

# ─── HOW THE QUEUE WORKS ──────────────────────────────────────────────
#
#   submit()  →  IngestionJob(QUEUED) snapshot returned immediately
#             →  asyncio.Queue
#             →  one of N worker tasks picks the job up (RUNNING)
#             →  IngestionPipeline.run(...)
#             →  terminal snapshot: SUCCEEDED | EMPTY | FAILED | ABANDONED
#             →  completion event set, listeners notified
#
# Workers are the error boundary for background work: whatever a job
# raises is logged and recorded on its snapshot, and the worker moves on
# to the next job.  One poisoned document never affects another.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import asyncio
import inspect
import uuid
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import structlog

from docvault.models.ingestion import IngestionJob, JobStatus
from docvault.models.options import ChunkingOptions, EmbeddingOptions
from docvault.services.ingestion.ingestion_pipeline import IngestionPipeline
from docvault.utils.errors import NotFoundError
from docvault.utils.logging import ingestion_log_context

logger = structlog.get_logger(logger_name=__name__)

JobListener = Callable[[IngestionJob], "Awaitable[None] | None"]


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)  # noqa: UP017


@dataclass
class _PendingJob:
    """Work item carried through the queue; holds the raw bytes until run."""

    job_id: str
    document_id: str
    data: bytes
    mime_type: str
    chunking: ChunkingOptions | Mapping[str, Any] | None = None
    embedding: EmbeddingOptions | Mapping[str, Any] | None = None
    done: asyncio.Event = field(default_factory=asyncio.Event)
    final: IngestionJob | None = None


class IngestionQueue:
    """Runs :class:`IngestionPipeline` jobs on a fixed pool of worker tasks.

    Parameters
    ----------
    pipeline:
        The per-document pipeline every job runs.
    workers:
        Number of concurrent worker tasks (>= 1).
    """

    def __init__(self, pipeline: IngestionPipeline, workers: int = 4) -> None:
        if workers < 1:
            msg = f"workers must be >= 1, got {workers}"
            raise ValueError(msg)
        self._pipeline = pipeline
        self._worker_count = workers
        self._queue: asyncio.Queue[_PendingJob] = asyncio.Queue()
        self._workers: list[asyncio.Task[None]] = []
        self._jobs: dict[str, IngestionJob] = {}
        self._pending: dict[str, _PendingJob] = {}
        self._latest_by_document: dict[str, str] = {}
        self._forget_on_finish: set[str] = set()
        self._listeners: list[JobListener] = []

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return any(not task.done() for task in self._workers)

    def start(self) -> None:
        """Spawn the worker tasks; a no-op if they are already running."""
        if self.is_running:
            return
        self._workers = [
            asyncio.create_task(self._worker(i), name=f"docvault-ingestion-{i}")
            for i in range(self._worker_count)
        ]
        logger.info("ingestion_queue_started", workers=self._worker_count)

    async def stop(self, drain: bool = False) -> None:
        """Stop the workers.

        With ``drain=True`` queued jobs are finished first; otherwise jobs
        still waiting in the queue are marked ABANDONED.
        """
        if drain and self.is_running:
            await self._queue.join()

        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []

        abandoned = 0
        while not self._queue.empty():
            pending = self._queue.get_nowait()
            await self._finish(
                pending,
                status=JobStatus.ABANDONED,
                error="ingestion queue stopped before the job ran",
            )
            self._queue.task_done()
            abandoned += 1
        logger.info("ingestion_queue_stopped", abandoned=abandoned)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def submit(
        self,
        document_id: str,
        data: bytes,
        mime_type: str,
        chunking: ChunkingOptions | Mapping[str, Any] | None = None,
        embedding: EmbeddingOptions | Mapping[str, Any] | None = None,
    ) -> IngestionJob:
        """Enqueue a pipeline run for *document_id* and return its QUEUED snapshot."""
        self.start()

        pending = _PendingJob(
            job_id=str(uuid.uuid4()),
            document_id=document_id,
            data=data,
            mime_type=mime_type,
            chunking=chunking,
            embedding=embedding,
        )
        job = IngestionJob(job_id=pending.job_id, document_id=document_id)

        # Only the newest job per document is kept once the older one is done.
        previous = self._latest_by_document.get(document_id)
        if previous is not None and self._jobs[previous].status.is_terminal:
            self._drop(previous)

        self._forget_on_finish.discard(document_id)
        self._jobs[job.job_id] = job
        self._pending[job.job_id] = pending
        self._latest_by_document[document_id] = job.job_id
        self._queue.put_nowait(pending)

        logger.info(
            "ingestion_job_queued",
            job_id=job.job_id,
            document_id=document_id,
            queue_size=self._queue.qsize(),
        )
        return job

    def get_job(self, document_id: str) -> IngestionJob | None:
        """Return the latest job snapshot for *document_id*, if any."""
        job_id = self._latest_by_document.get(document_id)
        return self._jobs.get(job_id) if job_id else None

    def get_job_by_id(self, job_id: str) -> IngestionJob | None:
        return self._jobs.get(job_id)

    async def wait_for(self, document_id: str, timeout: float | None = None) -> IngestionJob:
        """Wait until the latest job for *document_id* is terminal.

        Raises
        ------
        NotFoundError
            If no job was ever submitted for the document.
        asyncio.TimeoutError
            If the job does not finish within *timeout* seconds.
        """
        job_id = self._latest_by_document.get(document_id)
        if job_id is None:
            raise NotFoundError(
                message=f"No ingestion job for document {document_id}",
                provider_name="ingestion_queue",
            )
        pending = self._pending[job_id]
        await asyncio.wait_for(pending.done.wait(), timeout=timeout)
        return pending.final or self._jobs[job_id]

    def forget(self, document_id: str) -> None:
        """Drop the job history of a deleted document.

        A job still queued or running keeps its entry until it reaches a
        terminal status, so callers already waiting on it still see the
        outcome.
        """
        job_id = self._latest_by_document.get(document_id)
        if job_id is None:
            return
        if self._jobs[job_id].status.is_terminal:
            self._latest_by_document.pop(document_id, None)
            self._drop(job_id)
        else:
            self._forget_on_finish.add(document_id)

    async def join(self) -> None:
        """Wait until every submitted job has been processed."""
        await self._queue.join()

    def register_listener(self, callback: JobListener) -> None:
        """Call *callback* with each terminal job snapshot (sync or async)."""
        self._listeners.append(callback)

    @property
    def pending_count(self) -> int:
        return self._queue.qsize()

    # ------------------------------------------------------------------
    # Workers
    # ------------------------------------------------------------------

    async def _worker(self, worker_id: int) -> None:
        while True:
            pending = await self._queue.get()
            try:
                with ingestion_log_context(pending.job_id, pending.document_id):
                    await self._process(pending, worker_id)
            finally:
                self._queue.task_done()

    async def _process(self, pending: _PendingJob, worker_id: int) -> None:
        self._replace(pending.job_id, status=JobStatus.RUNNING, started_at=_now())
        logger.info(
            "ingestion_job_started",
            job_id=pending.job_id,
            document_id=pending.document_id,
            worker=worker_id,
        )

        try:
            result = await self._pipeline.run(
                pending.document_id,
                pending.data,
                pending.mime_type,
                chunking=pending.chunking,
                embedding=pending.embedding,
            )
        except asyncio.CancelledError:
            await self._finish(pending, status=JobStatus.ABANDONED, error="cancelled")
            raise
        except NotFoundError as exc:
            logger.info(
                "ingestion_job_abandoned",
                job_id=pending.job_id,
                document_id=pending.document_id,
                reason=str(exc),
            )
            await self._finish(pending, status=JobStatus.ABANDONED, error=str(exc))
        except Exception as exc:
            logger.error(
                "ingestion_job_failed",
                job_id=pending.job_id,
                document_id=pending.document_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            await self._finish(pending, status=JobStatus.FAILED, error=str(exc))
        else:
            status = JobStatus.SUCCEEDED if result.chunk_count else JobStatus.EMPTY
            logger.info(
                "ingestion_job_finished",
                job_id=pending.job_id,
                document_id=pending.document_id,
                status=status.value,
                chunk_count=result.chunk_count,
                elapsed_seconds=round(result.elapsed_seconds, 3),
            )
            await self._finish(pending, status=status, chunk_count=result.chunk_count)

    async def _finish(self, pending: _PendingJob, **changes: Any) -> None:
        job = self._replace(pending.job_id, finished_at=_now(), **changes)
        pending.data = b""
        pending.final = job
        pending.done.set()
        self._prune_finished(job)
        for callback in list(self._listeners):
            try:
                outcome = callback(job)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as exc:
                logger.warning(
                    "ingestion_listener_failed",
                    job_id=job.job_id,
                    error=str(exc),
                )

    def _replace(self, job_id: str, **changes: Any) -> IngestionJob:
        job = self._jobs[job_id].model_copy(update=changes)
        self._jobs[job_id] = job
        return job

    def _prune_finished(self, job: IngestionJob) -> None:
        latest = self._latest_by_document.get(job.document_id)
        if latest != job.job_id:
            # Superseded while running; the newer job is the one reported.
            self._drop(job.job_id)
        elif job.document_id in self._forget_on_finish:
            self._forget_on_finish.discard(job.document_id)
            self._latest_by_document.pop(job.document_id, None)
            self._drop(job.job_id)

    def _drop(self, job_id: str) -> None:
        self._jobs.pop(job_id, None)
        self._pending.pop(job_id, None)
