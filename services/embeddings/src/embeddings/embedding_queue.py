"""
Embedding queue for AdLex.

Regenerates embedding vectors for one organization's dictionary at a
time. Each batch becomes an :class:`EmbeddingJob` whose counters
(``processed``, ``success``, ``failure``) advance as phrases finish.

Job rules:

* Enqueueing an organization cancels its unfinished jobs first.
* Phrases are embedded with a small fan-out (``max_concurrent`` at once).
  Each phrase retries transient errors with backoff; a phrase that still
  fails is recorded in ``failures`` and the batch carries on.
* The job ends ``completed`` once every phrase has been processed, even
  if some of them failed. It ends ``failed`` only when the job itself
  crashes.
* A cancelled job stops dispatching phrases; those already in flight
  finish.
* Finished jobs stay queryable for ``retention_s`` seconds.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Awaitable, Callable, Sequence
from datetime import datetime, timedelta

import structlog

from adlex_common.config import get_settings
from adlex_common.domain.dictionary_aggregate import DictionaryAggregate
from adlex_common.domain.events import EventPublisher
from adlex_common.domain.value_objects import EmbeddingVector
from adlex_common.metrics import EMBEDDINGS_FAILED, EMBEDDINGS_GENERATED
from adlex_common.models.dictionary import DictionaryItem
from adlex_common.models.embedding_job import EmbeddingFailure, EmbeddingJob, EmbeddingJobStatus
from adlex_common.ports import DictionaryStore, Embedder
from adlex_common.scheduling import LoopScheduler, Scheduler, TimerHandle, utc_now

from embeddings.retry import embedding_retrying

logger = structlog.get_logger()

# Per-phrase estimate used before any phrase has finished.
INITIAL_ITEM_ESTIMATE_S = 1.0
# Weight of the newest sample in the moving average.
ESTIMATE_SMOOTHING = 0.3

SYSTEM_ERROR_PHRASE = "System Error"


class EmbeddingQueue:
    """Organization-scoped batch runner for dictionary embeddings.

    Args:
        dictionary_store: Source of phrases and sink for vectors.
        embedder: Embedding generator.
        publisher: Receives the dictionary aggregates' events.
        max_concurrent: Parallel embedding calls per job.
        max_retries: Retries per phrase on retryable errors.
        retention_s: Seconds a finished job stays queryable.
        scheduler: Runs retention timers. Defaults to the asyncio loop.
        clock: Source of timestamps.
        sleep: Awaitable sleep used for retry backoff.
    """

    def __init__(
        self,
        dictionary_store: DictionaryStore,
        embedder: Embedder,
        publisher: EventPublisher,
        *,
        max_concurrent: int | None = None,
        max_retries: int | None = None,
        retention_s: float | None = None,
        scheduler: Scheduler | None = None,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        settings = get_settings()
        self._store = dictionary_store
        self._embedder = embedder
        self._publisher = publisher
        self._max_concurrent = max_concurrent or settings.embedding_max_concurrent
        self._max_retries = settings.embedding_max_retries if max_retries is None else max_retries
        self._retention_s = retention_s or settings.embedding_job_retention_s
        self._scheduler = scheduler or LoopScheduler()
        self._clock = clock
        self._sleep = sleep

        self._jobs: dict[str, EmbeddingJob] = {}
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._cleanups: dict[str, TimerHandle] = {}
        self._average_item_s = INITIAL_ITEM_ESTIMATE_S

    # ── public API ──

    async def enqueue_organization(
        self,
        organization_id: int,
        dictionary_ids: Sequence[int] | None = None,
    ) -> EmbeddingJob:
        """Start a job for every phrase of the organization lacking a vector.

        Args:
            organization_id: Organization whose dictionary is processed.
            dictionary_ids: Restrict the batch to these items.

        Returns:
            A snapshot of the new job.
        """
        self._cancel_organization_jobs(organization_id)
        items = await self._store.list_dictionary_items(
            organization_id, missing_vector_only=True, ids=dictionary_ids
        )
        now = self._clock()
        job = EmbeddingJob(
            id=self._new_job_id(now),
            organization_id=organization_id,
            total=len(items),
            started_at=now,
        )
        self._jobs[job.id] = job
        log = logger.bind(job_id=job.id, organization_id=organization_id)

        if not items:
            job.status = EmbeddingJobStatus.COMPLETED
            job.completed_at = now
            self._schedule_cleanup(job.id)
            log.info("embedding_job_empty")
            return job.model_copy(deep=True)

        task = asyncio.get_running_loop().create_task(
            self._run_job(job, items), name=f"embedding-job-{job.id}"
        )
        self._tasks[job.id] = task
        task.add_done_callback(lambda _t, job_id=job.id: self._tasks.pop(job_id, None))
        log.info("embedding_job_enqueued", total=job.total)
        return job.model_copy(deep=True)

    def get_job(self, job_id: str) -> EmbeddingJob | None:
        """Return a snapshot of the job, or ``None`` if unknown or expired."""
        job = self._jobs.get(job_id)
        return job.model_copy(deep=True) if job is not None else None

    def list_jobs(self, organization_id: int | None = None) -> list[EmbeddingJob]:
        return [
            job.model_copy(deep=True)
            for job in self._jobs.values()
            if organization_id is None or job.organization_id == organization_id
        ]

    def cancel_job(self, job_id: str) -> bool:
        """Cancel an unfinished job.

        Returns:
            ``False`` if the job is unknown or already finished.
        """
        job = self._jobs.get(job_id)
        if job is None or not job.status.is_active:
            return False
        job.status = EmbeddingJobStatus.CANCELLED
        job.completed_at = self._clock()
        job.estimated_completion_at = None
        self._schedule_cleanup(job_id)
        logger.info("embedding_job_cancelled", job_id=job_id, processed=job.processed, total=job.total)
        return True

    async def wait_job(self, job_id: str) -> EmbeddingJob | None:
        """Wait for the job's runner to exit and return its final snapshot."""
        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.shield(task)
        return self.get_job(job_id)

    @property
    def average_item_seconds(self) -> float:
        return self._average_item_s

    # ── job runner ──

    async def _run_job(self, job: EmbeddingJob, items: list[DictionaryItem]) -> None:
        log = logger.bind(job_id=job.id, organization_id=job.organization_id)
        if job.status == EmbeddingJobStatus.QUEUED:
            job.status = EmbeddingJobStatus.PROCESSING
            job.processing_started_at = self._clock()
            self._update_estimate(job)
        semaphore = asyncio.Semaphore(self._max_concurrent)
        try:
            await asyncio.gather(*(self._process_item(job, item, semaphore) for item in items))
        except Exception as exc:
            self._mark_job_failed(job, exc)
            return

        if job.status != EmbeddingJobStatus.PROCESSING:
            log.info("embedding_job_stopped", status=job.status.value, processed=job.processed)
            return
        job.status = EmbeddingJobStatus.COMPLETED
        job.completed_at = self._clock()
        job.estimated_completion_at = None
        self._schedule_cleanup(job.id)
        log.info(
            "embedding_job_completed",
            total=job.total,
            success=job.success,
            failure=job.failure,
        )

    async def _process_item(
        self,
        job: EmbeddingJob,
        item: DictionaryItem,
        semaphore: asyncio.Semaphore,
    ) -> None:
        async with semaphore:
            if job.status != EmbeddingJobStatus.PROCESSING:
                return
            started = self._clock()
            aggregate = DictionaryAggregate.from_item(item, clock=self._clock)
            aggregate.start_vector_generation()
            attempts = 0
            try:
                async for attempt in embedding_retrying(self._max_retries, self._sleep):
                    with attempt:
                        attempts = attempt.retry_state.attempt_number
                        vector = EmbeddingVector(await self._embedder.embed(item.phrase))
                        await self._store.store_vector(item.id, vector.to_list())
            except Exception as exc:
                aggregate.fail_vector_generation(str(exc))
                job.failure += 1
                job.failures.append(
                    EmbeddingFailure(
                        dictionary_id=item.id,
                        phrase=item.phrase,
                        error=str(exc),
                        retry_count=max(attempts - 1, 0),
                    )
                )
                EMBEDDINGS_FAILED.inc()
                logger.warning(
                    "embedding_phrase_failed",
                    job_id=job.id,
                    dictionary_id=item.id,
                    attempts=attempts,
                    error=str(exc),
                )
            else:
                aggregate.set_vector(vector)
                job.success += 1
                EMBEDDINGS_GENERATED.inc()
            job.processed += 1
            self._record_duration((self._clock() - started).total_seconds())
            self._update_estimate(job)
            await self._publisher.publish_all(aggregate.pull_events())

    def _mark_job_failed(self, job: EmbeddingJob, exc: Exception) -> None:
        job.status = EmbeddingJobStatus.FAILED
        job.completed_at = self._clock()
        job.estimated_completion_at = None
        if not job.failures:
            job.failures.append(
                EmbeddingFailure(dictionary_id=0, phrase=SYSTEM_ERROR_PHRASE, error=str(exc))
            )
        self._schedule_cleanup(job.id)
        logger.error(
            "embedding_job_failed",
            job_id=job.id,
            organization_id=job.organization_id,
            processed=job.processed,
            error=str(exc),
        )

    # ── helpers ──

    def _cancel_organization_jobs(self, organization_id: int) -> None:
        for job in list(self._jobs.values()):
            if job.organization_id == organization_id and job.status.is_active:
                self.cancel_job(job.id)

    def _record_duration(self, seconds: float) -> None:
        self._average_item_s = (
            (1 - ESTIMATE_SMOOTHING) * self._average_item_s + ESTIMATE_SMOOTHING * max(seconds, 0.0)
        )

    def _update_estimate(self, job: EmbeddingJob) -> None:
        remaining = job.total - job.processed
        job.estimated_completion_at = self._clock() + timedelta(
            seconds=remaining * self._average_item_s
        )

    def _schedule_cleanup(self, job_id: str) -> None:
        previous = self._cleanups.pop(job_id, None)
        if previous is not None:
            previous.cancel()
        self._cleanups[job_id] = self._scheduler.call_later(self._retention_s, self._forget, job_id)

    def _forget(self, job_id: str) -> None:
        self._cleanups.pop(job_id, None)
        if self._jobs.pop(job_id, None) is not None:
            logger.debug("embedding_job_expired", job_id=job_id)

    @staticmethod
    def _new_job_id(now: datetime) -> str:
        return f"{int(now.timestamp() * 1000)}-{uuid.uuid4().hex[:6]}"
