"""
Check queue manager for AdLex.

In-process priority queue with a bounded pool of worker slots. Each
dispatched check runs the injected processor in its own asyncio task;
a failed attempt is retried with exponential backoff (2s, 4s) and after
the retry budget is spent the check is marked ``failed`` through the
status store.

Scheduling model:

* ``high`` priority and retried items go to the front of the pending
  deque, everything else to the back.
* ``_dispatch`` fills free slots from the front. It never blocks: when
  all slots are busy it returns, and the next task completion calls it
  again.
* The queue lives in memory only. Queued and in-flight work is lost on
  restart, and a dispatched check cannot be interrupted.
"""

from __future__ import annotations

import asyncio
import itertools
from collections import deque
from collections.abc import Callable
from datetime import datetime

import structlog
from pydantic import BaseModel, Field

from adlex_common.config import get_settings
from adlex_common.metrics import (
    CHECK_RETRIES,
    CHECKS_COMPLETED,
    CHECKS_ENQUEUED,
    CHECKS_FAILED,
    QUEUE_IN_FLIGHT,
    QUEUE_PENDING,
)
from adlex_common.models.check import CheckStatus, CheckStatusUpdate, InputType
from adlex_common.models.queue import Priority, QueueItem
from adlex_common.ports import CheckProcessor, CheckStatusStore
from adlex_common.scheduling import LoopScheduler, Scheduler, TimerHandle, utc_now

logger = structlog.get_logger()

MAX_BACKOFF_S = 30.0
PROMOTE_AFTER_RETRIES = 2


def backoff_delay(retry_count: int) -> float:
    """Seconds to wait before retry number *retry_count* (1-based)."""
    return min(2.0**retry_count, MAX_BACKOFF_S)


class QueueStatus(BaseModel):
    """Point-in-time view of the queue.

    Attributes:
        pending_count: Items waiting for a slot.
        in_flight_count: Items being processed.
        max_concurrent: Number of worker slots.
        scheduled_retries: Failed items waiting out their backoff.
    """

    pending_count: int = Field(..., ge=0)
    in_flight_count: int = Field(..., ge=0)
    max_concurrent: int = Field(..., ge=1)
    scheduled_retries: int = Field(default=0, ge=0)


class CheckQueueManager:
    """Priority queue plus bounded worker pool for check processing.

    Args:
        processor: Coroutine function that runs one check; raising marks
            the attempt as failed.
        status_store: Receives the terminal ``failed`` write once retries
            are exhausted.
        max_concurrent: Worker slots. Defaults to the
            ``queue_max_concurrent`` setting.
        scheduler: Runs backoff timers. Defaults to the asyncio loop.
        clock: Source of completion timestamps.
    """

    def __init__(
        self,
        processor: CheckProcessor,
        status_store: CheckStatusStore,
        *,
        max_concurrent: int | None = None,
        scheduler: Scheduler | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        if max_concurrent is None:
            max_concurrent = get_settings().queue_max_concurrent
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be >= 1")

        self._processor = processor
        self._status_store = status_store
        self._max_concurrent = max_concurrent
        self._scheduler = scheduler or LoopScheduler()
        self._clock = clock

        self._pending: deque[QueueItem] = deque()
        self._in_flight: dict[asyncio.Task[None], QueueItem] = {}
        # Strong references until completion, including tasks dropped by clear().
        self._tasks: set[asyncio.Task[None]] = set()
        self._retries: dict[int, TimerHandle] = {}
        self._retry_seq = itertools.count(1)
        self._running = False
        # Bumped by clear(); outcomes of tasks from an older generation are ignored.
        self._generation = 0
        self._idle = asyncio.Event()
        self._idle.set()

    # ── public API ──

    @property
    def max_concurrent(self) -> int:
        return self._max_concurrent

    def enqueue(
        self,
        check_id: int,
        text: str,
        organization_id: int,
        priority: Priority | str = Priority.NORMAL,
        input_type: InputType | str = InputType.TEXT,
        image_ref: str | None = None,
    ) -> QueueItem:
        """Queue a check and start it right away if a slot is free.

        Must be called from within a running event loop.

        Returns:
            The queued :class:`QueueItem`.
        """
        asyncio.get_running_loop()
        item = QueueItem(
            id=check_id,
            text=text,
            organization_id=organization_id,
            priority=Priority(priority),
            input_type=InputType(input_type),
            image_ref=image_ref,
        )
        if item.priority == Priority.HIGH:
            self._pending.appendleft(item)
        else:
            self._pending.append(item)
        self._idle.clear()

        CHECKS_ENQUEUED.labels(priority=item.priority.value).inc()
        logger.info(
            "check_enqueued",
            check_id=check_id,
            organization_id=organization_id,
            priority=item.priority.value,
            pending=len(self._pending),
        )
        self._dispatch()
        return item

    def get_status(self) -> QueueStatus:
        return QueueStatus(
            pending_count=len(self._pending),
            in_flight_count=len(self._in_flight),
            max_concurrent=self._max_concurrent,
            scheduled_retries=len(self._retries),
        )

    @property
    def pending_items(self) -> list[QueueItem]:
        """Items waiting for a slot, front first."""
        return list(self._pending)

    @property
    def pending_ids(self) -> list[int]:
        return [item.id for item in self._pending]

    @property
    def in_flight_ids(self) -> list[int]:
        return [item.id for item in self._in_flight.values()]

    def clear(self) -> None:
        """Drop pending work, forget in-flight work and cancel retry timers.

        Tasks already running are not interrupted, but a failure they hit
        afterwards is neither retried nor written as a terminal failure.
        """
        for handle in self._retries.values():
            handle.cancel()
        dropped = len(self._pending) + len(self._retries)
        self._retries.clear()
        self._pending.clear()
        self._in_flight.clear()
        self._running = False
        self._generation += 1
        self._update_gauges()
        self._idle.set()
        logger.info("check_queue_cleared", dropped=dropped)

    async def wait_idle(self) -> None:
        """Wait until nothing is pending, in flight or awaiting a retry."""
        while not self._is_idle():
            self._idle.clear()
            await self._idle.wait()

    # ── dispatch ──

    def _dispatch(self) -> None:
        if self._running:
            return
        self._running = True
        try:
            loop = asyncio.get_running_loop()
            while self._pending and len(self._in_flight) < self._max_concurrent:
                item = self._pending.popleft()
                task = loop.create_task(self._process(item, self._generation), name=f"check-{item.id}")
                self._in_flight[task] = item
                self._tasks.add(task)
                task.add_done_callback(self._on_task_done)
                logger.debug(
                    "check_dispatched",
                    check_id=item.id,
                    retry_count=item.retry_count,
                    in_flight=len(self._in_flight),
                )
        finally:
            self._running = False
            self._update_gauges()

    def _on_task_done(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        self._in_flight.pop(task, None)
        if not task.cancelled() and task.exception() is not None:
            logger.error("check_task_crashed", task=task.get_name(), error=str(task.exception()))
        self._dispatch()
        if self._is_idle():
            self._idle.set()

    # ── processing ──

    async def _process(self, item: QueueItem, generation: int) -> None:
        log = logger.bind(check_id=item.id, attempt=item.retry_count + 1)
        try:
            await self._processor(
                item.id,
                item.text,
                item.organization_id,
                item.input_type,
                item.image_ref,
            )
        except Exception as exc:
            if generation != self._generation:
                log.info("cleared_check_failed", error=str(exc))
                return
            if item.can_retry:
                self._schedule_retry(item, exc)
            else:
                await self._mark_failed(item, exc)
        else:
            CHECKS_COMPLETED.inc()
            log.info("check_processed")

    def _schedule_retry(self, item: QueueItem, exc: Exception) -> None:
        retried = item.model_copy(update={"retry_count": item.retry_count + 1})
        delay = backoff_delay(retried.retry_count)
        token = next(self._retry_seq)
        self._retries[token] = self._scheduler.call_later(delay, self._requeue, token, retried)
        CHECK_RETRIES.inc()
        logger.warning(
            "check_retry_scheduled",
            check_id=item.id,
            retry_count=retried.retry_count,
            max_retries=retried.max_retries,
            delay_s=delay,
            error=str(exc),
        )

    def _requeue(self, token: int, item: QueueItem) -> None:
        if self._retries.pop(token, None) is None:
            return
        if item.retry_count >= PROMOTE_AFTER_RETRIES:
            item = item.model_copy(update={"priority": Priority.HIGH})
        self._pending.appendleft(item)
        logger.info(
            "check_requeued",
            check_id=item.id,
            retry_count=item.retry_count,
            priority=item.priority.value,
        )
        self._dispatch()

    async def _mark_failed(self, item: QueueItem, exc: Exception) -> None:
        message = f"Processing failed after {item.retry_count} retries: {exc}"
        CHECKS_FAILED.inc()
        logger.error(
            "check_failed_permanently",
            check_id=item.id,
            retry_count=item.retry_count,
            error=str(exc),
        )
        update = CheckStatusUpdate(
            status=CheckStatus.FAILED,
            error_message=message,
            completed_at=self._clock(),
        )
        try:
            await self._status_store.update_check_status(item.id, update)
        except Exception:
            logger.exception("check_failure_write_failed", check_id=item.id)

    # ── helpers ──

    def _is_idle(self) -> bool:
        return not (self._pending or self._in_flight or self._retries)

    def _update_gauges(self) -> None:
        QUEUE_PENDING.set(len(self._pending))
        QUEUE_IN_FLIGHT.set(len(self._in_flight))
