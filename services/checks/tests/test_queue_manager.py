"""
Tests for the check queue manager.

Covers priority ordering, the concurrency cap, retry backoff with
priority promotion, permanent failure writes, status reporting and
clearing. Backoff timers run on a manual scheduler so no test waits on
the wall clock.
"""

from __future__ import annotations

import asyncio

import pytest

from adlex_common.config import get_settings
from adlex_common.models.check import CheckStatus
from adlex_common.models.dictionary import DictionaryCategory, DictionaryItem
from adlex_common.models.queue import Priority
from adlex_common.storage.rest_store import StorageError

from checks.queue_manager import backoff_delay
from detection.violation_detector import MatchType, ViolationDetector


async def drain() -> None:
    """Let every ready task run to its next suspension point."""
    for _ in range(10):
        await asyncio.sleep(0)


# ===========================================================================
# Construction
# ===========================================================================


class TestConstruction:

    def test_max_concurrent_defaults_to_settings(self, make_manager) -> None:
        manager = make_manager(max_concurrent=None)
        assert manager.max_concurrent == get_settings().queue_max_concurrent

    def test_explicit_max_concurrent_wins(self, make_manager) -> None:
        assert make_manager(max_concurrent=5).max_concurrent == 5

    def test_zero_slots_rejected(self, make_manager) -> None:
        with pytest.raises(ValueError):
            make_manager(max_concurrent=0)

    def test_enqueue_requires_running_loop(self, make_manager) -> None:
        manager = make_manager()
        with pytest.raises(RuntimeError):
            manager.enqueue(1, "text", 1)
        assert manager.get_status().pending_count == 0

    @pytest.mark.parametrize(("retry", "delay"), [(1, 2.0), (2, 4.0), (3, 8.0), (5, 30.0), (9, 30.0)])
    def test_backoff_delay(self, retry: int, delay: float) -> None:
        assert backoff_delay(retry) == delay


# ===========================================================================
# Ordering and concurrency
# ===========================================================================


class TestDispatch:

    async def test_enqueue_starts_immediately(self, make_manager, processor) -> None:
        processor.hold(1)
        manager = make_manager(max_concurrent=2)
        item = manager.enqueue(1, "text", 10)

        assert item.retry_count == 0
        assert item.max_retries == 2
        status = manager.get_status()
        assert status.in_flight_count == 1
        assert status.pending_count == 0

    async def test_two_high_three_normal(self, make_manager, processor) -> None:
        for cid in range(1, 6):
            processor.hold(cid)
        manager = make_manager(max_concurrent=2)

        manager.enqueue(1, "a", 1, priority="high")
        manager.enqueue(2, "b", 1, priority="high")
        for cid in (3, 4, 5):
            manager.enqueue(cid, "c", 1, priority="normal")

        status = manager.get_status()
        assert status.in_flight_count == 2
        assert sorted(manager.in_flight_ids) == [1, 2]
        assert manager.pending_ids == [3, 4, 5]

        for gate in processor.gates.values():
            gate.set()
        await manager.wait_idle()
        assert sorted(processor.completed) == [1, 2, 3, 4, 5]

    async def test_high_priority_jumps_the_queue(self, make_manager, processor) -> None:
        processor.hold(1)
        manager = make_manager(max_concurrent=1)
        manager.enqueue(1, "busy", 1)
        manager.enqueue(2, "normal", 1)
        manager.enqueue(3, "low", 1, priority=Priority.LOW)
        manager.enqueue(4, "urgent", 1, priority=Priority.HIGH)

        assert manager.pending_ids == [4, 2, 3]

        processor.gates[1].set()
        await manager.wait_idle()
        assert processor.calls == [1, 4, 2, 3]

    @pytest.mark.parametrize("max_concurrent", [1, 2, 3])
    async def test_in_flight_never_exceeds_cap(self, make_manager, processor, max_concurrent: int) -> None:
        manager = make_manager(max_concurrent=max_concurrent)
        for cid in range(7):
            manager.enqueue(cid, "text", 1)
            assert manager.get_status().in_flight_count <= max_concurrent

        await manager.wait_idle()

        assert processor.max_active == max_concurrent
        assert sorted(processor.completed) == list(range(7))
        assert manager.get_status().in_flight_count == 0

    async def test_pending_drains_after_processing(self, make_manager, processor) -> None:
        detector = ViolationDetector()
        detector.load_dictionary([
            DictionaryItem(id=1, phrase="治る", category=DictionaryCategory.NG, organization_id=10),
        ])
        findings: dict[int, list] = {}

        async def detect(check_id, text, organization_id, input_type, image_ref) -> None:
            await processor(check_id, text, organization_id, input_type, image_ref)
            findings[check_id] = detector.detect(text)

        processor.hold(0)
        manager = make_manager(max_concurrent=1, processor=detect)
        manager.enqueue(0, "先行ジョブ", 10)
        manager.enqueue(1, "このサプリは絶対に治る", 10, priority="normal")
        assert manager.get_status().pending_count == 1

        processor.gates[0].set()
        await manager.wait_idle()

        assert manager.get_status().pending_count == 0
        (candidate,) = findings[1]
        assert (candidate.range.start, candidate.range.end) == (9, 11)
        assert candidate.match_type == MatchType.EXACT
        assert candidate.confidence == 1.0


# ===========================================================================
# Retry and failure
# ===========================================================================


class TestRetry:

    async def test_failed_attempt_is_retried_after_two_seconds(
        self, make_manager, processor, scheduler, status_store
    ) -> None:
        processor.fail_times[1] = 1
        manager = make_manager()
        manager.enqueue(1, "text", 1)
        await drain()

        assert scheduler.delays == [2.0]
        status = manager.get_status()
        assert status.scheduled_retries == 1
        assert status.in_flight_count == 0

        scheduler.fire_all()
        await manager.wait_idle()

        assert processor.calls == [1, 1]
        assert processor.completed == [1]
        status_store.update_check_status.assert_not_awaited()

    async def test_backoff_doubles_and_second_retry_is_promoted(
        self, make_manager, processor, scheduler
    ) -> None:
        processor.fail_times[1] = 2
        manager = make_manager(max_concurrent=1)

        manager.enqueue(1, "flaky", 1)
        await drain()
        assert scheduler.delays == [2.0]

        gate2 = processor.hold(2)
        manager.enqueue(2, "busy", 1)
        scheduler.fire_all()
        (first_retry,) = manager.pending_items
        assert first_retry.id == 1
        assert first_retry.retry_count == 1
        assert first_retry.priority == Priority.NORMAL

        gate2.set()
        await drain()
        assert scheduler.delays == [2.0, 4.0]

        gate3 = processor.hold(3)
        manager.enqueue(3, "busy", 1)
        manager.enqueue(4, "waiting", 1)
        scheduler.fire_all()
        assert manager.pending_ids == [1, 4]
        second_retry = manager.pending_items[0]
        assert second_retry.retry_count == 2
        assert second_retry.priority == Priority.HIGH

        gate3.set()
        await manager.wait_idle()
        assert processor.calls == [1, 2, 1, 3, 1, 4]
        assert 1 in processor.completed

    async def test_permanent_failure_after_two_retries(
        self, make_manager, processor, scheduler, status_store, clock
    ) -> None:
        processor.fail_times[1] = 99
        manager = make_manager()
        manager.enqueue(1, "always fails", 1)

        for _ in range(2):
            await drain()
            scheduler.fire_all()
        await manager.wait_idle()

        assert processor.calls == [1, 1, 1]
        assert scheduler.delays == [2.0, 4.0]
        status_store.update_check_status.assert_awaited_once()
        check_id, update = status_store.update_check_status.await_args.args
        assert check_id == 1
        assert update.status == CheckStatus.FAILED
        assert "2 retries" in update.error_message
        assert "LLM timeout" in update.error_message
        assert update.completed_at == clock()
        assert manager.get_status().scheduled_retries == 0

    async def test_failure_write_error_is_swallowed(
        self, make_manager, processor, scheduler, status_store
    ) -> None:
        status_store.update_check_status.side_effect = StorageError("down", 503)
        processor.fail_times[1] = 99
        manager = make_manager()
        manager.enqueue(1, "always fails", 1)

        for _ in range(2):
            await drain()
            scheduler.fire_all()
        await manager.wait_idle()

        status_store.update_check_status.assert_awaited_once()
        assert manager.get_status().in_flight_count == 0

    async def test_other_jobs_continue_while_one_retries(
        self, make_manager, processor, scheduler
    ) -> None:
        processor.fail_times[1] = 1
        manager = make_manager(max_concurrent=1)
        manager.enqueue(1, "flaky", 1)
        manager.enqueue(2, "fine", 1)
        await drain()

        assert processor.completed == [2]
        assert manager.get_status().scheduled_retries == 1
        scheduler.fire_all()
        await manager.wait_idle()
        assert processor.completed == [2, 1]


# ===========================================================================
# Status and clear
# ===========================================================================


class TestStatusAndClear:

    async def test_status_fields(self, make_manager) -> None:
        status = make_manager(max_concurrent=4).get_status()
        assert status.model_dump() == {
            "pending_count": 0,
            "in_flight_count": 0,
            "max_concurrent": 4,
            "scheduled_retries": 0,
        }

    async def test_clear_drops_everything(self, make_manager, processor, scheduler) -> None:
        processor.fail_times[1] = 1
        manager = make_manager(max_concurrent=1)
        manager.enqueue(1, "flaky", 1)
        await drain()
        gate2 = processor.hold(2)
        manager.enqueue(2, "busy", 1)
        manager.enqueue(3, "waiting", 1)

        status = manager.get_status()
        assert (status.pending_count, status.in_flight_count, status.scheduled_retries) == (1, 1, 1)

        manager.clear()

        status = manager.get_status()
        assert (status.pending_count, status.in_flight_count, status.scheduled_retries) == (0, 0, 0)
        assert all(t.cancelled for t in scheduler.timers)

        scheduler.fire_all()
        gate2.set()
        await drain()
        await manager.wait_idle()
        assert processor.calls == [1, 2]

    async def test_queue_usable_after_clear(self, make_manager, processor) -> None:
        manager = make_manager()
        manager.clear()
        manager.enqueue(5, "text", 1)
        await manager.wait_idle()
        assert processor.completed == [5]

    async def test_in_flight_failure_after_clear_is_not_retried(
        self, make_manager, processor, scheduler, status_store
    ) -> None:
        gate = processor.hold(1)
        processor.fail_times[1] = 1
        manager = make_manager(max_concurrent=1)
        manager.enqueue(1, "flaky", 1)
        await drain()

        manager.clear()
        gate.set()
        await drain()

        assert manager.get_status().scheduled_retries == 0
        assert scheduler.waiting == []
        scheduler.fire_all()
        await drain()
        assert processor.calls == [1]
        status_store.update_check_status.assert_not_awaited()

    async def test_exhausted_failure_after_clear_is_not_written(
        self, make_manager, processor, scheduler, status_store
    ) -> None:
        processor.fail_times[1] = 3
        manager = make_manager(max_concurrent=1)
        manager.enqueue(1, "flaky", 1)
        await drain()
        scheduler.fire_all()
        await drain()
        gate = processor.hold(1)
        scheduler.fire_all()
        await drain()
        assert processor.calls == [1, 1, 1]

        manager.clear()
        gate.set()
        await drain()
        status_store.update_check_status.assert_not_awaited()
