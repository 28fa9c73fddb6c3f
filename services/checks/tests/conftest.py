"""Shared fixtures for check service tests."""

from __future__ import annotations

import asyncio
import os
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any
from unittest.mock import AsyncMock

import pytest

# Set env vars before any adlex_common import.
os.environ.setdefault("ADLEX_QUEUE_MAX_CONCURRENT", "3")
os.environ.setdefault("ADLEX_STORAGE_URL", "http://storage.test")

from adlex_common.models.check import InputType  # noqa: E402

FIXED_NOW = datetime(2025, 1, 15, 9, 30, tzinfo=timezone.utc)


# ─── Fakes ───────────────────────────────────────────────────


class ManualTimer:
    """A scheduled callback that only runs when fired by the test."""

    def __init__(self, delay: float, callback: Callable[..., Any], args: tuple[Any, ...]) -> None:
        self.delay = delay
        self._callback = callback
        self._args = args
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        if self.cancelled or self.fired:
            return
        self.fired = True
        self._callback(*self._args)


class ManualScheduler:
    """Records ``call_later`` requests instead of waiting on the clock."""

    def __init__(self) -> None:
        self.timers: list[ManualTimer] = []

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> ManualTimer:
        timer = ManualTimer(delay, callback, args)
        self.timers.append(timer)
        return timer

    @property
    def delays(self) -> list[float]:
        return [t.delay for t in self.timers]

    @property
    def waiting(self) -> list[ManualTimer]:
        return [t for t in self.timers if not (t.fired or t.cancelled)]

    def fire_all(self) -> None:
        for timer in self.waiting:
            timer.fire()


class GatedProcessor:
    """Processor fake that can hold checks open and fail on demand.

    ``gates[check_id]`` holds a check until the event is set.
    ``fail_times[check_id]`` is the number of attempts that raise.
    """

    def __init__(self) -> None:
        self.calls: list[int] = []
        self.completed: list[int] = []
        self.gates: dict[int, asyncio.Event] = {}
        self.fail_times: dict[int, int] = {}
        self.active = 0
        self.max_active = 0

    def hold(self, check_id: int) -> asyncio.Event:
        self.gates[check_id] = asyncio.Event()
        return self.gates[check_id]

    async def __call__(
        self,
        check_id: int,
        text: str,
        organization_id: int,
        input_type: InputType,
        image_ref: str | None,
    ) -> None:
        self.calls.append(check_id)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            gate = self.gates.get(check_id)
            if gate is not None:
                await gate.wait()
            else:
                await asyncio.sleep(0)
            remaining = self.fail_times.get(check_id, 0)
            if remaining > 0:
                self.fail_times[check_id] = remaining - 1
                raise RuntimeError("LLM timeout")
            self.completed.append(check_id)
        finally:
            self.active -= 1


# ─── Fixtures ────────────────────────────────────────────────


@pytest.fixture()
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture()
def processor() -> GatedProcessor:
    return GatedProcessor()


@pytest.fixture()
def status_store() -> AsyncMock:
    """A mock CheckStatusStore."""
    store = AsyncMock()
    store.update_check_status = AsyncMock(return_value=None)
    return store


@pytest.fixture()
def clock() -> Callable[[], datetime]:
    return lambda: FIXED_NOW


@pytest.fixture()
def make_manager(processor, status_store, scheduler, clock):
    """Factory for queue managers wired to the fakes above."""
    from checks.queue_manager import CheckQueueManager

    def _make(max_concurrent: int | None = 2, **kwargs: Any) -> CheckQueueManager:
        return CheckQueueManager(
            kwargs.pop("processor", processor),
            kwargs.pop("status_store", status_store),
            max_concurrent=max_concurrent,
            scheduler=scheduler,
            clock=clock,
            **kwargs,
        )

    return _make

