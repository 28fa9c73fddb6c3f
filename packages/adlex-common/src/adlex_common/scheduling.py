"""
Delayed-callback scheduling for AdLex.

Retry backoff and job-retention timers go through a :class:`Scheduler`
so that production code runs on the asyncio loop while tests can fire
timers by hand.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any, Protocol


def utc_now() -> datetime:
    """Default clock: the current UTC datetime."""
    return datetime.now(timezone.utc)


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandle: ...


class LoopScheduler:
    """Schedules callbacks on the running asyncio event loop."""

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> asyncio.TimerHandle:
        return asyncio.get_running_loop().call_later(delay, callback, *args)
