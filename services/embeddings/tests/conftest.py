"""Shared fixtures for embedding service tests."""

from __future__ import annotations

import asyncio
import os
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any
from unittest.mock import AsyncMock

import pytest

# Set env vars before any adlex_common import.
os.environ.setdefault("ADLEX_EMBEDDING_MAX_CONCURRENT", "3")
os.environ.setdefault("ADLEX_EMBEDDING_MAX_RETRIES", "2")

from adlex_common.domain.events import EventPublisher  # noqa: E402
from adlex_common.models.dictionary import DictionaryCategory, DictionaryItem  # noqa: E402

FIXED_NOW = datetime(2025, 1, 15, 9, 30, tzinfo=timezone.utc)
DIMENSIONS = 768


def unit_vector(index: int = 0) -> list[float]:
    values = [0.0] * DIMENSIONS
    values[index % DIMENSIONS] = 1.0
    return values


# ─── Fakes ───────────────────────────────────────────────────


class FakeDictionaryStore:
    """In-memory ``DictionaryStore`` recording queries and stored vectors."""

    def __init__(self, items: list[DictionaryItem] | None = None) -> None:
        self.items = items or []
        self.queries: list[dict[str, Any]] = []
        self.stored: dict[int, list[float]] = {}

    async def list_dictionary_items(
        self,
        organization_id: int,
        *,
        missing_vector_only: bool = False,
        ids: list[int] | None = None,
    ) -> list[DictionaryItem]:
        self.queries.append(
            {"organization_id": organization_id, "missing_vector_only": missing_vector_only, "ids": ids}
        )
        return [
            item
            for item in self.items
            if item.organization_id == organization_id
            and not (missing_vector_only and item.has_embedding)
            and (not ids or item.id in ids)
        ]

    async def store_vector(self, dictionary_id: int, vector: list[float]) -> None:
        self.stored[dictionary_id] = list(vector)


class ScriptedEmbedder:
    """Embedder fake.

    ``script[phrase]`` is a list of outcomes consumed one per call: an
    exception is raised, anything else is returned. Once the script runs
    out a unit vector is returned. ``gates[phrase]`` holds a call open.
    """

    def __init__(self) -> None:
        self.calls: list[str] = []
        self.script: dict[str, list[Any]] = {}
        self.gates: dict[str, asyncio.Event] = {}
        self.active = 0
        self.max_active = 0

    def hold(self, phrase: str) -> asyncio.Event:
        self.gates[phrase] = asyncio.Event()
        return self.gates[phrase]

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            gate = self.gates.get(text)
            if gate is not None:
                await gate.wait()
            else:
                await asyncio.sleep(0)
            outcomes = self.script.get(text)
            if outcomes:
                outcome = outcomes.pop(0)
                if isinstance(outcome, BaseException):
                    raise outcome
                return outcome
            return unit_vector(len(self.calls))
        finally:
            self.active -= 1


class ManualTimer:
    def __init__(self, delay: float, callback: Callable[..., Any], args: tuple[Any, ...]) -> None:
        self.delay = delay
        self._callback = callback
        self._args = args
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        if not self.cancelled:
            self._callback(*self._args)


class ManualScheduler:
    """Records ``call_later`` requests instead of waiting on the clock."""

    def __init__(self) -> None:
        self.timers: list[ManualTimer] = []

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> ManualTimer:
        timer = ManualTimer(delay, callback, args)
        self.timers.append(timer)
        return timer


# ─── Fixtures ────────────────────────────────────────────────


@pytest.fixture()
def make_item():
    """Factory for dictionary items of organization 1 without a vector."""

    def _make(item_id: int, phrase: str, organization_id: int = 1, **kwargs: Any) -> DictionaryItem:
        return DictionaryItem(
            id=item_id,
            phrase=phrase,
            category=kwargs.pop("category", DictionaryCategory.NG),
            organization_id=organization_id,
            **kwargs,
        )

    return _make


@pytest.fixture()
def store(make_item) -> FakeDictionaryStore:
    return FakeDictionaryStore(
        [make_item(1, "治る"), make_item(2, "絶対に痩せる"), make_item(3, "副作用なし")]
    )


@pytest.fixture()
def embedder() -> ScriptedEmbedder:
    return ScriptedEmbedder()


@pytest.fixture()
def published() -> list[Any]:
    return []


@pytest.fixture()
def publisher(published) -> EventPublisher:
    bus = EventPublisher()
    bus.subscribe_all(published.append)
    return bus


@pytest.fixture()
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture()
def sleep() -> AsyncMock:
    """Backoff sleep that returns immediately and records its delays."""
    return AsyncMock(return_value=None)


@pytest.fixture()
def make_queue(store, embedder, publisher, scheduler, sleep):
    """Factory for embedding queues wired to the fakes above."""
    from embeddings.embedding_queue import EmbeddingQueue

    def _make(**kwargs: Any) -> EmbeddingQueue:
        return EmbeddingQueue(
            kwargs.pop("dictionary_store", store),
            kwargs.pop("embedder", embedder),
            kwargs.pop("publisher", publisher),
            max_concurrent=kwargs.pop("max_concurrent", 3),
            max_retries=kwargs.pop("max_retries", 2),
            retention_s=kwargs.pop("retention_s", 3600.0),
            scheduler=scheduler,
            clock=kwargs.pop("clock", lambda: FIXED_NOW),
            sleep=sleep,
            **kwargs,
        )

    return _make
