"""
Domain events and the in-process event publisher for AdLex.

Every aggregate transition records one of the event models below. The
set is closed: ``DomainEvent`` is a discriminated union keyed on
``event_type``, so a serialized event always round-trips to the right
class.

:class:`EventPublisher` delivers events to subscribed handlers in
emission order. Handlers for one event run sequentially; a handler that
raises is logged and skipped, and the remaining handlers still receive
the event.
"""

from __future__ import annotations

import inspect
from collections import Counter
from collections.abc import Awaitable, Callable, Iterable
from datetime import datetime, timezone
from typing import Annotated, Literal, Union
from uuid import uuid4

import structlog
from pydantic import BaseModel, Field, TypeAdapter

from adlex_common.models.dictionary import DictionaryCategory

logger = structlog.get_logger()


def _utc_now() -> datetime:
    """Return the current UTC datetime."""
    return datetime.now(timezone.utc)


class _EventBase(BaseModel):
    """Fields shared by every domain event."""

    model_config = {"frozen": True}

    event_id: str = Field(default_factory=lambda: uuid4().hex, description="Unique event id.")
    aggregate_id: str = Field(..., description="Id of the emitting aggregate.")
    occurred_at: datetime = Field(default_factory=_utc_now, description="Emission time (UTC).")


# ── check events ──


class CheckCreated(_EventBase):
    event_type: Literal["CheckCreated"] = "CheckCreated"
    check_id: int
    user_id: str
    organization_id: int
    input_text: str = Field(..., description="Input text, truncated to 100 characters.")


class CheckProcessingStarted(_EventBase):
    event_type: Literal["CheckProcessingStarted"] = "CheckProcessingStarted"
    check_id: int


class ViolationDetected(_EventBase):
    event_type: Literal["ViolationDetected"] = "ViolationDetected"
    check_id: int
    violation_id: int
    dictionary_id: int | None = None
    original_text: str
    suggested_text: str | None = None
    start_pos: int
    end_pos: int


class CheckCompleted(_EventBase):
    event_type: Literal["CheckCompleted"] = "CheckCompleted"
    check_id: int
    violation_count: int
    has_violations: bool
    completed_at: datetime


class CheckFailed(_EventBase):
    event_type: Literal["CheckFailed"] = "CheckFailed"
    check_id: int
    error_message: str
    failed_at: datetime


class CheckCancelled(_EventBase):
    event_type: Literal["CheckCancelled"] = "CheckCancelled"
    check_id: int
    cancelled_at: datetime


# ── dictionary events ──


class DictionaryItemCreated(_EventBase):
    event_type: Literal["DictionaryItemCreated"] = "DictionaryItemCreated"
    dictionary_id: int
    phrase: str
    category: DictionaryCategory
    organization_id: int


class DictionaryItemUpdated(_EventBase):
    event_type: Literal["DictionaryItemUpdated"] = "DictionaryItemUpdated"
    dictionary_id: int
    old_phrase: str
    new_phrase: str
    old_category: DictionaryCategory
    new_category: DictionaryCategory
    vector_invalidated: bool


class VectorGenerationStarted(_EventBase):
    event_type: Literal["VectorGenerationStarted"] = "VectorGenerationStarted"
    dictionary_id: int
    phrase: str


class VectorGenerated(_EventBase):
    event_type: Literal["VectorGenerated"] = "VectorGenerated"
    dictionary_id: int
    vector_dimensions: int


class VectorGenerationFailed(_EventBase):
    event_type: Literal["VectorGenerationFailed"] = "VectorGenerationFailed"
    dictionary_id: int
    error_message: str


DomainEvent = Annotated[
    Union[
        CheckCreated,
        CheckProcessingStarted,
        ViolationDetected,
        CheckCompleted,
        CheckFailed,
        CheckCancelled,
        DictionaryItemCreated,
        DictionaryItemUpdated,
        VectorGenerationStarted,
        VectorGenerated,
        VectorGenerationFailed,
    ],
    Field(discriminator="event_type"),
]

domain_event_adapter: TypeAdapter[DomainEvent] = TypeAdapter(DomainEvent)

EventHandler = Callable[[DomainEvent], Union[Awaitable[None], None]]


class EventPublisher:
    """Synchronous-order, failure-isolated publish/subscribe bus.

    Handlers are registered per event class (or for every event with
    :meth:`subscribe_all`) and may be plain functions or coroutines.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = {}
        self._catch_all: list[EventHandler] = []

    def subscribe(self, event_type: type[_EventBase] | str, handler: EventHandler) -> None:
        """Register *handler* for one event type (class or its name)."""
        name = event_type if isinstance(event_type, str) else event_type.__name__
        self._handlers.setdefault(name, []).append(handler)

    def subscribe_all(self, handler: EventHandler) -> None:
        """Register *handler* for every event type."""
        self._catch_all.append(handler)

    async def publish(self, event: DomainEvent) -> None:
        """Deliver *event* to every matching handler, in registration order."""
        handlers = [*self._handlers.get(event.event_type, []), *self._catch_all]
        logger.debug(
            "domain_event_published",
            event_type=event.event_type,
            aggregate_id=event.aggregate_id,
            event_id=event.event_id,
            handler_count=len(handlers),
        )
        for handler in handlers:
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(
                    "domain_event_handler_failed",
                    event_type=event.event_type,
                    aggregate_id=event.aggregate_id,
                    handler=getattr(handler, "__qualname__", repr(handler)),
                )

    async def publish_all(self, events: Iterable[DomainEvent]) -> None:
        """Publish *events* one after another, preserving their order."""
        for event in events:
            await self.publish(event)


class EventStatistics:
    """Catch-all handler that counts events by type."""

    def __init__(self) -> None:
        self._counts: Counter[str] = Counter()

    def __call__(self, event: DomainEvent) -> None:
        self._counts[event.event_type] += 1

    def snapshot(self) -> dict[str, int]:
        return dict(self._counts)

    def reset(self) -> None:
        self._counts.clear()
