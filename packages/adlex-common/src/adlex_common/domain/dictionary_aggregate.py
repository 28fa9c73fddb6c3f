"""
Dictionary aggregate for AdLex.

Tracks the vector-generation sub-state of a single dictionary phrase
(``idle → generating → idle``) and invalidates the stored vector when the
phrase or its category changes.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from datetime import datetime, timezone

from adlex_common.domain.errors import InvalidStateTransition
from adlex_common.domain.events import (
    DictionaryItemCreated,
    DictionaryItemUpdated,
    DomainEvent,
    VectorGenerated,
    VectorGenerationFailed,
    VectorGenerationStarted,
)
from adlex_common.domain.value_objects import DictionaryPhrase, EmbeddingVector
from adlex_common.models.dictionary import DictionaryCategory, DictionaryItem


def _utc_now() -> datetime:
    """Return the current UTC datetime."""
    return datetime.now(timezone.utc)


class DictionaryAggregate:
    """Consistency boundary for one dictionary item and its embedding.

    Args:
        item: Current persisted snapshot of the item. A stored vector is
            validated on load.
        clock: Source of ``updated_at`` timestamps.
    """

    def __init__(self, item: DictionaryItem, clock: Callable[[], datetime] = _utc_now) -> None:
        self._item = item.model_copy()
        self._vector: EmbeddingVector | None = item.embedding()
        self._generating = False
        self._events: list[DomainEvent] = []
        self._clock = clock

    @classmethod
    def create(
        cls,
        dictionary_id: int,
        phrase: str,
        category: DictionaryCategory,
        organization_id: int,
        notes: str | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> DictionaryAggregate:
        """Create a new item without a vector and record ``DictionaryItemCreated``."""
        value = DictionaryPhrase(phrase).value
        now = clock()
        item = DictionaryItem(
            id=dictionary_id,
            phrase=value,
            category=category,
            organization_id=organization_id,
            notes=notes,
            created_at=now,
            updated_at=now,
        )
        aggregate = cls(item, clock=clock)
        aggregate._events.append(
            DictionaryItemCreated(
                aggregate_id=str(dictionary_id),
                dictionary_id=dictionary_id,
                phrase=value,
                category=category,
                organization_id=organization_id,
            )
        )
        return aggregate

    @classmethod
    def from_item(cls, item: DictionaryItem, clock: Callable[[], datetime] = _utc_now) -> DictionaryAggregate:
        return cls(item, clock=clock)

    @property
    def id(self) -> int:
        return self._item.id

    @property
    def phrase(self) -> str:
        return self._item.phrase

    @property
    def category(self) -> DictionaryCategory:
        return self._item.category

    @property
    def vector(self) -> EmbeddingVector | None:
        return self._vector

    @property
    def has_vector(self) -> bool:
        return self._vector is not None

    @property
    def is_generating(self) -> bool:
        return self._generating

    @property
    def has_events(self) -> bool:
        return bool(self._events)

    def to_item(self) -> DictionaryItem:
        vector = self._vector.to_list() if self._vector is not None else None
        return self._item.model_copy(update={"vector": vector})

    def pull_events(self) -> list[DomainEvent]:
        events, self._events = self._events, []
        return events

    # ── vector lifecycle ──

    def start_vector_generation(self) -> None:
        if self._generating:
            raise InvalidStateTransition("start vector generation", "generating")
        self._generating = True
        self._events.append(
            VectorGenerationStarted(
                aggregate_id=str(self.id), dictionary_id=self.id, phrase=self._item.phrase
            )
        )

    def set_vector(self, values: Sequence[float] | EmbeddingVector) -> None:
        """Store a freshly generated vector.

        Raises:
            InvalidStateTransition: If generation was not started.
            DomainValidationError: If the vector is malformed; the aggregate
                stays ``generating`` in that case.
        """
        if not self._generating:
            raise InvalidStateTransition("set vector", "idle")
        vector = EmbeddingVector(values)
        self._vector = vector
        self._generating = False
        self._events.append(
            VectorGenerated(
                aggregate_id=str(self.id),
                dictionary_id=self.id,
                vector_dimensions=vector.dimensions,
            )
        )

    def fail_vector_generation(self, error_message: str) -> None:
        if not self._generating:
            raise InvalidStateTransition("fail vector generation", "idle")
        self._generating = False
        self._events.append(
            VectorGenerationFailed(
                aggregate_id=str(self.id), dictionary_id=self.id, error_message=error_message
            )
        )

    # ── content ──

    def update_content(
        self,
        new_phrase: str | None = None,
        new_category: DictionaryCategory | None = None,
    ) -> bool:
        """Apply a phrase/category edit; returns ``True`` if anything changed.

        A real change drops the stored vector so it gets regenerated.
        """
        phrase = DictionaryPhrase(new_phrase).value if new_phrase is not None else self._item.phrase
        category = new_category if new_category is not None else self._item.category
        if phrase == self._item.phrase and category == self._item.category:
            return False

        old_phrase, old_category = self._item.phrase, self._item.category
        self._item = self._item.model_copy(
            update={"phrase": phrase, "category": category, "vector": None, "updated_at": self._clock()}
        )
        self._vector = None
        self._events.append(
            DictionaryItemUpdated(
                aggregate_id=str(self.id),
                dictionary_id=self.id,
                old_phrase=old_phrase,
                new_phrase=phrase,
                old_category=old_category,
                new_category=category,
                vector_invalidated=True,
            )
        )
        return True
