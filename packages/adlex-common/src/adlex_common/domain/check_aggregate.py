"""
Check aggregate for AdLex.

Owns one check's state machine and its violations, and records a domain
event for every accepted transition:

    pending ──start_processing──▶ processing ──complete──▶ completed
       │                              │ └────────fail──────▶ failed
       └────────cancel────────────────┴──────cancel───────▶ cancelled

A rejected operation raises :class:`InvalidStateTransition` before any
state (or pending event) is touched.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import datetime, timezone

from adlex_common.domain.errors import DomainValidationError, InvalidStateTransition
from adlex_common.domain.events import (
    CheckCancelled,
    CheckCompleted,
    CheckCreated,
    CheckFailed,
    CheckProcessingStarted,
    DomainEvent,
    ViolationDetected,
)
from adlex_common.domain.value_objects import TextRange
from adlex_common.models.check import Check, CheckStatus, Violation

_EVENT_TEXT_LIMIT = 100


def _utc_now() -> datetime:
    """Return the current UTC datetime."""
    return datetime.now(timezone.utc)


def _truncate(text: str, limit: int = _EVENT_TEXT_LIMIT) -> str:
    return text if len(text) <= limit else text[:limit] + "..."


class CheckAggregate:
    """Consistency boundary for a single check.

    Args:
        check: Current persisted snapshot of the check.
        violations: Violations already recorded for it.
        clock: Source of completion timestamps.
    """

    def __init__(
        self,
        check: Check,
        violations: Iterable[Violation] = (),
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._check = check.model_copy()
        self._violations: dict[int, Violation] = {v.id: v for v in violations}
        self._events: list[DomainEvent] = []
        self._clock = clock

    # ── construction ──

    @classmethod
    def create(
        cls,
        check_id: int,
        user_id: str,
        organization_id: int,
        input_text: str,
        extracted_text: str | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> CheckAggregate:
        """Create a new ``pending`` check and record ``CheckCreated``."""
        if not user_id:
            raise DomainValidationError("user_id is required", "user_id")
        if not input_text and not extracted_text:
            raise DomainValidationError("input_text is required", "input_text")

        check = Check(
            id=check_id,
            user_id=user_id,
            organization_id=organization_id,
            input_text=input_text,
            extracted_text=extracted_text,
            status=CheckStatus.PENDING,
            created_at=clock(),
        )
        aggregate = cls(check, clock=clock)
        aggregate._record(
            CheckCreated(
                aggregate_id=str(check_id),
                check_id=check_id,
                user_id=user_id,
                organization_id=organization_id,
                input_text=_truncate(input_text),
            )
        )
        return aggregate

    @classmethod
    def from_check(
        cls,
        check: Check,
        violations: Iterable[Violation] = (),
        clock: Callable[[], datetime] = _utc_now,
    ) -> CheckAggregate:
        """Rehydrate an aggregate from persisted state; records no events."""
        return cls(check, violations, clock=clock)

    # ── read model ──

    @property
    def id(self) -> int:
        return self._check.id

    @property
    def status(self) -> CheckStatus:
        return self._check.status

    @property
    def organization_id(self) -> int:
        return self._check.organization_id

    @property
    def input_text(self) -> str:
        return self._check.input_text

    @property
    def extracted_text(self) -> str | None:
        return self._check.extracted_text

    @property
    def error_message(self) -> str | None:
        return self._check.error_message

    @property
    def completed_at(self) -> datetime | None:
        return self._check.completed_at

    @property
    def violations(self) -> list[Violation]:
        return list(self._violations.values())

    @property
    def violation_count(self) -> int:
        return len(self._violations)

    @property
    def has_events(self) -> bool:
        return bool(self._events)

    def to_check(self) -> Check:
        """Return a snapshot of the check with an up-to-date violation count."""
        return self._check.model_copy(update={"violation_count": len(self._violations)})

    def pull_events(self) -> list[DomainEvent]:
        """Return the pending events in emission order and clear them."""
        events, self._events = self._events, []
        return events

    # ── transitions ──

    def start_processing(self) -> None:
        self._require("start processing", CheckStatus.PENDING)
        self._check.status = CheckStatus.PROCESSING
        self._record(CheckProcessingStarted(aggregate_id=str(self.id), check_id=self.id))

    def add_violation(
        self,
        violation_id: int,
        dictionary_id: int | None,
        original_text: str,
        suggested_text: str | None,
        reasoning: str | None,
        text_range: TextRange,
    ) -> Violation:
        """Record (or replace, by id) a violation found while processing."""
        self._require("add violation", CheckStatus.PROCESSING)
        violation = Violation(
            id=violation_id,
            check_id=self.id,
            dictionary_id=dictionary_id,
            original_text=original_text,
            suggested_text=suggested_text,
            reasoning=reasoning,
            start_pos=text_range.start,
            end_pos=text_range.end,
            created_at=self._clock(),
        )
        self._violations[violation_id] = violation
        self._record(
            ViolationDetected(
                aggregate_id=str(self.id),
                check_id=self.id,
                violation_id=violation_id,
                dictionary_id=dictionary_id,
                original_text=original_text,
                suggested_text=suggested_text,
                start_pos=text_range.start,
                end_pos=text_range.end,
            )
        )
        return violation

    def complete(self) -> None:
        self._require("complete", CheckStatus.PROCESSING)
        now = self._clock()
        self._check.status = CheckStatus.COMPLETED
        self._check.completed_at = now
        self._check.violation_count = len(self._violations)
        self._record(
            CheckCompleted(
                aggregate_id=str(self.id),
                check_id=self.id,
                violation_count=len(self._violations),
                has_violations=bool(self._violations),
                completed_at=now,
            )
        )

    def fail(self, error_message: str) -> None:
        self._require("fail", CheckStatus.PROCESSING)
        now = self._clock()
        self._check.status = CheckStatus.FAILED
        self._check.error_message = error_message
        self._check.completed_at = now
        self._record(
            CheckFailed(
                aggregate_id=str(self.id),
                check_id=self.id,
                error_message=error_message,
                failed_at=now,
            )
        )

    def cancel(self) -> None:
        if self.status in (CheckStatus.COMPLETED, CheckStatus.FAILED):
            raise InvalidStateTransition("cancel", self.status.value)
        now = self._clock()
        self._check.status = CheckStatus.CANCELLED
        self._check.completed_at = now
        self._record(CheckCancelled(aggregate_id=str(self.id), check_id=self.id, cancelled_at=now))

    # ── helpers ──

    def _require(self, operation: str, expected: CheckStatus) -> None:
        if self._check.status != expected:
            raise InvalidStateTransition(operation, self._check.status.value)

    def _record(self, event: DomainEvent) -> None:
        self._events.append(event)
