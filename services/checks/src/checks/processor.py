"""
Reference check processor for AdLex.

Implements the ``CheckProcessor`` port used by the queue manager: loads
the organization's dictionary, drives a :class:`CheckAggregate` through
``start_processing → add_violation* → complete``, persists the result
and publishes the aggregate's events. The aggregate only completes once
both writes succeeded; ``save_result`` replaces earlier rows, so a retried
check does not duplicate its violations.

Any error marks the aggregate ``failed`` and is re-raised so the queue
manager can retry the check.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime

import structlog

from adlex_common.domain.check_aggregate import CheckAggregate
from adlex_common.domain.events import EventPublisher
from adlex_common.models.check import Check, CheckStatus, CheckStatusUpdate, InputType
from adlex_common.ports import CheckResultStore, CheckStatusStore, DictionaryStore, Embedder
from adlex_common.scheduling import utc_now

from detection.violation_detector import MatchType, ViolationCandidate, ViolationDetector

logger = structlog.get_logger()


def _reasoning(candidate: ViolationCandidate) -> str:
    return (
        f"{candidate.match_type.value} match of NG phrase '{candidate.item.phrase}' "
        f"(confidence {candidate.confidence:.1f})"
    )


class CheckPipeline:
    """Detect violations for one queued check and record the outcome.

    Args:
        dictionaries: Source of the organization's dictionary items.
        results: Receives the detected violations.
        statuses: Receives the ``completed`` status write.
        publisher: Receives the aggregate's domain events.
        embedder: Optional embedder. When given, a best similarity match
            against an ``ALLOW`` item suppresses partial-match candidates.
        similarity_threshold: Overrides the configured threshold.
        clock: Source of timestamps.
    """

    def __init__(
        self,
        dictionaries: DictionaryStore,
        results: CheckResultStore,
        statuses: CheckStatusStore,
        publisher: EventPublisher,
        *,
        embedder: Embedder | None = None,
        similarity_threshold: float | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._dictionaries = dictionaries
        self._results = results
        self._statuses = statuses
        self._publisher = publisher
        self._embedder = embedder
        self._threshold = similarity_threshold
        self._clock = clock

    async def __call__(
        self,
        check_id: int,
        text: str,
        organization_id: int,
        input_type: InputType,
        image_ref: str | None,
    ) -> None:
        log = logger.bind(check_id=check_id, organization_id=organization_id)
        snapshot = Check(
            id=check_id,
            organization_id=organization_id,
            input_text=text if input_type == InputType.TEXT else "",
            extracted_text=text if input_type == InputType.IMAGE else None,
            status=CheckStatus.PENDING,
        )
        aggregate = CheckAggregate.from_check(snapshot, clock=self._clock)
        aggregate.start_processing()
        try:
            candidates = await self._detect(text, organization_id)
            for number, candidate in enumerate(candidates, start=1):
                aggregate.add_violation(
                    number,
                    candidate.item.id,
                    candidate.original_text,
                    None,
                    _reasoning(candidate),
                    candidate.range,
                )
            # Complete only once both writes succeeded.
            await self._results.save_result(check_id, aggregate.violations, None)
            await self._statuses.update_check_status(
                check_id,
                CheckStatusUpdate(status=CheckStatus.COMPLETED, completed_at=self._clock()),
            )
            aggregate.complete()
            log.info("check_completed", violation_count=aggregate.violation_count)
        except Exception as exc:
            if aggregate.status == CheckStatus.PROCESSING:
                aggregate.fail(str(exc))
            log.warning("check_attempt_failed", error=str(exc))
            raise
        finally:
            await self._publisher.publish_all(aggregate.pull_events())

    async def _detect(self, text: str, organization_id: int) -> list[ViolationCandidate]:
        items = await self._dictionaries.list_dictionary_items(organization_id)
        detector = ViolationDetector(self._threshold)
        detector.load_dictionary(items)
        candidates = detector.detect(text)

        if self._embedder is not None and any(c.match_type == MatchType.PARTIAL for c in candidates):
            similar = await detector.detect_similar(text, self._embedder)
            if similar and not similar[0].is_ng:
                logger.info(
                    "partial_matches_suppressed",
                    allow_dictionary_id=similar[0].item.id,
                    similarity=similar[0].similarity,
                )
                candidates = [c for c in candidates if c.match_type == MatchType.EXACT]
        return candidates
