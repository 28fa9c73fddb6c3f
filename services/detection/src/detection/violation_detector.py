"""
Violation detection engine for AdLex.

Runs exact and partial matching of an organization's NG phrases against
a check's text, and embedding-similarity ranking against the whole
dictionary. Emits :class:`ViolationCandidate` objects for every located
hit.
"""

from __future__ import annotations

import enum
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

import structlog

from adlex_common.config import get_settings
from adlex_common.domain.value_objects import EmbeddingVector, TextRange
from adlex_common.models.dictionary import DictionaryItem
from adlex_common.ports import Embedder

from detection.exact_matcher import find_exact_matches
from detection.partial_matcher import find_partial_matches
from detection.similarity_matcher import SimilarityMatch, find_similar

logger = structlog.get_logger()

EXACT_CONFIDENCE = 1.0
PARTIAL_CONFIDENCE = 0.8


class MatchType(str, enum.Enum):
    """How a violation candidate was located."""

    EXACT = "exact"
    PARTIAL = "partial"


@dataclass(frozen=True)
class ViolationCandidate:
    """A located NG-phrase hit inside the input text.

    Attributes:
        item: The NG dictionary item that matched.
        range: Location of the hit in the input text.
        match_type: ``exact`` or ``partial``.
        confidence: 1.0 for exact hits, 0.8 for partial ones.
        original_text: The matched substring of the input.
    """

    item: DictionaryItem
    range: TextRange
    match_type: MatchType
    confidence: float
    original_text: str


def check_violations(text: str, items: Iterable[DictionaryItem]) -> list[ViolationCandidate]:
    """Locate every NG phrase of *items* inside *text*.

    All exact hits come first (in dictionary order), followed by partial
    hits that do not overlap any earlier candidate.
    """
    ng_items = [item for item in items if item.is_ng]
    candidates: list[ViolationCandidate] = []

    for item in ng_items:
        for r in find_exact_matches(text, item.phrase):
            candidates.append(
                ViolationCandidate(
                    item=item,
                    range=r,
                    match_type=MatchType.EXACT,
                    confidence=EXACT_CONFIDENCE,
                    original_text=r.extract_from(text),
                )
            )

    for item in ng_items:
        for r in find_partial_matches(text, item.phrase):
            if any(c.range.overlaps(r) for c in candidates):
                continue
            candidates.append(
                ViolationCandidate(
                    item=item,
                    range=r,
                    match_type=MatchType.PARTIAL,
                    confidence=PARTIAL_CONFIDENCE,
                    original_text=r.extract_from(text),
                )
            )

    return candidates


class ViolationDetector:
    """Holds one organization's dictionary and runs all matchers against it.

    Args:
        similarity_threshold: Minimum cosine similarity for
            :meth:`find_similar`. Defaults to the configured
            ``similarity_threshold`` setting.
    """

    def __init__(self, similarity_threshold: float | None = None) -> None:
        if similarity_threshold is None:
            similarity_threshold = get_settings().similarity_threshold
        self._threshold = similarity_threshold
        self._items: list[DictionaryItem] = []

    # ── dictionary management ──

    def load_dictionary(self, items: Sequence[DictionaryItem]) -> None:
        """Replace the loaded dictionary with *items*."""
        self._items = list(items)
        logger.info(
            "violation_detector_dictionary_loaded",
            total=len(self._items),
            ng=sum(1 for i in self._items if i.is_ng),
            with_vector=sum(1 for i in self._items if i.has_embedding),
        )

    @property
    def items(self) -> list[DictionaryItem]:
        return list(self._items)

    @property
    def similarity_threshold(self) -> float:
        return self._threshold

    # ── detection ──

    def detect(self, text: str) -> list[ViolationCandidate]:
        """Run exact and partial matching against *text*."""
        candidates = check_violations(text, self._items)
        if candidates:
            logger.info(
                "violations_detected",
                candidate_count=len(candidates),
                exact=sum(1 for c in candidates if c.match_type == MatchType.EXACT),
                partial=sum(1 for c in candidates if c.match_type == MatchType.PARTIAL),
            )
        return candidates

    def find_similar(self, vector: EmbeddingVector | Sequence[float]) -> list[SimilarityMatch]:
        """Rank loaded items by similarity to *vector*."""
        if not isinstance(vector, EmbeddingVector):
            vector = EmbeddingVector(vector)
        return find_similar(vector, self._items, self._threshold)

    async def detect_similar(self, text: str, embedder: Embedder) -> list[SimilarityMatch]:
        """Embed *text* and rank loaded items by similarity to it."""
        vector = EmbeddingVector(await embedder.embed(text))
        matches = self.find_similar(vector)
        logger.debug(
            "similarity_matches_found",
            match_count=len(matches),
            top_similarity=matches[0].similarity if matches else None,
        )
        return matches
