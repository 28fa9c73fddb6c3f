"""
Embedding-similarity matching for AdLex.

Scores dictionary items against an input embedding by cosine similarity
and keeps those at or above a threshold, best first.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

import structlog

from adlex_common.domain.value_objects import EmbeddingVector
from adlex_common.models.dictionary import DictionaryItem

logger = structlog.get_logger()

DEFAULT_SIMILARITY_THRESHOLD = 0.75


@dataclass(frozen=True)
class SimilarityMatch:
    """A dictionary item close to the input in embedding space.

    Attributes:
        item: The matching dictionary item.
        similarity: Cosine similarity in ``[-1, 1]``.
        is_ng: Whether the item is a forbidden phrase.
    """

    item: DictionaryItem
    similarity: float
    is_ng: bool


def find_similar(
    input_vector: EmbeddingVector,
    items: Iterable[DictionaryItem],
    threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
) -> list[SimilarityMatch]:
    """Return items with ``similarity >= threshold``, most similar first.

    Items without a stored vector are ignored. Items whose vector has a
    different dimensionality than *input_vector* are skipped with a
    warning.
    """
    matches: list[SimilarityMatch] = []
    for item in items:
        vector = item.embedding()
        if vector is None:
            continue
        if vector.dimensions != input_vector.dimensions:
            logger.warning(
                "similarity_dimension_mismatch",
                dictionary_id=item.id,
                item_dimensions=vector.dimensions,
                input_dimensions=input_vector.dimensions,
            )
            continue
        similarity = input_vector.cosine_similarity(vector)
        if similarity >= threshold:
            matches.append(SimilarityMatch(item=item, similarity=similarity, is_ng=item.is_ng))
    matches.sort(key=lambda m: m.similarity, reverse=True)
    return matches
