"""
Immutable, self-validating value objects for AdLex.

``TextRange`` locates a violation inside a reference text,
``EmbeddingVector`` wraps a dictionary/input embedding with cosine
similarity, and ``DictionaryPhrase`` normalizes a dictionary entry.
All three validate on construction and raise
:class:`~adlex_common.domain.errors.DomainValidationError`.
"""

from __future__ import annotations

import json
import math
import re
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

import numpy as np

from adlex_common.domain.errors import DomainValidationError

SUPPORTED_DIMENSIONS: frozenset[int] = frozenset({512, 768, 1536})
MAX_PHRASE_LENGTH: int = 500

# Control characters other than tab, newline and carriage return.
_INVALID_PHRASE_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")


@dataclass(frozen=True)
class TextRange:
    """Half-open character range ``[start, end)`` with ``end > start >= 0``."""

    start: int
    end: int

    def __post_init__(self) -> None:
        if self.start < 0:
            raise DomainValidationError("start must be >= 0", "start")
        if self.end <= self.start:
            raise DomainValidationError("end must be greater than start", "end")

    @property
    def length(self) -> int:
        return self.end - self.start

    def contains(self, position: int) -> bool:
        """Return ``True`` if *position* falls inside the range."""
        return self.start <= position < self.end

    def overlaps(self, other: TextRange) -> bool:
        """Return ``True`` if the two ranges share at least one character."""
        return self.start < other.end and self.end > other.start

    def extract_from(self, text: str) -> str:
        """Return the substring of *text* covered by this range.

        Raises:
            DomainValidationError: If the range runs past the end of *text*.
        """
        if self.end > len(text):
            raise DomainValidationError("range exceeds text length", "end")
        return text[self.start : self.end]


class EmbeddingVector:
    """A read-only embedding of supported dimensionality.

    The input is copied into a private ``float64`` array that is marked
    non-writeable, so later mutation of the source sequence has no effect.

    Args:
        values: Numeric components (512, 768 or 1536 of them).

    Raises:
        DomainValidationError: On empty, wrongly sized, non-numeric or
            non-finite input.
    """

    __slots__ = ("_values",)

    def __init__(self, values: Iterable[float] | np.ndarray) -> None:
        if isinstance(values, EmbeddingVector):
            array = values._values.copy()
        elif isinstance(values, np.ndarray):
            if not np.issubdtype(values.dtype, np.number):
                raise DomainValidationError("vector components must all be numbers", "vector")
            array = values.astype(np.float64, copy=True)
        else:
            items = list(values)
            if any(isinstance(v, bool) or not isinstance(v, (int, float, np.number)) for v in items):
                raise DomainValidationError("vector components must all be numbers", "vector")
            array = np.array(items, dtype=np.float64)

        if array.ndim != 1 or array.size == 0:
            raise DomainValidationError("vector must be a non-empty flat sequence", "vector")
        if array.size not in SUPPORTED_DIMENSIONS:
            raise DomainValidationError(
                f"unsupported vector dimension {array.size}", "vector"
            )
        if not np.all(np.isfinite(array)):
            raise DomainValidationError("vector components must be finite", "vector")

        array.setflags(write=False)
        self._values = array

    @classmethod
    def from_json(cls, payload: str) -> EmbeddingVector:
        """Parse a JSON array (the storage wire format) into a vector."""
        try:
            parsed: Any = json.loads(payload)
        except (json.JSONDecodeError, TypeError) as exc:
            raise DomainValidationError("invalid vector JSON", "vector") from exc
        if not isinstance(parsed, list):
            raise DomainValidationError("vector JSON must be an array", "vector")
        return cls(parsed)

    @property
    def dimensions(self) -> int:
        return int(self._values.size)

    @property
    def values(self) -> np.ndarray:
        """The read-only component array."""
        return self._values

    def to_list(self) -> list[float]:
        return [float(v) for v in self._values]

    def to_json(self) -> str:
        return json.dumps(self.to_list())

    def cosine_similarity(self, other: EmbeddingVector) -> float:
        """Cosine similarity in ``[-1, 1]``; ``0.0`` if either vector is all zeros.

        Raises:
            DomainValidationError: If the dimensions differ.
        """
        if self.dimensions != other.dimensions:
            raise DomainValidationError("vector dimensions do not match", "vector")

        dot = float(np.dot(self._values, other._values))
        norm_sq_a = float(np.dot(self._values, self._values))
        norm_sq_b = float(np.dot(other._values, other._values))
        if norm_sq_a == 0.0 or norm_sq_b == 0.0:
            return 0.0
        similarity = dot / math.sqrt(norm_sq_a * norm_sq_b)
        return max(-1.0, min(1.0, similarity))

    def __len__(self) -> int:
        return self.dimensions

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, EmbeddingVector):
            return NotImplemented
        return bool(np.array_equal(self._values, other._values))

    def __hash__(self) -> int:
        return hash(self._values.tobytes())

    def __repr__(self) -> str:
        return f"EmbeddingVector(dimensions={self.dimensions})"


@dataclass(frozen=True)
class DictionaryPhrase:
    """A trimmed, length-limited dictionary phrase."""

    value: str

    def __post_init__(self) -> None:
        trimmed = self.value.strip()
        if not trimmed:
            raise DomainValidationError("phrase is empty", "phrase")
        if len(trimmed) > MAX_PHRASE_LENGTH:
            raise DomainValidationError(
                f"phrase exceeds {MAX_PHRASE_LENGTH} characters", "phrase"
            )
        if _INVALID_PHRASE_CHARS.search(trimmed):
            raise DomainValidationError("phrase contains control characters", "phrase")
        object.__setattr__(self, "value", trimmed)

    def normalized(self) -> str:
        """Collapse internal whitespace runs to single spaces."""
        return " ".join(self.value.split())

    def contains(self, term: str) -> bool:
        return term.lower() in self.value.lower()
