"""
Partial phrase matching for AdLex.

Catches inflected or abbreviated uses of a multi-word phrase by matching
only its first whitespace-delimited token, anchored at a word boundary.
"""

from __future__ import annotations

import re

from adlex_common.domain.value_objects import TextRange

MIN_TOKEN_LENGTH = 3


def find_partial_matches(text: str, phrase: str) -> list[TextRange]:
    """Return ranges where the first token of *phrase* starts a word in *text*.

    Tokens shorter than :data:`MIN_TOKEN_LENGTH` characters are too
    ambiguous to match on and yield no ranges.
    """
    tokens = phrase.split()
    if not tokens or len(tokens[0]) < MIN_TOKEN_LENGTH:
        return []
    pattern = re.compile(r"\b" + re.escape(tokens[0]), re.IGNORECASE)
    return [TextRange(m.start(), m.end()) for m in pattern.finditer(text)]
