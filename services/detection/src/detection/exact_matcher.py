"""
Exact phrase matching for AdLex.

Finds every case-insensitive occurrence of a phrase, advancing the
search cursor by one character after each hit so overlapping
occurrences are all reported.
"""

from __future__ import annotations

import re

from adlex_common.domain.value_objects import TextRange


def find_exact_matches(text: str, phrase: str) -> list[TextRange]:
    """Return the range of every occurrence of *phrase* in *text*.

    Args:
        text: The haystack.
        phrase: The phrase to look for; matched case-insensitively.

    Returns:
        Ranges in ascending start order. Offsets refer to *text* itself.
    """
    if not phrase:
        return []
    pattern = re.compile(re.escape(phrase), re.IGNORECASE)
    ranges: list[TextRange] = []
    pos = 0
    while True:
        m = pattern.search(text, pos)
        if m is None:
            break
        ranges.append(TextRange(m.start(), m.end()))
        pos = m.start() + 1
    return ranges
