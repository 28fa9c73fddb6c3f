"""Shared fixtures for detection service tests."""

from __future__ import annotations

import os

import pytest

# Set env vars before any adlex_common import.
os.environ.setdefault("ADLEX_SIMILARITY_THRESHOLD", "0.75")

from adlex_common.models.dictionary import DictionaryCategory, DictionaryItem  # noqa: E402


@pytest.fixture()
def make_item():
    """Factory for dictionary items with sensible defaults."""

    def _make(
        item_id: int,
        phrase: str,
        category: DictionaryCategory = DictionaryCategory.NG,
        vector: list[float] | None = None,
    ) -> DictionaryItem:
        return DictionaryItem(
            id=item_id,
            phrase=phrase,
            category=category,
            organization_id=1,
            vector=vector,
        )

    return _make
