"""Shared fixtures for adlex-common tests."""

from __future__ import annotations

import os
from datetime import datetime, timezone

import pytest

# Set env vars before any adlex_common import.
os.environ.setdefault("ADLEX_STORAGE_URL", "http://storage.test")
os.environ.setdefault("ADLEX_EMBEDDING_API_KEY", "test-key")


@pytest.fixture()
def fixed_now() -> datetime:
    """A deterministic UTC timestamp."""
    return datetime(2025, 1, 15, 9, 30, tzinfo=timezone.utc)


@pytest.fixture()
def clock(fixed_now: datetime):
    """A clock callable that always returns ``fixed_now``."""
    return lambda: fixed_now


@pytest.fixture()
def vector_768() -> list[float]:
    """A valid 768-dimensional vector."""
    return [((i % 7) - 3) / 10.0 for i in range(768)]
