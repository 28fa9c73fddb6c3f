"""
Port protocols for AdLex.

The queue and embedding runners depend only on these structural
interfaces; concrete adapters live in :mod:`adlex_common.storage` and
the service packages, and tests pass in fakes.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from adlex_common.models.check import CheckStatusUpdate, InputType, Violation
from adlex_common.models.dictionary import DictionaryItem


@runtime_checkable
class CheckProcessor(Protocol):
    """Runs the full pipeline for one queued check; raising signals failure."""

    async def __call__(
        self,
        check_id: int,
        text: str,
        organization_id: int,
        input_type: InputType,
        image_ref: str | None,
    ) -> None: ...


@runtime_checkable
class CheckStatusStore(Protocol):
    async def update_check_status(self, check_id: int, update: CheckStatusUpdate) -> None: ...


@runtime_checkable
class CheckResultStore(Protocol):
    async def save_result(
        self,
        check_id: int,
        violations: Sequence[Violation],
        modified_text: str | None,
    ) -> None: ...


@runtime_checkable
class DictionaryStore(Protocol):
    async def list_dictionary_items(
        self,
        organization_id: int,
        *,
        missing_vector_only: bool = False,
        ids: Sequence[int] | None = None,
    ) -> list[DictionaryItem]: ...

    async def store_vector(self, dictionary_id: int, vector: Sequence[float]) -> None: ...


@runtime_checkable
class Embedder(Protocol):
    """Turns text into an embedding vector."""

    async def embed(self, text: str) -> list[float]: ...
