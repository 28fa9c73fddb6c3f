"""
Dictionary item data model for AdLex.

Each organization maintains its own dictionary of regulated phrases:
``NG`` entries are forbidden expressions, ``ALLOW`` entries are
explicitly permitted ones used to suppress similarity false positives.
"""

from __future__ import annotations

import enum
from datetime import datetime, timezone

from pydantic import BaseModel, Field, field_validator

from adlex_common.domain.value_objects import EmbeddingVector


def _utc_now() -> datetime:
    """Return the current UTC datetime."""
    return datetime.now(timezone.utc)


class DictionaryCategory(str, enum.Enum):
    """Dictionary entry category."""

    NG = "NG"
    ALLOW = "ALLOW"


class DictionaryItem(BaseModel):
    """A dictionary phrase owned by an organization.

    Attributes:
        id: Unique identifier.
        phrase: The phrase text.
        category: ``NG`` (forbidden) or ``ALLOW`` (permitted).
        organization_id: Owning organization.
        vector: Stored embedding, if generated.
        notes: Free-form editor notes.
        created_at: Creation timestamp (UTC).
        updated_at: Last update timestamp (UTC).
    """

    model_config = {"from_attributes": True}

    id: int = Field(..., description="Unique identifier.")
    phrase: str = Field(..., min_length=1, description="The phrase text.")
    category: DictionaryCategory = Field(..., description="NG or ALLOW.")
    organization_id: int = Field(..., description="Owning organization.")
    vector: list[float] | None = Field(default=None, description="Stored embedding.")
    notes: str | None = Field(default=None, description="Editor notes.")
    created_at: datetime = Field(default_factory=_utc_now, description="Creation timestamp (UTC).")
    updated_at: datetime = Field(default_factory=_utc_now, description="Last update timestamp (UTC).")

    @field_validator("vector", mode="before")
    @classmethod
    def _parse_vector(cls, value: object) -> object:
        """Accept the JSON-string wire format and validate dimensionality."""
        if value is None:
            return None
        if isinstance(value, str):
            return EmbeddingVector.from_json(value).to_list()
        if isinstance(value, EmbeddingVector):
            return value.to_list()
        return EmbeddingVector(value).to_list()  # type: ignore[arg-type]

    @property
    def is_ng(self) -> bool:
        return self.category == DictionaryCategory.NG

    @property
    def has_embedding(self) -> bool:
        return self.vector is not None

    def embedding(self) -> EmbeddingVector | None:
        """Return the stored vector as an :class:`EmbeddingVector`."""
        return EmbeddingVector(self.vector) if self.vector is not None else None
