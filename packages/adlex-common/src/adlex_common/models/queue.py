"""
Queue item model for the AdLex check queue.

A ``QueueItem`` is the unit of work the check queue dispatches to a
worker slot. Its identifier is the check id.
"""

from __future__ import annotations

import enum
from datetime import datetime, timezone

from pydantic import BaseModel, Field

from adlex_common.models.check import InputType

MAX_RETRIES: int = 2


def _utc_now() -> datetime:
    """Return the current UTC datetime."""
    return datetime.now(timezone.utc)


class Priority(str, enum.Enum):
    """Two-tier queue ordering: ``high`` goes to the front, others to the back."""

    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"


class QueueItem(BaseModel):
    """A check waiting for, or occupying, a worker slot.

    Attributes:
        id: The check id.
        text: Text to check.
        organization_id: Owning organization (selects the dictionary).
        priority: Queue priority.
        created_at: Enqueue timestamp (UTC).
        retry_count: Retries performed so far.
        max_retries: Retry budget (fixed at 2).
        input_type: Submitted modality.
        image_ref: Image URL/reference for image checks.
    """

    id: int = Field(..., description="The check id.")
    text: str = Field(..., description="Text to check.")
    organization_id: int = Field(..., description="Owning organization.")
    priority: Priority = Field(default=Priority.NORMAL, description="Queue priority.")
    created_at: datetime = Field(default_factory=_utc_now, description="Enqueue timestamp (UTC).")
    retry_count: int = Field(default=0, ge=0, description="Retries performed so far.")
    max_retries: int = Field(default=MAX_RETRIES, ge=0, description="Retry budget.")
    input_type: InputType = Field(default=InputType.TEXT, description="Submitted modality.")
    image_ref: str | None = Field(default=None, description="Image reference for image checks.")

    @property
    def can_retry(self) -> bool:
        return self.retry_count < self.max_retries
