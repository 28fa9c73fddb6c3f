"""
Check and Violation data models for AdLex.

Defines the Pydantic models for a compliance check request (the text a
user submitted plus its processing status) and for the violations
located inside that text.
"""

from __future__ import annotations

import enum
from datetime import datetime, timezone

from pydantic import BaseModel, Field, model_validator

from adlex_common.domain.value_objects import TextRange


def _utc_now() -> datetime:
    """Return the current UTC datetime."""
    return datetime.now(timezone.utc)


class CheckStatus(str, enum.Enum):
    """Lifecycle status of a check."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (CheckStatus.COMPLETED, CheckStatus.FAILED, CheckStatus.CANCELLED)


class InputType(str, enum.Enum):
    """Modality of the submitted content."""

    TEXT = "text"
    IMAGE = "image"


class Violation(BaseModel):
    """A located violation inside a check's input text.

    Attributes:
        id: Unique identifier.
        check_id: Parent check identifier.
        dictionary_id: Dictionary item that triggered the violation, if any.
        original_text: The offending snippet.
        suggested_text: Compliant replacement, if one was produced.
        reasoning: Explanation of why the snippet is a violation.
        start_pos: Inclusive start character offset.
        end_pos: Exclusive end character offset.
        created_at: Creation timestamp (UTC).
    """

    model_config = {"from_attributes": True}

    id: int = Field(..., description="Unique identifier.")
    check_id: int = Field(..., description="Parent check identifier.")
    dictionary_id: int | None = Field(default=None, description="Triggering dictionary item.")
    original_text: str = Field(..., description="The offending snippet.")
    suggested_text: str | None = Field(default=None, description="Compliant replacement.")
    reasoning: str | None = Field(default=None, description="Why this is a violation.")
    start_pos: int = Field(..., ge=0, description="Inclusive start offset.")
    end_pos: int = Field(..., description="Exclusive end offset.")
    created_at: datetime = Field(default_factory=_utc_now, description="Creation timestamp (UTC).")

    @model_validator(mode="after")
    def _check_range(self) -> Violation:
        """Reject empty or inverted ranges."""
        TextRange(self.start_pos, self.end_pos)
        return self

    @property
    def range(self) -> TextRange:
        return TextRange(self.start_pos, self.end_pos)


class Check(BaseModel):
    """A single compliance check request.

    Attributes:
        id: Unique identifier.
        user_id: Submitting user (unknown when rebuilt from a queue item).
        organization_id: Owning organization.
        input_text: The submitted text.
        extracted_text: OCR output for image checks.
        status: Current lifecycle status.
        violation_count: Number of violations recorded.
        error_message: Failure message for failed checks.
        created_at: Creation timestamp (UTC).
        completed_at: Terminal-transition timestamp (None while active).
    """

    model_config = {"from_attributes": True}

    id: int = Field(..., description="Unique identifier.")
    user_id: str | None = Field(default=None, description="Submitting user.")
    organization_id: int = Field(..., description="Owning organization.")
    input_text: str = Field(..., description="The submitted text.")
    extracted_text: str | None = Field(default=None, description="OCR output for image checks.")
    status: CheckStatus = Field(default=CheckStatus.PENDING, description="Lifecycle status.")
    violation_count: int = Field(default=0, ge=0, description="Number of violations recorded.")
    error_message: str | None = Field(default=None, description="Failure message.")
    created_at: datetime = Field(default_factory=_utc_now, description="Creation timestamp (UTC).")
    completed_at: datetime | None = Field(default=None, description="Terminal timestamp (UTC).")


class CheckStatusUpdate(BaseModel):
    """Payload of a status write through the check storage port.

    Attributes:
        status: New status.
        error_message: Failure message (failed checks only).
        completed_at: Terminal-transition timestamp.
    """

    status: CheckStatus = Field(..., description="New status.")
    error_message: str | None = Field(default=None, description="Failure message.")
    completed_at: datetime | None = Field(default=None, description="Terminal timestamp (UTC).")
