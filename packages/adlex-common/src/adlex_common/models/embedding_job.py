"""
Embedding job models for AdLex.

An ``EmbeddingJob`` tracks one batch run of vector (re)generation for a
single organization's dictionary: how many phrases there are, how many
have been processed, and how many of those succeeded or failed.
"""

from __future__ import annotations

import enum
from datetime import datetime, timezone

from pydantic import BaseModel, Field


def _utc_now() -> datetime:
    """Return the current UTC datetime."""
    return datetime.now(timezone.utc)


class EmbeddingJobStatus(str, enum.Enum):
    """Lifecycle status of an embedding job."""

    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_active(self) -> bool:
        return self in (EmbeddingJobStatus.QUEUED, EmbeddingJobStatus.PROCESSING)


class EmbeddingFailure(BaseModel):
    """A phrase whose vector could not be generated."""

    dictionary_id: int = Field(..., description="Dictionary item id (0 for job-level errors).")
    phrase: str = Field(..., description="The phrase.")
    error: str = Field(..., description="Last error message.")
    retry_count: int = Field(default=0, ge=0, description="Retries attempted.")


class EmbeddingJob(BaseModel):
    """Progress record of one organization-wide embedding run.

    Attributes:
        id: Job handle.
        organization_id: Organization whose dictionary is processed.
        total: Number of phrases in the batch.
        processed: Phrases finished (successfully or not).
        success: Phrases whose vector was stored.
        failure: Phrases that failed.
        failures: Per-phrase failure details.
        status: Current job status.
        started_at: Job creation timestamp (UTC).
        processing_started_at: When the first phrase was dispatched.
        completed_at: Terminal timestamp.
        estimated_completion_at: Projected finish time while processing.
    """

    id: str = Field(..., description="Job handle.")
    organization_id: int = Field(..., description="Organization being processed.")
    total: int = Field(default=0, ge=0, description="Phrases in the batch.")
    processed: int = Field(default=0, ge=0, description="Phrases finished.")
    success: int = Field(default=0, ge=0, description="Phrases stored.")
    failure: int = Field(default=0, ge=0, description="Phrases failed.")
    failures: list[EmbeddingFailure] = Field(default_factory=list, description="Failure details.")
    status: EmbeddingJobStatus = Field(default=EmbeddingJobStatus.QUEUED, description="Job status.")
    started_at: datetime = Field(default_factory=_utc_now, description="Creation timestamp (UTC).")
    processing_started_at: datetime | None = Field(default=None, description="Dispatch start.")
    completed_at: datetime | None = Field(default=None, description="Terminal timestamp.")
    estimated_completion_at: datetime | None = Field(default=None, description="Projected finish.")
