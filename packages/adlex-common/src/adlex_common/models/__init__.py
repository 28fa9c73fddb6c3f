"""
Shared Pydantic data models for AdLex.

This package contains all cross-service data models including checks,
violations, dictionary items, queue items, and embedding jobs.
"""

from adlex_common.models.check import (
    Check,
    CheckStatus,
    CheckStatusUpdate,
    InputType,
    Violation,
)
from adlex_common.models.dictionary import DictionaryCategory, DictionaryItem
from adlex_common.models.embedding_job import (
    EmbeddingFailure,
    EmbeddingJob,
    EmbeddingJobStatus,
)
from adlex_common.models.queue import MAX_RETRIES, Priority, QueueItem

__all__ = [
    "MAX_RETRIES",
    "Check",
    "CheckStatus",
    "CheckStatusUpdate",
    "DictionaryCategory",
    "DictionaryItem",
    "EmbeddingFailure",
    "EmbeddingJob",
    "EmbeddingJobStatus",
    "InputType",
    "Priority",
    "QueueItem",
    "Violation",
]
