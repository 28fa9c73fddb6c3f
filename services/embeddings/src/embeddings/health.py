"""
Health check endpoint for the AdLex embedding service.

Exposes a /health endpoint returning service status and the number of
embedding jobs still running.
"""

from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from embeddings.embedding_queue import EmbeddingQueue

router = APIRouter()

# Module-level reference set by main.py at startup
_embedding_queue: EmbeddingQueue | None = None


def configure(embedding_queue: EmbeddingQueue | None) -> None:
    """Inject the embedding queue for the health endpoint."""
    global _embedding_queue
    _embedding_queue = embedding_queue


@router.get("/health")
async def health() -> JSONResponse:
    """Return embedding service health status."""
    if _embedding_queue is None:
        return JSONResponse(
            status_code=503,
            content={"service": "embeddings", "status": "starting", "active_jobs": None},
        )
    active = sum(1 for job in _embedding_queue.list_jobs() if job.status.is_active)
    return JSONResponse(
        status_code=200,
        content={"service": "embeddings", "status": "healthy", "active_jobs": active},
    )
