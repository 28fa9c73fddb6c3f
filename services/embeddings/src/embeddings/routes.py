"""
Embedding job API router for AdLex.

Starts organization-wide embedding runs and reports or cancels jobs.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field

from adlex_common.models.embedding_job import EmbeddingJob
from adlex_common.storage.rest_store import StorageError

from embeddings.embedding_queue import EmbeddingQueue

router = APIRouter(tags=["embeddings"])


class EmbeddingRunRequest(BaseModel):
    dictionary_ids: list[int] | None = Field(
        default=None, description="Restrict the run to these dictionary items."
    )


def get_embedding_queue(request: Request) -> EmbeddingQueue:
    """Return the embedding queue stored on app state."""
    queue = getattr(request.app.state, "embedding_queue", None)
    if queue is None:
        raise HTTPException(status_code=503, detail="Embedding queue not ready")
    return queue


@router.post(
    "/organizations/{organization_id}/embeddings",
    status_code=202,
    response_model=EmbeddingJob,
)
async def start_embedding_run(
    organization_id: int,
    body: EmbeddingRunRequest | None = None,
    queue: EmbeddingQueue = Depends(get_embedding_queue),
) -> EmbeddingJob:
    dictionary_ids = body.dictionary_ids if body is not None else None
    try:
        return await queue.enqueue_organization(organization_id, dictionary_ids)
    except StorageError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc


@router.get("/jobs/{job_id}", response_model=EmbeddingJob)
async def get_job(job_id: str, queue: EmbeddingQueue = Depends(get_embedding_queue)) -> EmbeddingJob:
    job = queue.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return job


@router.delete("/jobs/{job_id}", response_model=EmbeddingJob)
async def cancel_job(job_id: str, queue: EmbeddingQueue = Depends(get_embedding_queue)) -> EmbeddingJob:
    if not queue.cancel_job(job_id):
        if queue.get_job(job_id) is None:
            raise HTTPException(status_code=404, detail="Job not found")
        raise HTTPException(status_code=409, detail="Job already finished")
    return queue.get_job(job_id)
