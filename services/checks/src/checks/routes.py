"""
Queue API router for the AdLex check service.

``POST /queue`` submits a check for processing and ``GET /queue/status``
reports queue occupancy.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field

from adlex_common.models.check import InputType
from adlex_common.models.queue import Priority, QueueItem

from checks.queue_manager import CheckQueueManager, QueueStatus

router = APIRouter(prefix="/queue", tags=["queue"])


class EnqueueRequest(BaseModel):
    check_id: int = Field(..., description="Id of an existing pending check.")
    text: str = Field(..., min_length=1, description="Text to check.")
    organization_id: int = Field(..., description="Owning organization.")
    priority: Priority = Field(default=Priority.NORMAL)
    input_type: InputType = Field(default=InputType.TEXT)
    image_ref: str | None = Field(default=None)


def get_queue_manager(request: Request) -> CheckQueueManager:
    """Return the queue manager stored on app state."""
    manager = getattr(request.app.state, "queue_manager", None)
    if manager is None:
        raise HTTPException(status_code=503, detail="Queue not ready")
    return manager


@router.post("", status_code=202, response_model=QueueItem)
async def enqueue_check(
    body: EnqueueRequest,
    manager: CheckQueueManager = Depends(get_queue_manager),
) -> QueueItem:
    return manager.enqueue(
        body.check_id,
        body.text,
        body.organization_id,
        priority=body.priority,
        input_type=body.input_type,
        image_ref=body.image_ref,
    )


@router.get("/status", response_model=QueueStatus)
async def queue_status(manager: CheckQueueManager = Depends(get_queue_manager)) -> QueueStatus:
    return manager.get_status()
