"""
Health check endpoint for the AdLex check service.

Exposes a /health endpoint returning service status and the current
queue occupancy.
"""

from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from checks.queue_manager import CheckQueueManager

router = APIRouter()

# Module-level reference set by main.py at startup
_queue_manager: CheckQueueManager | None = None


def configure(queue_manager: CheckQueueManager | None) -> None:
    """Inject the queue manager for the health endpoint."""
    global _queue_manager
    _queue_manager = queue_manager


@router.get("/health")
async def health() -> JSONResponse:
    """Return check service health status."""
    if _queue_manager is None:
        return JSONResponse(
            status_code=503,
            content={"service": "checks", "status": "starting", "queue": None},
        )
    return JSONResponse(
        status_code=200,
        content={
            "service": "checks",
            "status": "healthy",
            "queue": _queue_manager.get_status().model_dump(),
        },
    )
