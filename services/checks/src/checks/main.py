"""
Check service entry point for AdLex.

Wires the REST storage adapter, the embedding client, the event
publisher and the reference check pipeline into a
:class:`CheckQueueManager`, and exposes the queue, health and metrics
endpoints.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

import structlog
import uvicorn
from fastapi import FastAPI
from prometheus_client import make_asgi_app

from adlex_common.config import get_settings
from adlex_common.domain.events import EventPublisher, EventStatistics
from adlex_common.logging import configure_logging
from adlex_common.middleware import LoggingMiddleware
from adlex_common.storage.rest_store import RestStore

from checks import health, routes
from checks.processor import CheckPipeline
from checks.queue_manager import CheckQueueManager
from embeddings.client import EmbeddingClient

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """FastAPI lifespan: build the queue and its collaborators, then clean up."""
    settings = get_settings()
    configure_logging("checks", settings.log_level)
    logger.info("checks_service_starting")

    store = RestStore(settings.storage_url, settings.storage_api_key)
    embedder = None
    if settings.embedding_api_key:
        embedder = EmbeddingClient(
            settings.embedding_api_url,
            settings.embedding_api_key,
            model=settings.embedding_model,
            timeout=settings.embedding_timeout_s,
        )
    publisher = EventPublisher()
    statistics = EventStatistics()
    publisher.subscribe_all(statistics)

    pipeline = CheckPipeline(store, store, store, publisher, embedder=embedder)
    manager = CheckQueueManager(pipeline, store, max_concurrent=settings.queue_max_concurrent)

    app.state.queue_manager = manager
    app.state.event_statistics = statistics
    health.configure(manager)
    logger.info("checks_service_ready", max_concurrent=manager.max_concurrent)
    yield

    logger.info("checks_service_stopping", **manager.get_status().model_dump())
    health.configure(None)
    await store.close()
    if embedder is not None:
        await embedder.close()
    logger.info("checks_service_stopped")


def create_app() -> FastAPI:
    """Build and return the fully-configured FastAPI application."""
    app = FastAPI(title="AdLex Check Service", version="0.1.0", lifespan=lifespan)
    app.include_router(health.router)
    app.include_router(routes.router)
    app.mount("/metrics", make_asgi_app())
    app.add_middleware(LoggingMiddleware)
    return app


app = create_app()


if __name__ == "__main__":
    settings = get_settings()
    uvicorn.run(
        "checks.main:app",
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )
