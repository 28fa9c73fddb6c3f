"""
Embedding service entry point for AdLex.

Wires the REST storage adapter, the embedding API client and the event
publisher into an :class:`EmbeddingQueue`, and exposes the job, health
and metrics endpoints.
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

from embeddings import health, routes
from embeddings.client import EmbeddingClient
from embeddings.embedding_queue import EmbeddingQueue

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """FastAPI lifespan: build the embedding queue, then clean up."""
    settings = get_settings()
    configure_logging("embeddings", settings.log_level)
    logger.info("embeddings_service_starting")

    store = RestStore(settings.storage_url, settings.storage_api_key)
    client = EmbeddingClient(
        settings.embedding_api_url,
        settings.embedding_api_key,
        model=settings.embedding_model,
        timeout=settings.embedding_timeout_s,
    )
    publisher = EventPublisher()
    statistics = EventStatistics()
    publisher.subscribe_all(statistics)

    queue = EmbeddingQueue(store, client, publisher)
    app.state.embedding_queue = queue
    app.state.event_statistics = statistics
    health.configure(queue)
    logger.info("embeddings_service_ready", model=client.model)
    yield

    health.configure(None)
    await client.close()
    await store.close()
    logger.info("embeddings_service_stopped")


def create_app() -> FastAPI:
    """Build and return the fully-configured FastAPI application."""
    app = FastAPI(title="AdLex Embedding Service", version="0.1.0", lifespan=lifespan)
    app.include_router(health.router)
    app.include_router(routes.router)
    app.mount("/metrics", make_asgi_app())
    app.add_middleware(LoggingMiddleware)
    return app


app = create_app()


if __name__ == "__main__":
    settings = get_settings()
    uvicorn.run(
        "embeddings.main:app",
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )
