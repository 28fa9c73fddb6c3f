"""
Tests for the embedding service HTTP surface (job routes and health).
"""

from __future__ import annotations

import httpx
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from adlex_common.storage.rest_store import StorageError

from embeddings import health, routes


@pytest.fixture()
def queue(make_queue):
    return make_queue(max_concurrent=1)


@pytest.fixture()
def app(queue) -> FastAPI:
    application = FastAPI()
    application.include_router(health.router)
    application.include_router(routes.router)
    application.state.embedding_queue = queue
    health.configure(queue)
    yield application
    health.configure(None)


def _client(app: FastAPI) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")


class TestJobRoutes:

    async def test_start_run_and_poll(self, app: FastAPI, queue) -> None:
        async with _client(app) as client:
            resp = await client.post("/organizations/1/embeddings")
            assert resp.status_code == 202
            job = resp.json()
            assert job["organization_id"] == 1
            assert job["total"] == 3

            await queue.wait_job(job["id"])
            polled = (await client.get(f"/jobs/{job['id']}")).json()
            assert polled["status"] == "completed"
            assert polled["processed"] == 3

    async def test_start_run_with_ids(self, app: FastAPI, queue, store) -> None:
        async with _client(app) as client:
            resp = await client.post("/organizations/1/embeddings", json={"dictionary_ids": [1]})
            assert resp.status_code == 202
            assert resp.json()["total"] == 1
            await queue.wait_job(resp.json()["id"])
        assert store.queries[-1]["ids"] == [1]

    async def test_storage_error_maps_to_502(self, app: FastAPI, store) -> None:
        async def broken(*args, **kwargs):
            raise StorageError("GET /dictionaries failed with status 500", status_code=500)

        store.list_dictionary_items = broken
        async with _client(app) as client:
            resp = await client.post("/organizations/1/embeddings")
        assert resp.status_code == 502

    async def test_unknown_job_is_404(self, app: FastAPI) -> None:
        async with _client(app) as client:
            assert (await client.get("/jobs/nope")).status_code == 404
            assert (await client.delete("/jobs/nope")).status_code == 404

    async def test_cancel_running_job(self, app: FastAPI, queue, embedder) -> None:
        gate = embedder.hold("治る")
        async with _client(app) as client:
            job_id = (await client.post("/organizations/1/embeddings")).json()["id"]
            resp = await client.delete(f"/jobs/{job_id}")
            assert resp.status_code == 200
            assert resp.json()["status"] == "cancelled"
            gate.set()
            await queue.wait_job(job_id)

    async def test_cancel_finished_job_is_409(self, app: FastAPI) -> None:
        async with _client(app) as client:
            job = (await client.post("/organizations/42/embeddings")).json()
            assert job["status"] == "completed"
            assert (await client.delete(f"/jobs/{job['id']}")).status_code == 409


class TestHealth:

    def test_healthy(self, app: FastAPI) -> None:
        resp = TestClient(app).get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"service": "embeddings", "status": "healthy", "active_jobs": 0}

    def test_starting_when_unconfigured(self) -> None:
        application = FastAPI()
        application.include_router(health.router)
        application.include_router(routes.router)
        health.configure(None)
        client = TestClient(application)
        assert client.get("/health").status_code == 503
        assert client.get("/jobs/abc").status_code == 503
