"""
Embedding API client for AdLex.

Calls an OpenAI-compatible ``POST /embeddings`` endpoint and returns the
raw vector. Implements the ``Embedder`` port used by the embedding queue
and by similarity matching in the check pipeline.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

logger = structlog.get_logger()

_DEFAULT_MODEL = "text-embedding-3-small"
_DEFAULT_TIMEOUT_S = 30.0


class EmbeddingServiceError(Exception):
    """Raised when the embedding API answers with an unusable payload."""


class EmbeddingClient:
    """Async client for a single-input embeddings endpoint.

    HTTP errors surface as :class:`httpx.HTTPStatusError` so the retry
    policy can tell transient from permanent failures.

    Args:
        base_url: API root, e.g. ``https://api.openai.com/v1``.
        api_key: Bearer token.
        model: Embedding model identifier.
        timeout: Per-request timeout in seconds.
        transport: Optional custom transport (used by tests).
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        model: str = _DEFAULT_MODEL,
        timeout: float = _DEFAULT_TIMEOUT_S,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.model = model
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers={"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    async def embed(self, text: str) -> list[float]:
        """Return the embedding of *text*.

        Raises:
            httpx.HTTPStatusError: On a non-2xx answer.
            httpx.TransportError: On connection problems.
            EmbeddingServiceError: If the body carries no embedding.
        """
        resp = await self._client.post("/embeddings", json={"input": text, "model": self.model})
        resp.raise_for_status()
        vector = _extract_embedding(resp.json())
        logger.debug("embedding_generated", model=self.model, dimensions=len(vector))
        return vector

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if not self._client.is_closed:
            await self._client.aclose()


def _extract_embedding(body: Any) -> list[float]:
    try:
        embedding = body["data"][0]["embedding"]
    except (KeyError, IndexError, TypeError) as exc:
        raise EmbeddingServiceError("embedding response has no data[0].embedding") from exc
    if not isinstance(embedding, list) or not embedding:
        raise EmbeddingServiceError("embedding response carries an empty vector")
    try:
        return [float(v) for v in embedding]
    except (TypeError, ValueError) as exc:
        raise EmbeddingServiceError("embedding response carries non-numeric components") from exc
