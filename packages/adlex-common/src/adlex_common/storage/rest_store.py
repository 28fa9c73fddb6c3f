"""
REST storage adapter for AdLex.

Talks to the hosted PostgREST-style data API over :mod:`httpx` and
implements the ``CheckStatusStore``, ``CheckResultStore`` and
``DictionaryStore`` ports. Vectors are stored as JSON-array strings,
matching the ``dictionaries.vector`` column format.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from typing import Any

import httpx
import structlog
from pydantic import ValidationError

from adlex_common.models.check import CheckStatusUpdate, Violation
from adlex_common.models.dictionary import DictionaryItem

logger = structlog.get_logger()

_DEFAULT_TIMEOUT_S = 10.0


class StorageError(Exception):
    """Raised when the data API answers with a non-2xx status."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RestStore:
    """Async client for the ``/rest/v1`` data API.

    Args:
        base_url: API root, e.g. ``http://localhost:54321``.
        api_key: Service key sent as ``apikey`` and bearer token.
        timeout: Per-request timeout in seconds.
        transport: Optional custom transport (used by tests).
    """

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        *,
        timeout: float = _DEFAULT_TIMEOUT_S,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {"Content-Type": "application/json", "Prefer": "return=minimal"}
        if api_key:
            headers["apikey"] = api_key
            headers["Authorization"] = f"Bearer {api_key}"
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/") + "/rest/v1",
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    # ── checks ──

    async def update_check_status(self, check_id: int, update: CheckStatusUpdate) -> None:
        payload = update.model_dump(mode="json", exclude_none=True)
        await self._request("PATCH", "/checks", params={"id": f"eq.{check_id}"}, json=payload)
        logger.debug("check_status_written", check_id=check_id, status=update.status.value)

    async def save_result(
        self,
        check_id: int,
        violations: Sequence[Violation],
        modified_text: str | None,
    ) -> None:
        """Replace the check's violations and record its rewritten text.

        Rows from an earlier attempt are deleted first, so calling this again
        for the same check leaves exactly one set of violations.
        """
        await self._request("DELETE", "/violations", params={"check_id": f"eq.{check_id}"})
        if violations:
            rows = [
                v.model_dump(mode="json", exclude={"id", "created_at"}) for v in violations
            ]
            await self._request("POST", "/violations", json=rows)
        await self._request(
            "PATCH",
            "/checks",
            params={"id": f"eq.{check_id}"},
            json={"modified_text": modified_text, "violation_count": len(violations)},
        )
        logger.info("check_result_saved", check_id=check_id, violation_count=len(violations))

    # ── dictionaries ──

    async def list_dictionary_items(
        self,
        organization_id: int,
        *,
        missing_vector_only: bool = False,
        ids: Sequence[int] | None = None,
    ) -> list[DictionaryItem]:
        params: dict[str, str] = {
            "select": "*",
            "organization_id": f"eq.{organization_id}",
            "order": "id.asc",
        }
        if missing_vector_only:
            params["vector"] = "is.null"
        if ids:
            params["id"] = "in.(" + ",".join(str(i) for i in ids) + ")"
        response = await self._request("GET", "/dictionaries", params=params)
        items: list[DictionaryItem] = []
        for row in response.json():
            try:
                items.append(DictionaryItem.model_validate(row))
            except ValidationError as exc:
                logger.warning(
                    "dictionary_row_skipped",
                    organization_id=organization_id,
                    dictionary_id=row.get("id") if isinstance(row, dict) else None,
                    error_count=exc.error_count(),
                    error=str(exc.errors()[0]["msg"]),
                )
        return items

    async def store_vector(self, dictionary_id: int, vector: Sequence[float]) -> None:
        await self._request(
            "PATCH",
            "/dictionaries",
            params={"id": f"eq.{dictionary_id}"},
            json={"vector": json.dumps([float(v) for v in vector])},
        )

    # ── plumbing ──

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        response = await self._client.request(method, path, **kwargs)
        if response.is_error:
            logger.error(
                "storage_request_failed",
                method=method,
                path=path,
                status=response.status_code,
                body=response.text[:500],
            )
            raise StorageError(
                f"{method} {path} failed with status {response.status_code}",
                status_code=response.status_code,
            )
        return response

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if not self._client.is_closed:
            await self._client.aclose()
