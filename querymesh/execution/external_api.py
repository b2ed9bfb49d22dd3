"""
ExternalAPICoordinator: rows from URL, API and stored-file sources.

URL and API sources are fetched over HTTP. File and Google Docs sources were
extracted when they were uploaded, so their stored excerpt is returned as-is.
"""

import asyncio
import logging
import time
from typing import Any

import httpx

from querymesh.models.query import Query
from querymesh.models.results import ApiResult, failed_result
from querymesh.models.sources import RegisteredSource

logger = logging.getLogger(__name__)

SUCCESS_CONFIDENCE = 0.8


def normalize_payload(payload: Any) -> list[dict[str, Any]]:
    """Coerce a response body into a list of row dicts."""
    if isinstance(payload, list):
        if all(isinstance(item, dict) for item in payload):
            return payload
        return [item if isinstance(item, dict) else {"value": item} for item in payload]
    if isinstance(payload, dict):
        return [payload]
    return [{"content": str(payload)}]


class ExternalAPICoordinator:
    """
    Fetches rows for non-database sources.

    Args:
        timeout_seconds: Total HTTP timeout per request
        client: Optional shared httpx.AsyncClient; one is created per call otherwise
    """

    def __init__(self, timeout_seconds: float = 15.0, client: httpx.AsyncClient | None = None):
        self.timeout = httpx.Timeout(timeout_seconds)
        self.client = client

    async def execute(self, source: RegisteredSource, query: Query) -> ApiResult:
        start_time = time.perf_counter()
        try:
            if source.kind in ("file", "google_docs"):
                return ApiResult(
                    source_id=source.id,
                    source_name=source.name,
                    success=True,
                    data=list(source.content_excerpt),
                    execution_time_ms=(time.perf_counter() - start_time) * 1000,
                    confidence_score=SUCCESS_CONFIDENCE,
                )

            if not source.endpoint_url:
                raise ValueError(f"Source {source.id} has no endpoint URL")

            status, rows = await self._fetch(source.endpoint_url)
            logger.info(
                f"Fetched {len(rows)} rows from {source.id}",
                extra={"source_id": source.id, "response_status": status},
            )
            return ApiResult(
                source_id=source.id,
                source_name=source.name,
                success=True,
                data=rows,
                execution_time_ms=(time.perf_counter() - start_time) * 1000,
                confidence_score=SUCCESS_CONFIDENCE,
                endpoint=source.endpoint_url,
                response_status=status,
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(
                f"External source {source.id} failed",
                extra={"source_id": source.id, "error_type": type(e).__name__},
            )
            result = failed_result(
                source.id,
                source.name,
                source.kind,
                f"{type(e).__name__}: {e}",
                execution_time_ms=(time.perf_counter() - start_time) * 1000,
            )
            result.endpoint = source.endpoint_url
            if isinstance(e, httpx.HTTPStatusError):
                result.response_status = e.response.status_code
            return result

    async def _fetch(self, url: str) -> tuple[int, list[dict[str, Any]]]:
        if self.client is not None:
            return await self._get(self.client, url)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await self._get(client, url)

    async def _get(self, client: httpx.AsyncClient, url: str) -> tuple[int, list[dict[str, Any]]]:
        response = await client.get(url, timeout=self.timeout)
        response.raise_for_status()
        try:
            payload = response.json()
        except ValueError:
            payload = response.text
        return response.status_code, normalize_payload(payload)
