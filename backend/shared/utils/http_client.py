"""
Async HTTP client for the sync feed.
Retries timeouts, 429 and 5xx with exponential backoff and counts every
attempt in ``FEED_REQUESTS``.
"""
from __future__ import annotations

import asyncio
import time
from typing import Any, Optional

import httpx

from shared.config import Settings, get_settings
from shared.utils.logging import get_logger
from shared.utils.metrics import FEED_REQUESTS

logger = get_logger(__name__)

_RETRYABLE_STATUS = {429, 500, 502, 503, 504}


class FeedHTTPClient:
    def __init__(
        self,
        settings: Settings | None = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def start(self) -> None:
        headers = {"Accept": "application/json"}
        if self._settings.sync_feed_api_key:
            headers["Authorization"] = f"Bearer {self._settings.sync_feed_api_key}"
        self._client = httpx.AsyncClient(
            base_url=self._settings.sync_feed_base_url.rstrip("/"),
            headers=headers,
            timeout=httpx.Timeout(self._settings.sync_request_timeout_s, connect=5.0),
            follow_redirects=True,
            transport=self._transport,
        )

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    def _backoff(self, attempt: int, response: Optional[httpx.Response] = None) -> float:
        if response is not None and "Retry-After" in response.headers:
            try:
                return min(float(response.headers["Retry-After"]), self._settings.sync_backoff_max_s)
            except ValueError:
                pass
        delay = self._settings.sync_backoff_base_s * (2 ** (attempt - 1))
        return min(delay, self._settings.sync_backoff_max_s)

    async def get_json(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """
        GET ``path`` and decode the JSON body.

        Raises:
            httpx.HTTPStatusError: on a 4xx, or a retryable status once
                retries are exhausted.
            httpx.TimeoutException / httpx.TransportError: once retries are
                exhausted.
        """
        if not self._client:
            raise RuntimeError("FeedHTTPClient not started. Call start() first.")

        attempts = max(self._settings.sync_max_retries, 1)
        for attempt in range(1, attempts + 1):
            start = time.perf_counter()
            try:
                resp = await self._client.get(path, params=params)
            except httpx.TimeoutException:
                FEED_REQUESTS.labels(status="timeout").inc()
                logger.warning("feed_timeout", path=path, attempt=attempt)
                if attempt == attempts:
                    raise
                await asyncio.sleep(self._backoff(attempt))
                continue
            except httpx.TransportError as exc:
                FEED_REQUESTS.labels(status="error").inc()
                logger.warning("feed_transport_error", path=path, attempt=attempt, error=str(exc))
                if attempt == attempts:
                    raise
                await asyncio.sleep(self._backoff(attempt))
                continue

            FEED_REQUESTS.labels(status=str(resp.status_code)).inc()
            if resp.status_code in _RETRYABLE_STATUS and attempt < attempts:
                logger.warning("feed_retryable_status", path=path, status=resp.status_code, attempt=attempt)
                await asyncio.sleep(self._backoff(attempt, resp))
                continue

            resp.raise_for_status()
            logger.debug(
                "feed_request_success",
                path=path,
                status=resp.status_code,
                latency_ms=round((time.perf_counter() - start) * 1000, 2),
            )
            return resp.json()

        raise RuntimeError(f"Feed request to {path} failed after {attempts} attempts")
