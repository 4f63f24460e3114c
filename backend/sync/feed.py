"""
Feed sources for the Sync Adapter.

The feed's own identifiers are resolved to internal team/player ids before a
record reaches the ledger, so every source hands back ``FeedLineupItem`` /
``FeedEvent`` models ready for the append contracts.
"""
from __future__ import annotations

import abc
from typing import Any, Optional

import httpx
from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from shared.config import Settings, get_settings
from shared.models.domain import FeedEvent, FeedLineupItem
from shared.utils.circuit_breaker import CircuitBreaker, CircuitBreakerOpen
from shared.utils.http_client import FeedHTTPClient
from shared.utils.logging import get_logger

from ledger.errors import SyncTransientError, ValidationError

logger = get_logger(__name__)

_LINEUP_ADAPTER = TypeAdapter(list[FeedLineupItem])
_EVENTS_ADAPTER = TypeAdapter(list[FeedEvent])


class FeedSource(abc.ABC):
    """Contract every feed connector implements."""

    async def start(self) -> None:
        """Open connections. Default: nothing to open."""

    async def close(self) -> None:
        """Release connections. Default: nothing to release."""

    @abc.abstractmethod
    async def fetch_lineup(self, match_id: int) -> list[FeedLineupItem]:
        ...

    @abc.abstractmethod
    async def fetch_events(self, match_id: int) -> list[FeedEvent]:
        ...


class HttpFeedSource(FeedSource):
    """
    Pulls lineups and events over HTTP.

    Expected payloads are either a bare JSON list or an object wrapping the
    list under ``"lineup"`` / ``"events"``. Timeouts, transport errors, 5xx
    responses and an open circuit become ``SyncTransientError``; a 4xx or a
    malformed payload becomes ``ValidationError`` and does not trip the breaker.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        http: Optional[FeedHTTPClient] = None,
        breaker: Optional[CircuitBreaker] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._http = http or FeedHTTPClient(self._settings)
        self._breaker = breaker or CircuitBreaker(
            "sync_feed",
            failure_threshold=self._settings.sync_breaker_failure_threshold,
            recovery_timeout_s=self._settings.sync_breaker_recovery_s,
            ignored=(ValidationError,),
        )

    async def start(self) -> None:
        await self._http.start()

    async def close(self) -> None:
        await self._http.close()

    async def _fetch(self, path: str) -> Any:
        try:
            return await self._http.get_json(path)
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            if status >= 500 or status == 429:
                raise
            raise ValidationError(f"Feed rejected {path} with HTTP {status}", path=path, status=status) from exc

    async def _get(self, path: str) -> Any:
        try:
            return await self._breaker.call(self._fetch, path)
        except CircuitBreakerOpen as exc:
            raise SyncTransientError(str(exc), retry_after=exc.retry_after) from exc
        except httpx.HTTPStatusError as exc:
            raise SyncTransientError(
                f"Feed returned HTTP {exc.response.status_code} for {path}",
                path=path,
                status=exc.response.status_code,
            ) from exc
        except (httpx.TimeoutException, httpx.TransportError) as exc:
            raise SyncTransientError(f"Feed unreachable for {path}: {exc}", path=path) from exc

    @staticmethod
    def _unwrap(payload: Any, key: str) -> Any:
        if isinstance(payload, dict):
            return payload.get(key, [])
        return payload

    async def fetch_lineup(self, match_id: int) -> list[FeedLineupItem]:
        path = f"/matches/{match_id}/lineup"
        payload = self._unwrap(await self._get(path), "lineup")
        try:
            return _LINEUP_ADAPTER.validate_python(payload)
        except PydanticValidationError as exc:
            logger.warning("feed_payload_invalid", match_id=match_id, path=path, errors=exc.error_count())
            raise ValidationError(f"Malformed lineup payload for match {match_id}", match_id=match_id) from exc

    async def fetch_events(self, match_id: int) -> list[FeedEvent]:
        path = f"/matches/{match_id}/events"
        payload = self._unwrap(await self._get(path), "events")
        try:
            return _EVENTS_ADAPTER.validate_python(payload)
        except PydanticValidationError as exc:
            logger.warning("feed_payload_invalid", match_id=match_id, path=path, errors=exc.error_count())
            raise ValidationError(f"Malformed events payload for match {match_id}", match_id=match_id) from exc
