"""
Circuit breaker guarding calls to the sync feed.

States:
  CLOSED    - calls pass through
  OPEN      - too many consecutive failures; calls fail fast
  HALF_OPEN - after the recovery window, one probe call decides which way to go

Exceptions listed in ``ignored`` (e.g. a 4xx from the feed) are re-raised
without counting as failures: the feed answered, it just said no.
"""
from __future__ import annotations

import asyncio
import time
from enum import Enum
from typing import Any, Callable, Coroutine, TypeVar

from shared.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreakerOpen(Exception):
    """Raised instead of calling through while the circuit is open."""

    def __init__(self, name: str, retry_after: float):
        self.name = name
        self.retry_after = retry_after
        super().__init__(f"Circuit breaker '{name}' is open; retry after {retry_after:.0f}s")


class CircuitBreaker:
    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        recovery_timeout_s: float = 60.0,
        ignored: tuple[type[BaseException], ...] = (),
    ) -> None:
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout_s = recovery_timeout_s
        self._ignored = ignored

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._opened_at: float = 0.0
        self._probe_in_flight = False
        self._lock = asyncio.Lock()

    @property
    def state(self) -> CircuitState:
        if self._state == CircuitState.OPEN and self.retry_after <= 0:
            return CircuitState.HALF_OPEN
        return self._state

    @property
    def retry_after(self) -> float:
        """Seconds until the next probe is allowed; 0 when not open."""
        if self._state != CircuitState.OPEN:
            return 0.0
        return max(self.recovery_timeout_s - (time.monotonic() - self._opened_at), 0.0)

    async def call(self, func: Callable[..., Coroutine[Any, Any, T]], *args: Any, **kwargs: Any) -> T:
        probing = False
        async with self._lock:
            state = self.state
            if state == CircuitState.OPEN:
                raise CircuitBreakerOpen(self.name, max(self.retry_after, 1.0))
            if state == CircuitState.HALF_OPEN:
                if self._probe_in_flight:
                    raise CircuitBreakerOpen(self.name, 1.0)
                self._probe_in_flight = True
                probing = True

        try:
            result = await func(*args, **kwargs)
        except self._ignored:
            await self._on_success()
            raise
        except Exception as exc:
            await self._on_failure(exc)
            raise
        except BaseException:
            # cancelled mid-call: free the probe slot without judging the feed
            if probing:
                self._probe_in_flight = False
            raise
        await self._on_success()
        return result

    async def _on_success(self) -> None:
        async with self._lock:
            if self._state != CircuitState.CLOSED:
                logger.info("circuit_breaker_closed", name=self.name)
            self._state = CircuitState.CLOSED
            self._failure_count = 0
            self._probe_in_flight = False

    async def _on_failure(self, exc: Exception) -> None:
        async with self._lock:
            self._failure_count += 1
            was_probe = self._probe_in_flight
            self._probe_in_flight = False
            if was_probe or self._failure_count >= self.failure_threshold:
                self._state = CircuitState.OPEN
                self._opened_at = time.monotonic()
                logger.warning(
                    "circuit_breaker_reopened" if was_probe else "circuit_breaker_opened",
                    name=self.name,
                    failures=self._failure_count,
                    error=str(exc),
                )
