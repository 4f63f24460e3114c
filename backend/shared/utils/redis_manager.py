"""
Redis connection manager for Match Desk.
Holds scoreboard snapshots, the scoreboard fanout channel and the per-match
sync locks.
"""
from __future__ import annotations

from typing import Any, Optional

import redis.asyncio as aioredis
from redis.asyncio import Redis

from shared.config import Settings, get_settings
from shared.utils.logging import get_logger

logger = get_logger(__name__)

# ── Key namespaces ──────────────────────────────────────────────────────
SNAP_SCOREBOARD_KEY = "snap:match:{match_id}:scoreboard"
SYNC_LOCK_KEY = "lock:sync:match:{match_id}"
FANOUT_CHANNEL = "fanout:match:{match_id}:scoreboard"


def _fmt(template: str, **kwargs: Any) -> str:
    return template.format(**kwargs)


class RedisManager:
    """Manages the async Redis connection pool and provides typed helpers."""

    # Lua script: atomically delete only if we hold the lock
    _RELEASE_LOCK_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    redis.call("del", KEYS[1])
    return 1
end
return 0
"""

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()
        self._pool: Optional[Redis] = None

    async def connect(self) -> None:
        """Initialize the connection pool."""
        self._pool = aioredis.from_url(
            self._settings.redis_url_str,
            max_connections=self._settings.redis_max_connections,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_keepalive=True,
            retry_on_timeout=True,
        )
        await self._pool.ping()
        logger.info("redis_connected", url=self._settings.redis_url_str)

    async def disconnect(self) -> None:
        """Graceful shutdown."""
        if self._pool:
            await self._pool.aclose()
            logger.info("redis_disconnected")

    @property
    def client(self) -> Redis:
        if self._pool is None:
            raise RuntimeError("RedisManager not connected. Call connect() first.")
        return self._pool

    # ── Scoreboard snapshot + fanout ────────────────────────────────────
    async def publish_scoreboard(self, match_id: int, payload: str) -> int:
        """Store the latest scoreboard snapshot and publish it. Returns receiver count."""
        ttl_s = self._settings.scoreboard_snapshot_ttl_s
        pipe = self.client.pipeline(transaction=True)
        pipe.set(_fmt(SNAP_SCOREBOARD_KEY, match_id=match_id), payload, ex=ttl_s)
        pipe.publish(_fmt(FANOUT_CHANNEL, match_id=match_id), payload)
        results = await pipe.execute()
        return int(results[1])

    # ── Sync locks ──────────────────────────────────────────────────────
    async def try_acquire_sync_lock(self, match_id: int, owner: str, ttl_s: int) -> bool:
        """SET NX so only one instance runs a sync pass for a match at a time."""
        key = _fmt(SYNC_LOCK_KEY, match_id=match_id)
        return bool(await self.client.set(key, owner, nx=True, ex=ttl_s))

    async def release_sync_lock(self, match_id: int, owner: str) -> bool:
        key = _fmt(SYNC_LOCK_KEY, match_id=match_id)
        result = await self.client.eval(self._RELEASE_LOCK_SCRIPT, 1, key, owner)
        return bool(result)
