"""
Dependency injection for the API service.
Provides the database, Redis, the ledger facade and the sync runner to route handlers.
"""
from __future__ import annotations

from typing import Optional

from shared.utils.database import DatabaseManager
from shared.utils.redis_manager import RedisManager

from ledger.service import MatchDeskService
from sync.adapter import SyncAdapter
from sync.runner import SyncRunner

# Module-level singletons, initialized at startup
_db: DatabaseManager | None = None
_redis: RedisManager | None = None
_service: MatchDeskService | None = None
_adapter: SyncAdapter | None = None
_runner: SyncRunner | None = None


def init_dependencies(
    db: DatabaseManager,
    service: MatchDeskService,
    adapter: SyncAdapter,
    runner: SyncRunner,
    redis: Optional[RedisManager] = None,
) -> None:
    """Initialize module-level singletons. Called once at startup."""
    global _db, _redis, _service, _adapter, _runner
    _db = db
    _redis = redis
    _service = service
    _adapter = adapter
    _runner = runner


def get_db() -> DatabaseManager:
    if _db is None:
        raise RuntimeError("DatabaseManager not initialized; call init_dependencies first")
    return _db


def get_redis() -> Optional[RedisManager]:
    """Redis is optional; None when disabled."""
    return _redis


def get_service() -> MatchDeskService:
    if _service is None:
        raise RuntimeError("MatchDeskService not initialized; call init_dependencies first")
    return _service


def get_sync_adapter() -> SyncAdapter:
    if _adapter is None:
        raise RuntimeError("SyncAdapter not initialized; call init_dependencies first")
    return _adapter


def get_sync_runner() -> SyncRunner:
    if _runner is None:
        raise RuntimeError("SyncRunner not initialized; call init_dependencies first")
    return _runner
