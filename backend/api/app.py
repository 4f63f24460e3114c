"""
FastAPI application factory for the Match Desk API.

Creates the app with:
- REST routes (matches, lineup, events, referees, sync ops)
- Middleware stack and LedgerError handlers
- Health check endpoints
- Lifespan management: connect Postgres/Redis, create schema, start the sync runner
"""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Awaitable, Callable, Dict, Optional, Union

from fastapi import FastAPI
from sqlalchemy import text

from shared.config import get_settings
from shared.utils.database import DatabaseManager
from shared.utils.logging import get_logger, setup_logging
from shared.utils.metrics import start_metrics_server
from shared.utils.redis_manager import RedisManager

from api.dependencies import get_db, get_redis, init_dependencies
from api.middleware import setup_middleware
from api.routes.events import router as events_router
from api.routes.lineup import router as lineup_router
from api.routes.matches import router as matches_router
from api.routes.ops import router as ops_router
from api.routes.referees import router as referees_router
from ledger.locks import MatchLockRegistry
from ledger.service import MatchDeskService
from sync.adapter import SyncAdapter
from sync.feed import HttpFeedSource
from sync.runner import SyncRunner

logger = get_logger(__name__)

_CONNECT_RETRY_ATTEMPTS = 10
_CONNECT_RETRY_BASE_DELAY_S = 2.0


async def _connect_with_retry(connect_fn: Callable[[], Awaitable[None]], name: str) -> None:
    """Call async connect_fn(); retry with exponential backoff on failure."""
    for attempt in range(1, _CONNECT_RETRY_ATTEMPTS + 1):
        try:
            await connect_fn()
            return
        except Exception as exc:
            if attempt == _CONNECT_RETRY_ATTEMPTS:
                raise
            delay = _CONNECT_RETRY_BASE_DELAY_S * (2 ** (attempt - 1))
            logger.warning(
                "connect_retry",
                name=name,
                attempt=attempt,
                max_attempts=_CONNECT_RETRY_ATTEMPTS,
                delay_s=delay,
                error=str(exc),
            )
            await asyncio.sleep(delay)


@asynccontextmanager
async def _noop_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """No-op lifespan for tests that wire dependencies themselves."""
    yield


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    settings = get_settings()
    setup_logging("api")
    start_metrics_server()

    db = DatabaseManager(settings)
    await _connect_with_retry(db.connect, "Database")
    await db.create_schema()

    redis: Optional[RedisManager] = None
    if settings.redis_enabled:
        redis = RedisManager(settings)
        await _connect_with_retry(redis.connect, "Redis")

    service = MatchDeskService(db, redis=redis, settings=settings, locks=MatchLockRegistry())
    feed = HttpFeedSource(settings)
    await feed.start()
    adapter = SyncAdapter(service, feed, redis=redis, settings=settings)
    runner = SyncRunner(adapter, db, settings)
    init_dependencies(db, service, adapter, runner, redis=redis)

    runner_task = asyncio.create_task(runner.run(), name="sync-supervisor")
    logger.info("api_service_started", host=settings.api_host, port=settings.api_port)

    yield

    runner.request_shutdown()
    try:
        await asyncio.wait_for(runner_task, timeout=10.0)
    except asyncio.TimeoutError:
        runner_task.cancel()
        await runner.stop_all()
    await feed.close()
    await db.disconnect()
    if redis is not None:
        await redis.disconnect()
    logger.info("api_service_stopped")


def create_app(*, use_lifespan: bool = True) -> FastAPI:
    """Create and configure the FastAPI application. Set use_lifespan=False for tests."""
    app = FastAPI(
        title="Match Desk API",
        description="Match event ledger and scoreboard reconciliation",
        version="1.0.0",
        lifespan=lifespan if use_lifespan else _noop_lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    setup_middleware(app)

    app.include_router(matches_router)
    app.include_router(lineup_router)
    app.include_router(events_router)
    app.include_router(referees_router)
    app.include_router(ops_router)

    @app.get("/health", tags=["system"])
    async def health() -> dict[str, str]:
        return {"status": "ok", "service": "api"}

    @app.get("/ready", tags=["system"])
    async def readiness() -> Dict[str, Union[str, bool, None]]:
        """Readiness probe: checks the database and, when enabled, Redis."""
        db_ok = False
        redis_ok: Optional[bool] = None

        try:
            async with get_db().read_session() as session:
                await session.execute(text("SELECT 1"))
            db_ok = True
        except Exception as exc:
            logger.warning("readiness_database_failed", error=str(exc))

        redis = get_redis()
        if redis is not None:
            try:
                await redis.client.ping()
                redis_ok = True
            except Exception as exc:
                redis_ok = False
                logger.warning("readiness_redis_failed", error=str(exc))

        ok = db_ok and redis_ok is not False
        return {"status": "ok" if ok else "degraded", "database": db_ok, "redis": redis_ok}

    return app


app = create_app()
