"""
Periodic sync runner.

One cancellable asyncio task per match replays lineup then events every
``sync_interval_s``. Transient feed failures back off exponentially; a task
ends itself once the match has sync disabled, is closed or is gone. The
supervisor loop starts tasks for live matches with sync enabled.

Cancelling a task mid-pass rolls back that pass's transaction; passes that
already committed stay in the ledger.
"""
from __future__ import annotations

import asyncio
import time
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import select

from shared.config import Settings, get_settings
from shared.models.enums import MatchStatus
from shared.models.orm import MatchORM
from shared.utils.database import DatabaseManager
from shared.utils.logging import get_logger
from shared.utils.metrics import SYNC_ACTIVE_TASKS

from ledger.errors import LedgerError, MatchClosedError, NotFoundError, SyncDisabledError, SyncTransientError
from sync.adapter import SyncAdapter

logger = get_logger(__name__)

_TERMINAL_ERRORS = (SyncDisabledError, MatchClosedError, NotFoundError)


class SyncTask:
    """Bookkeeping for one match's periodic sync."""

    def __init__(self, match_id: int) -> None:
        self.match_id = match_id
        self.started_at = datetime.now(timezone.utc)
        self.passes: int = 0
        self.consecutive_errors: int = 0
        self.last_error: Optional[str] = None
        self.next_run_at: float = 0.0
        self.task_handle: Optional[asyncio.Task[None]] = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "match_id": self.match_id,
            "started_at": self.started_at.isoformat(),
            "passes": self.passes,
            "consecutive_errors": self.consecutive_errors,
            "last_error": self.last_error,
            "next_run_in_s": round(max(self.next_run_at - time.monotonic(), 0.0), 1),
        }


class SyncRunner:
    def __init__(
        self,
        adapter: SyncAdapter,
        db: DatabaseManager,
        settings: Settings | None = None,
    ) -> None:
        self._adapter = adapter
        self._db = db
        self._settings = settings or get_settings()
        self._tasks: dict[int, SyncTask] = {}
        self._shutdown = asyncio.Event()

    def _backoff(self, errors: int, retry_after: Optional[float] = None) -> float:
        delay = min(self._settings.sync_backoff_base_s * (2 ** (errors - 1)), self._settings.sync_backoff_max_s)
        if retry_after:
            delay = max(delay, retry_after)
        return delay

    # ── Per-match tasks ─────────────────────────────────────────────────

    def is_running(self, match_id: int) -> bool:
        task = self._tasks.get(match_id)
        return task is not None and task.task_handle is not None and not task.task_handle.done()

    def active(self) -> list[dict[str, Any]]:
        return [task.as_dict() for task in sorted(self._tasks.values(), key=lambda t: t.match_id)]

    def start(self, match_id: int) -> SyncTask:
        """Start the periodic task for ``match_id``; returns the running one if already started."""
        existing = self._tasks.get(match_id)
        if existing is not None and self.is_running(match_id):
            return existing
        task = SyncTask(match_id)
        task.task_handle = asyncio.create_task(self._run(task), name=f"sync:{match_id}")
        self._tasks[match_id] = task
        SYNC_ACTIVE_TASKS.set(len(self._tasks))
        logger.info("sync_task_started", match_id=match_id)
        return task

    async def stop(self, match_id: int) -> bool:
        task = self._tasks.pop(match_id, None)
        SYNC_ACTIVE_TASKS.set(len(self._tasks))
        if task is None or task.task_handle is None:
            return False
        if not task.task_handle.done():
            task.task_handle.cancel()
            try:
                await task.task_handle
            except asyncio.CancelledError:
                pass
        logger.info("sync_task_stopped", match_id=match_id, reason="cancelled", passes=task.passes)
        return True

    async def stop_all(self) -> None:
        for match_id in list(self._tasks):
            await self.stop(match_id)

    async def run_pass(self, match_id: int) -> None:
        await self._adapter.sync_lineup(match_id)
        await self._adapter.sync_events(match_id)

    async def _run(self, task: SyncTask) -> None:
        try:
            while True:
                try:
                    await self.run_pass(task.match_id)
                    task.passes += 1
                    task.consecutive_errors = 0
                    task.last_error = None
                    delay = self._settings.sync_interval_s
                except _TERMINAL_ERRORS as exc:
                    logger.info("sync_task_stopped", match_id=task.match_id, reason=exc.code, passes=task.passes)
                    return
                except SyncTransientError as exc:
                    task.consecutive_errors += 1
                    task.last_error = exc.code
                    delay = self._backoff(task.consecutive_errors, exc.retry_after)
                except LedgerError as exc:
                    # a rejected batch is retried on the normal cadence; the feed may correct itself
                    task.consecutive_errors += 1
                    task.last_error = exc.code
                    delay = self._backoff(task.consecutive_errors)
                except Exception as exc:
                    task.consecutive_errors += 1
                    task.last_error = type(exc).__name__
                    logger.error("sync_pass_crashed", match_id=task.match_id, error=str(exc), exc_info=True)
                    delay = self._backoff(task.consecutive_errors)
                task.next_run_at = time.monotonic() + delay
                await asyncio.sleep(delay)
        finally:
            if self._tasks.get(task.match_id) is task:
                del self._tasks[task.match_id]
            SYNC_ACTIVE_TASKS.set(len(self._tasks))

    # ── Supervisor ──────────────────────────────────────────────────────

    async def discover(self) -> list[int]:
        """Start tasks for live matches with sync enabled. Returns newly started match ids."""
        stmt = select(MatchORM.id).where(
            MatchORM.status == MatchStatus.LIVE.value,
            MatchORM.sync_enabled.is_(True),
        )
        async with self._db.read_session() as session:
            match_ids = list((await session.execute(stmt)).scalars().all())
        started = [match_id for match_id in match_ids if not self.is_running(match_id)]
        for match_id in started:
            self.start(match_id)
        return started

    async def run(self) -> None:
        while not self._shutdown.is_set():
            try:
                await self.discover()
            except asyncio.CancelledError:
                break
            except Exception as exc:
                logger.error("sync_discovery_error", error=str(exc), exc_info=True)
            try:
                await asyncio.wait_for(self._shutdown.wait(), timeout=self._settings.sync_interval_s)
            except asyncio.TimeoutError:
                continue
        await self.stop_all()

    def request_shutdown(self) -> None:
        self._shutdown.set()
