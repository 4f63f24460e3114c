"""
Sync Adapter: replays a feed batch through the same Lineup Registry and Event
Ledger that operators use.

A pass fetches the whole batch first, then applies it inside ONE locked
write transaction. Records already present are skipped (lineup by player,
events by ``external_id``), so a pass can be replayed any number of times. Any
rejected record aborts the pass and nothing from it is committed.
"""
from __future__ import annotations

import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from shared.config import Settings, get_settings
from shared.models.domain import LineupEntryCreate, MatchEventCreate, Scoreboard, SyncReport
from shared.models.enums import EventSource, SyncKind
from shared.utils.logging import get_logger
from shared.utils.metrics import LEDGER_MUTATIONS, SYNC_PASS_LATENCY, SYNC_PASSES, atrack_latency
from shared.utils.redis_manager import RedisManager

from ledger.errors import ConflictError, LedgerError, SyncDisabledError, SyncTransientError
from ledger.service import MatchDeskService, MatchUnit
from sync.feed import FeedSource

logger = get_logger(__name__)


def _outcome(exc: LedgerError) -> str:
    if isinstance(exc, SyncTransientError):
        return "transient"
    if isinstance(exc, SyncDisabledError):
        return "disabled"
    if isinstance(exc, ConflictError):
        return "busy"
    return "rejected"


class SyncAdapter:
    def __init__(
        self,
        service: MatchDeskService,
        source: FeedSource,
        redis: Optional[RedisManager] = None,
        settings: Settings | None = None,
    ) -> None:
        self._service = service
        self._source = source
        self._redis = redis
        self._settings = settings or get_settings()
        self._owner = self._settings.instance_id or uuid.uuid4().hex[:8]

    @asynccontextmanager
    async def _pass_lock(self, match_id: int) -> AsyncIterator[None]:
        """Cross-instance exclusion for one pass; a no-op without Redis."""
        if self._redis is None:
            yield
            return
        acquired = await self._redis.try_acquire_sync_lock(match_id, self._owner, self._settings.sync_lock_ttl_s)
        if not acquired:
            raise ConflictError(f"A sync pass for match {match_id} is already running", match_id=match_id)
        try:
            yield
        finally:
            await self._redis.release_sync_lock(match_id, self._owner)

    async def _ensure_enabled(self, match_id: int) -> None:
        match = await self._service.get_match(match_id)
        if not match.sync_enabled:
            raise SyncDisabledError(f"Sync is disabled for match {match_id}", match_id=match_id)

    @staticmethod
    def _check_still_enabled(unit: MatchUnit) -> None:
        # sync_enabled may have flipped between the fetch and taking the lock
        if not unit.match.sync_enabled:
            raise SyncDisabledError(f"Sync is disabled for match {unit.match.id}", match_id=unit.match.id)

    async def sync_lineup(self, match_id: int) -> SyncReport:
        kind = SyncKind.LINEUP
        try:
            async with atrack_latency(SYNC_PASS_LATENCY, kind=kind.value):
                await self._ensure_enabled(match_id)
                items = await self._source.fetch_lineup(match_id)
                applied = skipped = 0
                async with self._pass_lock(match_id):
                    async with self._service.unit(match_id, "sync_lineup") as unit:
                        self._check_still_enabled(unit)
                        for item in items:
                            if await unit.lineup.find_by_player(match_id, item.player_id) is not None:
                                skipped += 1
                                continue
                            await unit.lineup.add_entry(unit.match, LineupEntryCreate(**item.model_dump()))
                            applied += 1
        except LedgerError as exc:
            self._record_failure(match_id, kind, exc)
            raise

        if applied:
            LEDGER_MUTATIONS.labels(operation="add_lineup_entry", source=EventSource.SYNC.value).inc(applied)
        return self._record_success(
            SyncReport(match_id=match_id, kind=kind.value, received=len(items), applied=applied, skipped=skipped)
        )

    async def sync_events(self, match_id: int) -> SyncReport:
        kind = SyncKind.EVENTS
        scoreboard: Optional[Scoreboard] = None
        try:
            async with atrack_latency(SYNC_PASS_LATENCY, kind=kind.value):
                await self._ensure_enabled(match_id)
                events = await self._source.fetch_events(match_id)
                applied = skipped = 0
                async with self._pass_lock(match_id):
                    async with self._service.unit(match_id, "sync_events") as unit:
                        self._check_still_enabled(unit)
                        for feed_event in events:
                            existing = await unit.events.find_external(
                                match_id, EventSource.SYNC, feed_event.external_id
                            )
                            if existing is not None:
                                skipped += 1
                                continue
                            data = MatchEventCreate(**feed_event.model_dump(exclude={"external_id"}))
                            await unit.events.append(
                                unit.match, data, source=EventSource.SYNC, external_id=feed_event.external_id
                            )
                            applied += 1
                        unit.publish = applied > 0
                        scoreboard = Scoreboard(
                            home=unit.match.home_score or 0, away=unit.match.away_score or 0
                        )
        except LedgerError as exc:
            self._record_failure(match_id, kind, exc)
            raise

        if applied:
            LEDGER_MUTATIONS.labels(operation="append_event", source=EventSource.SYNC.value).inc(applied)
        return self._record_success(
            SyncReport(
                match_id=match_id,
                kind=kind.value,
                received=len(events),
                applied=applied,
                skipped=skipped,
                scoreboard=scoreboard,
            )
        )

    def _record_success(self, report: SyncReport) -> SyncReport:
        SYNC_PASSES.labels(kind=report.kind, outcome="success").inc()
        logger.info(
            "sync_pass_completed",
            match_id=report.match_id,
            kind=report.kind,
            received=report.received,
            applied=report.applied,
            skipped=report.skipped,
        )
        return report

    def _record_failure(self, match_id: int, kind: SyncKind, exc: LedgerError) -> None:
        outcome = _outcome(exc)
        SYNC_PASSES.labels(kind=kind.value, outcome=outcome).inc()
        logger.warning(
            "sync_pass_aborted",
            match_id=match_id,
            kind=kind.value,
            outcome=outcome,
            error=exc.code,
            message=exc.message,
        )
