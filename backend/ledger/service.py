"""
MatchDeskService: the single entry point for every lineup, event, referee and
match mutation.

Each mutation runs as one unit: per-match lock → write transaction → row lock
on the match → state gate → change → reconciliation → commit. Any error rolls
the whole unit back, so the stored scoreboard never disagrees with the ledger.
After commit the match's scoreboard is pushed to Redis when configured.
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import AsyncIterator, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from shared.config import Settings, get_settings
from shared.models.domain import (
    LineupEntryCreate,
    LineupEntryOut,
    MatchEventCreate,
    MatchEventOut,
    MatchOut,
    MatchPatch,
    ReconcileResult,
    RefereeAssignmentCreate,
    RefereeAssignmentOut,
)
from shared.models.enums import EventSource, MatchStatus
from shared.models.orm import MatchORM
from shared.utils.database import DatabaseManager
from shared.utils.logging import get_logger
from shared.utils.metrics import LEDGER_MUTATIONS, LEDGER_REJECTIONS
from shared.utils.redis_manager import RedisManager

from ledger import state_machine
from ledger.errors import ConflictError, LedgerError, ScoreOverrideError, ValidationError
from ledger.events import EventLedger
from ledger.lineup import LineupRegistry
from ledger.locks import MatchLockRegistry, get_match, lock_match
from ledger.reconciliation import has_score_events, reconcile_match
from ledger.referees import RefereeRegistry

logger = get_logger(__name__)

_MANUAL_SCORE_FIELDS = ("home_score", "away_score")
_ALWAYS_EDITABLE = (
    "match_date",
    "kickoff_time",
    "home_penalty_score",
    "away_penalty_score",
    "sync_enabled",
    "is_featured",
    "video_url",
    "youtube_live_url",
)


@dataclass
class MatchUnit:
    """Everything a mutation needs, bound to one locked match and transaction."""

    session: AsyncSession
    match: MatchORM
    lineup: LineupRegistry
    events: EventLedger
    referees: RefereeRegistry
    publish: bool = field(default=False)


class MatchDeskService:
    def __init__(
        self,
        db: DatabaseManager,
        redis: Optional[RedisManager] = None,
        settings: Settings | None = None,
        locks: Optional[MatchLockRegistry] = None,
    ) -> None:
        self._db = db
        self._redis = redis
        self._settings = settings or get_settings()
        self._locks = locks or MatchLockRegistry()

    @property
    def settings(self) -> Settings:
        return self._settings

    def _registries(self, session: AsyncSession) -> tuple[LineupRegistry, EventLedger, RefereeRegistry]:
        lineup = LineupRegistry(session, enforce_roster=self._settings.enforce_roster_membership)
        return lineup, EventLedger(session, lineup), RefereeRegistry(session)

    @asynccontextmanager
    async def unit(self, match_id: int, operation: str) -> AsyncIterator[MatchUnit]:
        """Serialize and transact one mutation of ``match_id``."""
        published: Optional[MatchOut] = None
        async with self._locks.hold(match_id):
            try:
                async with self._db.write_session() as session:
                    match = await lock_match(session, match_id)
                    lineup, events, referees = self._registries(session)
                    unit = MatchUnit(session, match, lineup, events, referees)
                    yield unit
                    await session.flush()
                    if unit.publish:
                        published = MatchOut.model_validate(match)
            except LedgerError as exc:
                LEDGER_REJECTIONS.labels(operation=operation, reason=exc.code).inc()
                logger.info("ledger_mutation_rejected", match_id=match_id, operation=operation, error=exc.code)
                raise
            except StaleDataError as exc:
                LEDGER_REJECTIONS.labels(operation=operation, reason="conflict").inc()
                raise ConflictError(match_id=match_id) from exc
            except IntegrityError as exc:
                LEDGER_REJECTIONS.labels(operation=operation, reason="integrity").inc()
                logger.warning("ledger_integrity_error", match_id=match_id, operation=operation, error=str(exc.orig))
                raise ConflictError(
                    "Mutation collided with a concurrent change; reload and retry", match_id=match_id
                ) from exc

        if published is not None:
            await self._publish(published)

    async def _publish(self, match: MatchOut) -> None:
        if self._redis is None:
            return
        try:
            await self._redis.publish_scoreboard(match.id, match.model_dump_json())
        except Exception as exc:
            logger.warning("scoreboard_publish_failed", match_id=match.id, error=str(exc))

    # ── Match ───────────────────────────────────────────────────────────

    async def get_match(self, match_id: int) -> MatchOut:
        async with self._db.read_session() as session:
            return MatchOut.model_validate(await get_match(session, match_id))

    async def update_match(self, match_id: int, patch: MatchPatch) -> MatchOut:
        fields = patch.model_dump(exclude_unset=True)
        expected_version = fields.pop("version", None)
        target_status = fields.pop("status", None)

        async with self.unit(match_id, "update_match") as unit:
            match = unit.match
            if expected_version is not None and expected_version != match.version:
                raise ConflictError(
                    f"Match {match_id} is at version {match.version}, not {expected_version}",
                    match_id=match_id,
                    version=match.version,
                )

            score_fields = {
                name: fields[name]
                for name in _MANUAL_SCORE_FIELDS
                if name in fields and fields[name] != getattr(match, name)
            }
            if score_fields:
                state_machine.ensure_mutable(match)
                if await has_score_events(unit.session, match.id):
                    raise ScoreOverrideError(
                        f"Match {match_id} has score events; its score is derived from the ledger",
                        match_id=match_id,
                    )
                for name, value in score_fields.items():
                    setattr(match, name, value)
                    setattr(match, f"manual_{name}", value)
                unit.publish = True

            if "sync_enabled" in fields and fields["sync_enabled"] is None:
                raise ValidationError("sync_enabled cannot be null")
            for name in _ALWAYS_EDITABLE:
                if name in fields:
                    setattr(match, name, fields[name])

            if target_status is not None:
                previous = state_machine.transition(match, MatchStatus(target_status))
                if previous.value != match.status:
                    unit.publish = True
                    logger.info(
                        "match_status_changed",
                        match_id=match_id,
                        source=previous.value,
                        target=match.status,
                    )

            match.updated_at = datetime.now(timezone.utc)
            LEDGER_MUTATIONS.labels(operation="update_match", source=EventSource.MANUAL.value).inc()
            logger.info("match_updated", match_id=match_id, fields=sorted(fields) + (["status"] if target_status else []))

        return await self.get_match(match_id)

    async def reset_status(self, match_id: int) -> MatchOut:
        async with self.unit(match_id, "reset_status") as unit:
            previous = state_machine.reset(unit.match)
            unit.match.updated_at = datetime.now(timezone.utc)
            unit.publish = True
            LEDGER_MUTATIONS.labels(operation="reset_status", source=EventSource.MANUAL.value).inc()
            logger.info("match_status_reset", match_id=match_id, source=previous.value)
        return await self.get_match(match_id)

    async def reconcile(self, match_id: int) -> ReconcileResult:
        """Recompute and store the scoreboard; safe to call any number of times."""
        async with self.unit(match_id, "reconcile") as unit:
            result = await reconcile_match(unit.session, unit.match, trigger="repair", score_change=False)
            unit.publish = result.drifted
        return result

    # ── Lineup ──────────────────────────────────────────────────────────

    async def list_lineup(self, match_id: int, team_id: Optional[int] = None) -> list[LineupEntryOut]:
        async with self._db.read_session() as session:
            await get_match(session, match_id)
            lineup, _, _ = self._registries(session)
            return [LineupEntryOut.model_validate(e) for e in await lineup.list(match_id, team_id)]

    async def add_lineup_entry(
        self, match_id: int, data: LineupEntryCreate, source: EventSource = EventSource.MANUAL
    ) -> LineupEntryOut:
        async with self.unit(match_id, "add_lineup_entry") as unit:
            entry = await unit.lineup.add_entry(unit.match, data)
            out = LineupEntryOut.model_validate(entry)
            LEDGER_MUTATIONS.labels(operation="add_lineup_entry", source=source.value).inc()
        return out

    async def remove_lineup_entry(self, match_id: int, entry_id: int) -> None:
        async with self.unit(match_id, "remove_lineup_entry") as unit:
            await unit.lineup.remove_entry(unit.match, entry_id)
            LEDGER_MUTATIONS.labels(operation="remove_lineup_entry", source=EventSource.MANUAL.value).inc()

    # ── Events ──────────────────────────────────────────────────────────

    async def list_events(self, match_id: int) -> list[MatchEventOut]:
        async with self._db.read_session() as session:
            await get_match(session, match_id)
            _, events, _ = self._registries(session)
            return [MatchEventOut.model_validate(e) for e in await events.list(match_id)]

    async def append_event(
        self,
        match_id: int,
        data: MatchEventCreate,
        source: EventSource = EventSource.MANUAL,
        external_id: Optional[str] = None,
    ) -> MatchEventOut:
        async with self.unit(match_id, "append_event") as unit:
            event, _ = await unit.events.append(unit.match, data, source=source, external_id=external_id)
            out = MatchEventOut.model_validate(event)
            unit.publish = True
            LEDGER_MUTATIONS.labels(operation="append_event", source=source.value).inc()
        return out

    async def delete_event(self, match_id: int, event_id: int) -> None:
        async with self.unit(match_id, "delete_event") as unit:
            await unit.events.delete(unit.match, event_id)
            unit.publish = True
            LEDGER_MUTATIONS.labels(operation="delete_event", source=EventSource.MANUAL.value).inc()

    # ── Referees ────────────────────────────────────────────────────────

    async def list_referees(self, match_id: int) -> list[RefereeAssignmentOut]:
        async with self._db.read_session() as session:
            await get_match(session, match_id)
            _, _, referees = self._registries(session)
            return [RefereeAssignmentOut.model_validate(a) for a in await referees.list(match_id)]

    async def assign_referee(self, match_id: int, data: RefereeAssignmentCreate) -> RefereeAssignmentOut:
        async with self.unit(match_id, "assign_referee") as unit:
            assignment = await unit.referees.assign(unit.match, data)
            out = RefereeAssignmentOut.model_validate(assignment)
            LEDGER_MUTATIONS.labels(operation="assign_referee", source=EventSource.MANUAL.value).inc()
        return out

    async def unassign_referee(self, match_id: int, assignment_id: int) -> None:
        async with self.unit(match_id, "unassign_referee") as unit:
            await unit.referees.unassign(unit.match, assignment_id)
            LEDGER_MUTATIONS.labels(operation="unassign_referee", source=EventSource.MANUAL.value).inc()

