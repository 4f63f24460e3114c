"""
Event Ledger: the append/delete log of in-game events for a match.

``append`` validates in a fixed order (match state, minute/half, then the
per-type participant rules from ``ledger.rules``), writes the event and
reconciles the scoreboard before returning. ``delete`` reconciles too. Both
run inside the caller's transaction, so a failed reconciliation rolls the
ledger change back with it.
"""
from __future__ import annotations

from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shared.models.domain import MatchEventCreate, ReconcileResult
from shared.models.enums import EventSource, EventType, Half, LineupRole
from shared.models.orm import LineupEntryORM, MatchEventORM, MatchORM
from shared.utils.logging import get_logger

from ledger.errors import NotFoundError, ValidationError
from ledger.lineup import LineupRegistry
from ledger.reconciliation import reconcile_match
from ledger.rules import EventRule, SlotRule, rule_for
from ledger.state_machine import ensure_mutable

logger = get_logger(__name__)


class EventLedger:
    def __init__(self, session: AsyncSession, lineup: LineupRegistry) -> None:
        self._session = session
        self._lineup = lineup

    async def list(self, match_id: int) -> list[MatchEventORM]:
        """Ordered by (half, minute, insertion)."""
        stmt = (
            select(MatchEventORM)
            .where(MatchEventORM.match_id == match_id)
            .order_by(MatchEventORM.half.asc(), MatchEventORM.minute.asc(), MatchEventORM.id.asc())
        )
        return list((await self._session.execute(stmt)).scalars().all())

    async def find_external(self, match_id: int, source: EventSource, external_id: str) -> Optional[MatchEventORM]:
        stmt = select(MatchEventORM).where(
            MatchEventORM.match_id == match_id,
            MatchEventORM.source == source.value,
            MatchEventORM.external_id == external_id,
        )
        return (await self._session.execute(stmt)).scalar_one_or_none()

    async def append(
        self,
        match: MatchORM,
        data: MatchEventCreate,
        *,
        source: EventSource = EventSource.MANUAL,
        external_id: Optional[str] = None,
    ) -> tuple[MatchEventORM, ReconcileResult]:
        ensure_mutable(match)
        half = _check_clock(data.half, data.minute)
        rule = rule_for(data.event_type)
        team_id, primary = await self._check_participants(match, data, rule)

        event = MatchEventORM(
            match_id=match.id,
            half=half.value,
            minute=data.minute,
            event_type=data.event_type.value,
            team_id=team_id,
            player_id=data.player_id,
            player_number=primary.shirt_number if primary else None,
            player2_id=data.player2_id,
            assist_player_id=data.assist_player_id,
            source=source.value,
            external_id=external_id,
        )
        self._session.add(event)
        await self._session.flush()

        result = await reconcile_match(self._session, match, score_change=rule.affects_score)
        logger.info(
            "match_event_appended",
            match_id=match.id,
            event_id=event.id,
            event_type=event.event_type,
            half=event.half,
            minute=event.minute,
            team_id=event.team_id,
            source=event.source,
        )
        return event, result

    async def delete(self, match: MatchORM, event_id: int) -> tuple[MatchEventORM, ReconcileResult]:
        ensure_mutable(match)
        event = await self._session.get(MatchEventORM, event_id)
        if event is None or event.match_id != match.id:
            raise NotFoundError(f"Event {event_id} not found in match {match.id}", event_id=event_id)

        rule = rule_for(EventType(event.event_type))
        await self._session.delete(event)
        await self._session.flush()

        result = await reconcile_match(self._session, match, score_change=rule.affects_score)
        logger.info(
            "match_event_deleted",
            match_id=match.id,
            event_id=event_id,
            event_type=event.event_type,
        )
        return event, result

    # ── Validation ──────────────────────────────────────────────────────

    async def _check_participants(
        self, match: MatchORM, data: MatchEventCreate, rule: EventRule
    ) -> tuple[Optional[int], Optional[LineupEntryORM]]:
        """
        Enforce the rule table. Returns the team the event is attributed to
        (inferred from the primary participant when omitted) and the primary
        participant's lineup entry.
        """
        event_type = data.event_type.value
        sides = (match.home_team_id, match.away_team_id)

        if data.team_id is not None and data.team_id not in sides:
            raise ValidationError(
                f"Team {data.team_id} does not play in match {match.id}",
                team_id=data.team_id,
            )
        if data.player2_id is not None and rule.secondary is None:
            raise ValidationError(f"{event_type} does not take a second player", event_type=event_type)
        if data.assist_player_id is not None and rule.assist is None:
            raise ValidationError(f"{event_type} does not take an assist", event_type=event_type)

        primary = await self._resolve_slot(match, "player_id", data.player_id, rule.primary, event_type)
        team_id = data.team_id
        if team_id is None and primary is not None:
            team_id = primary.team_id
        if team_id is None and rule.team_required:
            raise ValidationError(f"{event_type} needs a team", event_type=event_type)

        secondary = None
        if rule.secondary is not None:
            secondary = await self._resolve_slot(
                match, "player2_id", data.player2_id, rule.secondary, event_type
            )
        assist = None
        if rule.assist is not None:
            assist = await self._resolve_slot(
                match, "assist_player_id", data.assist_player_id, rule.assist, event_type
            )

        for slot, entry in (("player_id", primary), ("player2_id", secondary), ("assist_player_id", assist)):
            if entry is not None and entry.team_id != team_id:
                raise ValidationError(
                    f"{slot} {entry.player_id} plays for team {entry.team_id}, not {team_id}",
                    event_type=event_type,
                    slot=slot,
                    player_id=entry.player_id,
                )

        if assist is not None and primary is not None and assist.player_id == primary.player_id:
            raise ValidationError("A scorer cannot assist their own goal", event_type=event_type)

        return team_id, primary

    async def _resolve_slot(
        self,
        match: MatchORM,
        slot: str,
        player_id: Optional[int],
        rule: SlotRule,
        event_type: str,
    ) -> Optional[LineupEntryORM]:
        if player_id is None:
            if rule.required:
                raise ValidationError(f"{event_type} requires {slot}", event_type=event_type, slot=slot)
            return None

        entry = await self._lineup.find_by_player(match.id, player_id)
        if entry is None:
            raise ValidationError(
                f"{slot} {player_id} is not in the lineup of match {match.id}",
                event_type=event_type,
                slot=slot,
                player_id=player_id,
            )
        if rule.role is not None and LineupRole(entry.lineup_type) != rule.role:
            raise ValidationError(
                f"{slot} {player_id} must be a {rule.role.value} for {event_type}",
                event_type=event_type,
                slot=slot,
                player_id=player_id,
                lineup_type=entry.lineup_type,
            )
        return entry


def _check_clock(half: object, minute: object) -> Half:
    try:
        parsed = Half.parse(half)
    except ValueError as exc:
        raise ValidationError(str(exc), half=str(half)) from exc
    if not isinstance(minute, int) or isinstance(minute, bool) or minute < 0:
        raise ValidationError(f"minute must be a non-negative integer, got {minute!r}", minute=minute)
    return parsed
