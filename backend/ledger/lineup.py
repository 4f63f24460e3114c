"""
Lineup Registry: who is eligible to appear in a match's events.

All methods run inside the caller's transaction on a match row that the
caller already holds locked; nothing here commits.
"""
from __future__ import annotations

from typing import Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from shared.models.domain import LineupEntryCreate
from shared.models.orm import LineupEntryORM, MatchEventORM, MatchORM, TeamRosterORM
from shared.utils.logging import get_logger

from ledger.errors import InvalidLineupError, NotFoundError, ReferencedByEventError
from ledger.state_machine import ensure_mutable

logger = get_logger(__name__)


class LineupRegistry:
    def __init__(self, session: AsyncSession, *, enforce_roster: bool = True) -> None:
        self._session = session
        self._enforce_roster = enforce_roster

    async def list(self, match_id: int, team_id: Optional[int] = None) -> list[LineupEntryORM]:
        """Entries in insertion order, optionally restricted to one team."""
        stmt = select(LineupEntryORM).where(LineupEntryORM.match_id == match_id)
        if team_id is not None:
            stmt = stmt.where(LineupEntryORM.team_id == team_id)
        stmt = stmt.order_by(LineupEntryORM.id.asc())
        return list((await self._session.execute(stmt)).scalars().all())

    async def find_by_player(self, match_id: int, player_id: int) -> Optional[LineupEntryORM]:
        stmt = select(LineupEntryORM).where(
            LineupEntryORM.match_id == match_id,
            LineupEntryORM.player_id == player_id,
        )
        return (await self._session.execute(stmt)).scalar_one_or_none()

    async def add_entry(self, match: MatchORM, data: LineupEntryCreate) -> LineupEntryORM:
        ensure_mutable(match)

        if data.team_id not in (match.home_team_id, match.away_team_id):
            raise InvalidLineupError(
                f"Team {data.team_id} does not play in match {match.id}",
                team_id=data.team_id,
            )

        existing = await self.find_by_player(match.id, data.player_id)
        if existing is not None:
            raise InvalidLineupError(
                f"Player {data.player_id} is already in the lineup of match {match.id}",
                player_id=data.player_id,
                entry_id=existing.id,
            )

        if data.is_captain:
            captain = await self._captain(match.id, data.team_id)
            if captain is not None:
                raise InvalidLineupError(
                    f"Team {data.team_id} already has captain {captain.player_id} in match {match.id}",
                    team_id=data.team_id,
                    captain_player_id=captain.player_id,
                )

        if self._enforce_roster and not await self._on_roster(match, data.team_id, data.player_id):
            raise InvalidLineupError(
                f"Player {data.player_id} is not registered for team {data.team_id}",
                player_id=data.player_id,
                team_id=data.team_id,
            )

        entry = LineupEntryORM(
            match_id=match.id,
            team_id=data.team_id,
            player_id=data.player_id,
            lineup_type=data.lineup_type.value,
            shirt_number=data.shirt_number,
            amplua=data.amplua.value if data.amplua else None,
            field_position=data.field_position.value if data.field_position else None,
            is_captain=data.is_captain,
        )
        self._session.add(entry)
        await self._session.flush()
        logger.info(
            "lineup_entry_added",
            match_id=match.id,
            entry_id=entry.id,
            team_id=entry.team_id,
            player_id=entry.player_id,
            lineup_type=entry.lineup_type,
            is_captain=entry.is_captain,
        )
        return entry

    async def remove_entry(self, match: MatchORM, entry_id: int) -> LineupEntryORM:
        """Delete an entry no event points at; events must be deleted first."""
        ensure_mutable(match)
        entry = await self._session.get(LineupEntryORM, entry_id)
        if entry is None or entry.match_id != match.id:
            raise NotFoundError(f"Lineup entry {entry_id} not found in match {match.id}", entry_id=entry_id)

        event_ids = await self.referencing_event_ids(entry)
        if event_ids:
            raise ReferencedByEventError(entry.id, event_ids)

        await self._session.delete(entry)
        await self._session.flush()
        logger.info("lineup_entry_removed", match_id=match.id, entry_id=entry_id, player_id=entry.player_id)
        return entry

    async def referencing_event_ids(self, entry: LineupEntryORM) -> list[int]:
        stmt = (
            select(MatchEventORM.id)
            .where(
                MatchEventORM.match_id == entry.match_id,
                or_(
                    MatchEventORM.player_id == entry.player_id,
                    MatchEventORM.player2_id == entry.player_id,
                    MatchEventORM.assist_player_id == entry.player_id,
                ),
            )
            .order_by(MatchEventORM.id)
        )
        return list((await self._session.execute(stmt)).scalars().all())

    async def _captain(self, match_id: int, team_id: int) -> Optional[LineupEntryORM]:
        stmt = select(LineupEntryORM).where(
            LineupEntryORM.match_id == match_id,
            LineupEntryORM.team_id == team_id,
            LineupEntryORM.is_captain.is_(True),
        )
        return (await self._session.execute(stmt)).scalars().first()

    async def _on_roster(self, match: MatchORM, team_id: int, player_id: int) -> bool:
        stmt = select(TeamRosterORM.id).where(
            TeamRosterORM.team_id == team_id,
            TeamRosterORM.player_id == player_id,
        )
        if match.season_id is not None:
            stmt = stmt.where(
                or_(TeamRosterORM.season_id == match.season_id, TeamRosterORM.season_id.is_(None))
            )
        return (await self._session.execute(stmt.limit(1))).first() is not None
