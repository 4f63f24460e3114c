"""
Shared fixtures: an in-memory aiosqlite database seeded with two teams, their
rosters, a few referees and one match between them.
"""
from __future__ import annotations

from datetime import date
from typing import AsyncIterator, Optional

import pytest
import pytest_asyncio

from shared.config import Settings
from shared.models.domain import FeedEvent, FeedLineupItem, LineupEntryCreate
from shared.models.enums import LineupRole
from shared.models.orm import MatchORM, PlayerORM, RefereeORM, TeamORM, TeamRosterORM
from shared.utils.database import DatabaseManager

from ledger.service import MatchDeskService
from sync.feed import FeedSource

SEASON = 2026
HOME = 1
AWAY = 2
OTHER_TEAM = 3
MATCH_ID = 100
OTHER_MATCH_ID = 101

HOME_STARTERS = (11, 12)
HOME_SUB = 13
AWAY_STARTERS = (21, 22)
AWAY_SUB = 23
OTHER_TEAM_PLAYER = 31
UNROSTERED_PLAYER = 41
REFEREES = (1, 2, 3)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        database_url="sqlite+aiosqlite:///:memory:",
        redis_enabled=False,
        metrics_enabled=False,
    )


@pytest_asyncio.fixture
async def db(settings: Settings) -> AsyncIterator[DatabaseManager]:
    manager = DatabaseManager(settings)
    await manager.connect()
    await manager.create_schema()
    await seed(manager)
    yield manager
    await manager.disconnect()


async def seed(db: DatabaseManager) -> None:
    async with db.write_session() as session:
        session.add_all(
            [
                TeamORM(id=HOME, name="Kairat", short_name="KAI"),
                TeamORM(id=AWAY, name="Astana", short_name="AST"),
                TeamORM(id=OTHER_TEAM, name="Tobol", short_name="TOB"),
            ]
        )
        rostered = {
            HOME: (*HOME_STARTERS, HOME_SUB),
            AWAY: (*AWAY_STARTERS, AWAY_SUB),
            OTHER_TEAM: (OTHER_TEAM_PLAYER,),
        }
        for team_id, player_ids in rostered.items():
            for player_id in player_ids:
                session.add(PlayerORM(id=player_id, name=f"Player {player_id}"))
        session.add(PlayerORM(id=UNROSTERED_PLAYER, name="Trialist"))
        await session.flush()

        for team_id, player_ids in rostered.items():
            for number, player_id in enumerate(player_ids, start=7):
                session.add(
                    TeamRosterORM(team_id=team_id, player_id=player_id, season_id=SEASON, shirt_number=number)
                )
        for referee_id in REFEREES:
            session.add(RefereeORM(id=referee_id, name=f"Referee {referee_id}"))

        session.add_all(
            [
                MatchORM(
                    id=MATCH_ID,
                    season_id=SEASON,
                    tour=1,
                    match_date=date(2026, 4, 12),
                    home_team_id=HOME,
                    away_team_id=AWAY,
                    status="created",
                ),
                MatchORM(
                    id=OTHER_MATCH_ID,
                    season_id=SEASON,
                    tour=1,
                    match_date=date(2026, 4, 12),
                    home_team_id=OTHER_TEAM,
                    away_team_id=HOME,
                    status="live",
                ),
            ]
        )


@pytest.fixture
def service(db: DatabaseManager, settings: Settings) -> MatchDeskService:
    return MatchDeskService(db, settings=settings)


@pytest_asyncio.fixture
async def lineup(service: MatchDeskService) -> dict[int, int]:
    """Both teams' starters and one substitute each. Returns player_id -> entry id."""
    entries: dict[int, int] = {}
    plan = [
        (HOME, HOME_STARTERS[0], LineupRole.STARTER, 9, True),
        (HOME, HOME_STARTERS[1], LineupRole.STARTER, 10, False),
        (HOME, HOME_SUB, LineupRole.SUBSTITUTE, 17, False),
        (AWAY, AWAY_STARTERS[0], LineupRole.STARTER, 4, True),
        (AWAY, AWAY_STARTERS[1], LineupRole.STARTER, 8, False),
        (AWAY, AWAY_SUB, LineupRole.SUBSTITUTE, 19, False),
    ]
    for team_id, player_id, role, number, captain in plan:
        entry = await service.add_lineup_entry(
            MATCH_ID,
            LineupEntryCreate(
                team_id=team_id,
                player_id=player_id,
                lineup_type=role,
                shirt_number=number,
                is_captain=captain,
            ),
        )
        entries[player_id] = entry.id
    return entries


class FakeFeed(FeedSource):
    """In-memory feed; raises ``error`` from every fetch when set."""

    def __init__(
        self,
        lineup: Optional[list[FeedLineupItem]] = None,
        events: Optional[list[FeedEvent]] = None,
        error: Optional[Exception] = None,
    ) -> None:
        self.lineup = lineup or []
        self.events = events or []
        self.error = error
        self.calls = 0

    async def fetch_lineup(self, match_id: int) -> list[FeedLineupItem]:
        self.calls += 1
        if self.error:
            raise self.error
        return list(self.lineup)

    async def fetch_events(self, match_id: int) -> list[FeedEvent]:
        self.calls += 1
        if self.error:
            raise self.error
        return list(self.events)
