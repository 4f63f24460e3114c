"""Lineup registry rules."""
from __future__ import annotations

import pytest

from shared.models.domain import LineupEntryCreate, MatchPatch
from shared.models.enums import Amplua, FieldPosition, LineupRole, MatchStatus
from shared.utils.database import DatabaseManager

from ledger.errors import InvalidLineupError, MatchClosedError, NotFoundError, ValidationError
from ledger.service import MatchDeskService

from tests.conftest import (
    AWAY,
    AWAY_STARTERS,
    HOME,
    HOME_STARTERS,
    HOME_SUB,
    MATCH_ID,
    OTHER_MATCH_ID,
    OTHER_TEAM,
    OTHER_TEAM_PLAYER,
    UNROSTERED_PLAYER,
)


def entry(team_id: int, player_id: int, **kwargs: object) -> LineupEntryCreate:
    kwargs.setdefault("lineup_type", LineupRole.STARTER)
    return LineupEntryCreate(team_id=team_id, player_id=player_id, **kwargs)


class TestAddEntry:

    async def test_add_and_list(self, service: MatchDeskService) -> None:
        created = await service.add_lineup_entry(
            MATCH_ID,
            entry(HOME, HOME_STARTERS[0], shirt_number=9, amplua=Amplua.FORWARD, field_position=FieldPosition.CENTER),
        )
        assert created.amplua is Amplua.FORWARD
        assert created.field_position is FieldPosition.CENTER

        listed = await service.list_lineup(MATCH_ID)
        assert [e.id for e in listed] == [created.id]

    async def test_filter_by_team(self, service: MatchDeskService, lineup: dict) -> None:
        away = await service.list_lineup(MATCH_ID, team_id=AWAY)
        assert {e.team_id for e in away} == {AWAY}
        assert len(away) == 3

    async def test_player_only_once_per_match(self, service: MatchDeskService) -> None:
        await service.add_lineup_entry(MATCH_ID, entry(HOME, HOME_STARTERS[0]))
        with pytest.raises(InvalidLineupError):
            await service.add_lineup_entry(MATCH_ID, entry(HOME, HOME_STARTERS[0], lineup_type=LineupRole.SUBSTITUTE))

    async def test_one_captain_per_team(self, service: MatchDeskService) -> None:
        await service.add_lineup_entry(MATCH_ID, entry(HOME, HOME_STARTERS[0], is_captain=True))
        with pytest.raises(InvalidLineupError):
            await service.add_lineup_entry(MATCH_ID, entry(HOME, HOME_STARTERS[1], is_captain=True))
        await service.add_lineup_entry(MATCH_ID, entry(AWAY, AWAY_STARTERS[0], is_captain=True))

    async def test_team_must_play_in_match(self, service: MatchDeskService) -> None:
        with pytest.raises(InvalidLineupError):
            await service.add_lineup_entry(MATCH_ID, entry(OTHER_TEAM, OTHER_TEAM_PLAYER))

    async def test_player_must_be_on_team_roster(self, service: MatchDeskService) -> None:
        with pytest.raises(InvalidLineupError):
            await service.add_lineup_entry(MATCH_ID, entry(HOME, AWAY_STARTERS[0]))
        with pytest.raises(ValidationError):
            await service.add_lineup_entry(MATCH_ID, entry(HOME, UNROSTERED_PLAYER))

    async def test_roster_check_can_be_disabled(self, db: DatabaseManager, settings) -> None:
        relaxed = MatchDeskService(db, settings=settings.model_copy(update={"enforce_roster_membership": False}))
        created = await relaxed.add_lineup_entry(MATCH_ID, entry(HOME, UNROSTERED_PLAYER))
        assert created.player_id == UNROSTERED_PLAYER

    async def test_same_player_in_two_matches(self, service: MatchDeskService) -> None:
        await service.add_lineup_entry(MATCH_ID, entry(HOME, HOME_STARTERS[0]))
        other = await service.add_lineup_entry(OTHER_MATCH_ID, entry(HOME, HOME_STARTERS[0]))
        assert other.match_id == OTHER_MATCH_ID

    async def test_closed_match(self, service: MatchDeskService) -> None:
        await service.update_match(MATCH_ID, MatchPatch(status=MatchStatus.TECHNICAL_DEFEAT))
        with pytest.raises(MatchClosedError):
            await service.add_lineup_entry(MATCH_ID, entry(HOME, HOME_STARTERS[0]))


class TestRemoveEntry:

    async def test_remove_unreferenced(self, service: MatchDeskService, lineup: dict) -> None:
        await service.remove_lineup_entry(MATCH_ID, lineup[HOME_SUB])
        assert HOME_SUB not in {e.player_id for e in await service.list_lineup(MATCH_ID)}

    async def test_remove_missing(self, service: MatchDeskService, lineup: dict) -> None:
        with pytest.raises(NotFoundError):
            await service.remove_lineup_entry(MATCH_ID, 9999)

    async def test_entry_from_another_match_is_not_found(self, service: MatchDeskService) -> None:
        other = await service.add_lineup_entry(OTHER_MATCH_ID, entry(HOME, HOME_STARTERS[0]))
        with pytest.raises(NotFoundError):
            await service.remove_lineup_entry(MATCH_ID, other.id)
