"""Per-match serialization: operator edits and sync passes on one match queue up; other matches do not wait."""
from __future__ import annotations

import asyncio
from pathlib import Path
from typing import AsyncIterator

import pytest_asyncio

from shared.config import Settings
from shared.models.domain import FeedEvent, MatchEventCreate
from shared.models.enums import EventType
from shared.utils.database import DatabaseManager

from ledger.locks import MatchLockRegistry
from ledger.service import MatchDeskService
from sync.adapter import SyncAdapter

from tests.conftest import AWAY, HOME, MATCH_ID, OTHER_MATCH_ID, OTHER_TEAM, FakeFeed, seed


def goal(team_id: int, minute: int, half: int = 1) -> MatchEventCreate:
    return MatchEventCreate(half=half, minute=minute, event_type=EventType.GOAL, team_id=team_id)


@pytest_asyncio.fixture
async def file_db(settings: Settings, tmp_path: Path) -> AsyncIterator[DatabaseManager]:
    """A file-backed database, so every session gets its own connection."""
    file_settings = settings.model_copy(update={"database_url": f"sqlite+aiosqlite:///{tmp_path / 'desk.db'}"})
    manager = DatabaseManager(file_settings)
    await manager.connect()
    await manager.create_schema()
    await seed(manager)
    yield manager
    await manager.disconnect()


async def test_concurrent_appends_and_sync_pass_all_land(file_db: DatabaseManager, settings: Settings) -> None:
    service = MatchDeskService(file_db, settings=settings)
    feed = FakeFeed(
        events=[
            FeedEvent(external_id=f"away-{n}", half=2, minute=50 + n, event_type=EventType.GOAL, team_id=AWAY)
            for n in range(3)
        ]
    )
    adapter = SyncAdapter(service, feed, settings=settings)

    appends = [service.append_event(MATCH_ID, goal(HOME, minute=n + 1)) for n in range(8)]
    report, *events = await asyncio.gather(adapter.sync_events(MATCH_ID), *appends)

    assert report.applied == 3
    assert len(events) == 8
    match = await service.get_match(MATCH_ID)
    assert (match.home_score, match.away_score) == (8, 3)
    assert len(await service.list_events(MATCH_ID)) == 11


async def test_held_match_lock_does_not_block_other_matches(db: DatabaseManager, settings: Settings) -> None:
    locks = MatchLockRegistry()
    service = MatchDeskService(db, settings=settings, locks=locks)

    async with locks.hold(MATCH_ID):
        blocked = asyncio.create_task(service.append_event(MATCH_ID, goal(HOME, minute=5)))
        other = await asyncio.wait_for(service.append_event(OTHER_MATCH_ID, goal(OTHER_TEAM, minute=5)), timeout=2.0)
        assert other.match_id == OTHER_MATCH_ID
        await asyncio.sleep(0.05)
        assert not blocked.done()

    await asyncio.wait_for(blocked, timeout=2.0)
    assert (await service.get_match(MATCH_ID)).home_score == 1
    assert (await service.get_match(OTHER_MATCH_ID)).home_score == 1
