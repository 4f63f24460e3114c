"""Sync adapter and runner against a fake feed."""
from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from shared.config import Settings
from shared.models.domain import FeedEvent, FeedLineupItem, MatchPatch
from shared.models.enums import EventSource, EventType, LineupRole, MatchStatus
from shared.utils.database import DatabaseManager

from ledger.errors import ConflictError, SyncDisabledError, SyncTransientError, ValidationError
from ledger.service import MatchDeskService
from sync.adapter import SyncAdapter
from sync.feed import FeedSource
from sync.runner import SyncRunner

from tests.conftest import AWAY, AWAY_STARTERS, AWAY_SUB, HOME, HOME_STARTERS, MATCH_ID, OTHER_MATCH_ID, FakeFeed


FEED_LINEUP = [
    FeedLineupItem(team_id=HOME, player_id=HOME_STARTERS[0], lineup_type=LineupRole.STARTER, shirt_number=9),
    FeedLineupItem(team_id=HOME, player_id=HOME_STARTERS[1], lineup_type=LineupRole.STARTER, shirt_number=10),
    FeedLineupItem(team_id=AWAY, player_id=AWAY_STARTERS[0], lineup_type=LineupRole.STARTER, shirt_number=4),
    FeedLineupItem(team_id=AWAY, player_id=AWAY_SUB, lineup_type=LineupRole.SUBSTITUTE, shirt_number=19),
]

FEED_EVENTS = [
    FeedEvent(external_id="e1", half=1, minute=12, event_type=EventType.GOAL, team_id=HOME, player_id=HOME_STARTERS[0]),
    FeedEvent(external_id="e2", half=1, minute=33, event_type=EventType.OWN_GOAL, team_id=AWAY, player_id=AWAY_STARTERS[0]),
    FeedEvent(external_id="e3", half="2", minute=70, event_type=EventType.YELLOW_CARD, player_id=HOME_STARTERS[1]),
]


def make_adapter(service: MatchDeskService, feed: FeedSource, redis=None) -> SyncAdapter:
    return SyncAdapter(service, feed, redis=redis, settings=service.settings)


class TestSyncLineup:

    async def test_applies_then_skips(self, service: MatchDeskService) -> None:
        adapter = make_adapter(service, FakeFeed(lineup=FEED_LINEUP))
        first = await adapter.sync_lineup(MATCH_ID)
        assert (first.received, first.applied, first.skipped) == (4, 4, 0)

        second = await adapter.sync_lineup(MATCH_ID)
        assert (second.applied, second.skipped) == (0, 4)
        assert len(await service.list_lineup(MATCH_ID)) == 4

    async def test_rejected_item_aborts_batch(self, service: MatchDeskService) -> None:
        bad = FeedLineupItem(team_id=HOME, player_id=AWAY_STARTERS[1], lineup_type=LineupRole.STARTER)
        adapter = make_adapter(service, FakeFeed(lineup=[*FEED_LINEUP, bad]))
        with pytest.raises(ValidationError):
            await adapter.sync_lineup(MATCH_ID)
        assert await service.list_lineup(MATCH_ID) == []

    async def test_disabled_sync_never_fetches(self, service: MatchDeskService) -> None:
        await service.update_match(MATCH_ID, MatchPatch(sync_enabled=False))
        feed = FakeFeed(lineup=FEED_LINEUP)
        with pytest.raises(SyncDisabledError):
            await make_adapter(service, feed).sync_lineup(MATCH_ID)
        assert feed.calls == 0


class TestSyncEvents:

    async def test_replay_is_idempotent(self, service: MatchDeskService) -> None:
        adapter = make_adapter(service, FakeFeed(lineup=FEED_LINEUP, events=FEED_EVENTS))
        await adapter.sync_lineup(MATCH_ID)

        report = await adapter.sync_events(MATCH_ID)
        assert (report.applied, report.skipped) == (3, 0)
        assert report.scoreboard is not None and report.scoreboard.as_tuple() == (2, 0)

        again = await adapter.sync_events(MATCH_ID)
        assert (again.applied, again.skipped) == (0, 3)
        assert again.scoreboard.as_tuple() == (2, 0)

        events = await service.list_events(MATCH_ID)
        assert {e.external_id for e in events} == {"e1", "e2", "e3"}
        assert {e.source for e in events} == {EventSource.SYNC}

    async def test_invalid_event_leaves_ledger_untouched(self, service: MatchDeskService) -> None:
        adapter = make_adapter(service, FakeFeed(lineup=FEED_LINEUP))
        await adapter.sync_lineup(MATCH_ID)

        off_lineup = FeedEvent(external_id="e9", half=1, minute=80, event_type=EventType.GOAL, team_id=AWAY, player_id=AWAY_STARTERS[1])
        adapter = make_adapter(service, FakeFeed(events=[*FEED_EVENTS, off_lineup]))
        with pytest.raises(ValidationError):
            await adapter.sync_events(MATCH_ID)

        assert await service.list_events(MATCH_ID) == []
        match = await service.get_match(MATCH_ID)
        assert (match.home_score, match.away_score) == (None, None)

    async def test_transient_feed_error_commits_nothing(self, service: MatchDeskService) -> None:
        adapter = make_adapter(service, FakeFeed(error=SyncTransientError("feed timed out")))
        with pytest.raises(SyncTransientError):
            await adapter.sync_events(MATCH_ID)
        assert await service.list_events(MATCH_ID) == []

    async def test_deleted_sync_event_returns_on_next_pass(self, service: MatchDeskService) -> None:
        adapter = make_adapter(service, FakeFeed(lineup=FEED_LINEUP, events=FEED_EVENTS[:1]))
        await adapter.sync_lineup(MATCH_ID)
        await adapter.sync_events(MATCH_ID)
        [goal] = await service.list_events(MATCH_ID)

        await service.delete_event(MATCH_ID, goal.id)
        report = await adapter.sync_events(MATCH_ID)
        assert report.applied == 1


class TestRedisCoordination:

    async def test_busy_lock_rejects_pass(self, service: MatchDeskService) -> None:
        redis = AsyncMock()
        redis.try_acquire_sync_lock.return_value = False
        adapter = make_adapter(service, FakeFeed(lineup=FEED_LINEUP), redis=redis)
        with pytest.raises(ConflictError):
            await adapter.sync_lineup(MATCH_ID)
        redis.release_sync_lock.assert_not_awaited()
        assert await service.list_lineup(MATCH_ID) == []

    async def test_lock_released_and_scoreboard_published(self, db: DatabaseManager, settings: Settings) -> None:
        redis = AsyncMock()
        redis.try_acquire_sync_lock.return_value = True
        service = MatchDeskService(db, redis=redis, settings=settings)
        adapter = make_adapter(service, FakeFeed(lineup=FEED_LINEUP, events=FEED_EVENTS), redis=redis)

        await adapter.sync_lineup(MATCH_ID)
        await adapter.sync_events(MATCH_ID)

        assert redis.release_sync_lock.await_count == 2
        match_id, payload = redis.publish_scoreboard.await_args.args
        assert match_id == MATCH_ID
        assert '"home_score":2' in payload


class TestSyncRunner:

    @pytest.fixture
    def fast_settings(self, settings: Settings) -> Settings:
        return settings.model_copy(update={"sync_interval_s": 0.01, "sync_backoff_base_s": 0.01, "sync_backoff_max_s": 0.05})

    async def test_task_stops_when_sync_disabled(
        self, service: MatchDeskService, db: DatabaseManager, fast_settings: Settings
    ) -> None:
        await service.update_match(MATCH_ID, MatchPatch(sync_enabled=False))
        runner = SyncRunner(make_adapter(service, FakeFeed()), db, fast_settings)

        task = runner.start(MATCH_ID)
        assert task.task_handle is not None
        await asyncio.wait_for(task.task_handle, timeout=2.0)
        assert runner.active() == []

    async def test_transient_errors_back_off_until_stopped(
        self, service: MatchDeskService, db: DatabaseManager, fast_settings: Settings
    ) -> None:
        runner = SyncRunner(make_adapter(service, FakeFeed(error=SyncTransientError("down"))), db, fast_settings)
        task = runner.start(MATCH_ID)
        for _ in range(100):
            if task.consecutive_errors >= 2:
                break
            await asyncio.sleep(0.01)
        assert task.consecutive_errors >= 2
        assert [t["match_id"] for t in runner.active()] == [MATCH_ID]

        assert await runner.stop(MATCH_ID) is True
        assert runner.active() == []

    async def test_unexpected_error_keeps_task_alive(
        self, service: MatchDeskService, db: DatabaseManager, fast_settings: Settings
    ) -> None:
        runner = SyncRunner(make_adapter(service, FakeFeed(error=RuntimeError("bad payload"))), db, fast_settings)
        task = runner.start(MATCH_ID)
        for _ in range(100):
            if task.consecutive_errors >= 2:
                break
            await asyncio.sleep(0.01)
        assert task.consecutive_errors >= 2
        assert task.last_error == "RuntimeError"
        assert runner.is_running(MATCH_ID)

        assert await runner.stop(MATCH_ID) is True

    async def test_discover_picks_live_matches_with_sync_enabled(
        self, service: MatchDeskService, db: DatabaseManager, fast_settings: Settings, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        await service.update_match(MATCH_ID, MatchPatch(status=MatchStatus.LIVE))
        await service.update_match(OTHER_MATCH_ID, MatchPatch(sync_enabled=False))
        runner = SyncRunner(make_adapter(service, FakeFeed()), db, fast_settings)
        launched: list[int] = []
        monkeypatch.setattr(runner, "start", launched.append)

        assert await runner.discover() == [MATCH_ID]
        assert launched == [MATCH_ID]
