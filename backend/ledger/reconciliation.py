"""
Score reconciliation: the scoreboard is a pure fold over the event ledger.

``compute_scoreboard`` never looks at ordering or at the previously stored
score, so running it any number of times over the same ledger gives the same
result. ``reconcile_match`` writes that result onto the match row inside the
caller's transaction.
"""
from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Iterable, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shared.models.domain import ReconcileResult, Scoreboard
from shared.models.enums import EventType
from shared.models.orm import MatchEventORM, MatchORM
from shared.utils.logging import get_logger
from shared.utils.metrics import RECONCILE_LATENCY, RECONCILIATIONS, SCOREBOARD_DRIFT

from ledger.rules import EVENT_RULES, SCORE_EVENT_TYPES, ScoreEffect

logger = get_logger(__name__)


class ScoringEvent(Protocol):
    event_type: str
    team_id: Optional[int]


def compute_scoreboard(
    events: Iterable[ScoringEvent], home_team_id: int, away_team_id: int
) -> Scoreboard:
    """
    Fold events into a scoreboard.

    goal/penalty credit ``team_id``; own_goal credits the other side of the
    match. Events whose team is neither side never count.
    """
    home = 0
    away = 0
    for event in events:
        effect = EVENT_RULES[EventType(event.event_type)].score
        if effect is ScoreEffect.NONE:
            continue
        if event.team_id == home_team_id:
            credited_home = effect is ScoreEffect.CREDIT_TEAM
        elif event.team_id == away_team_id:
            credited_home = effect is ScoreEffect.CREDIT_OPPONENT
        else:
            continue
        if credited_home:
            home += 1
        else:
            away += 1
    return Scoreboard(home=home, away=away)


async def load_score_events(session: AsyncSession, match_id: int) -> list[MatchEventORM]:
    stmt = select(MatchEventORM).where(
        MatchEventORM.match_id == match_id,
        MatchEventORM.event_type.in_([t.value for t in SCORE_EVENT_TYPES]),
    )
    return list((await session.execute(stmt)).scalars().all())


async def has_score_events(session: AsyncSession, match_id: int) -> bool:
    stmt = (
        select(MatchEventORM.id)
        .where(
            MatchEventORM.match_id == match_id,
            MatchEventORM.event_type.in_([t.value for t in SCORE_EVENT_TYPES]),
        )
        .limit(1)
    )
    return (await session.execute(stmt)).first() is not None


async def reconcile_match(
    session: AsyncSession,
    match: MatchORM,
    *,
    trigger: str = "mutation",
    score_change: bool = True,
) -> ReconcileResult:
    """
    Recompute the scoreboard from the ledger and store it on ``match``.

    The stored pair is replaced wholesale; a previous manual value is never
    merged in. A manual score survives while the ledger holds no
    score-affecting events. When a score change leaves the ledger without any,
    the last manual pair (``None`` when there never was one) is restored, so
    appending and then deleting a goal puts the scoreboard back exactly.
    Flushes so a stale match version surfaces inside the caller's transaction.
    """
    start = time.perf_counter()
    events = await load_score_events(session, match.id)
    scoreboard = compute_scoreboard(events, match.home_team_id, match.away_team_id)

    previous: Optional[Scoreboard] = None
    if match.home_score is not None or match.away_score is not None:
        previous = Scoreboard(home=match.home_score or 0, away=match.away_score or 0)
    drifted = previous is not None and previous != scoreboard

    if not events and not score_change:
        return ReconcileResult(
            match_id=match.id, previous=previous, scoreboard=previous or scoreboard, drifted=False
        )

    if events:
        home, away = scoreboard.home, scoreboard.away
    else:
        home, away = match.manual_home_score, match.manual_away_score
        scoreboard = Scoreboard(home=home or 0, away=away or 0)
        drifted = previous is not None and previous != scoreboard

    if (match.home_score, match.away_score) != (home, away):
        match.home_score = home
        match.away_score = away
        match.updated_at = datetime.now(timezone.utc)
        await session.flush()

    RECONCILIATIONS.labels(trigger=trigger).inc()
    RECONCILE_LATENCY.observe(time.perf_counter() - start)
    if drifted and trigger == "repair":
        SCOREBOARD_DRIFT.inc()
        logger.warning(
            "scoreboard_drift_repaired",
            match_id=match.id,
            stored=f"{previous.home}-{previous.away}",
            derived=f"{scoreboard.home}-{scoreboard.away}",
        )

    logger.info(
        "scoreboard_reconciled",
        match_id=match.id,
        score=f"{scoreboard.home}-{scoreboard.away}",
        score_events=len(events),
        trigger=trigger,
    )
    return ReconcileResult(match_id=match.id, previous=previous, scoreboard=scoreboard, drifted=drifted)
