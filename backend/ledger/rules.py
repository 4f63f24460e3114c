"""
Event-type rule table.

Each event type maps to an ``EventRule``: the participant slots it uses, the
lineup role a slot demands and the way the event moves the scoreboard. Every
participant must belong to the team named on the event. Adding an event type
means adding a row here.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from shared.models.enums import EventType, LineupRole


class ScoreEffect(str, Enum):
    NONE = "none"
    CREDIT_TEAM = "credit_team"
    CREDIT_OPPONENT = "credit_opponent"


@dataclass(frozen=True)
class SlotRule:
    required: bool = False
    role: Optional[LineupRole] = None


@dataclass(frozen=True)
class EventRule:
    primary: SlotRule
    secondary: Optional[SlotRule] = None
    assist: Optional[SlotRule] = None
    team_required: bool = False
    score: ScoreEffect = ScoreEffect.NONE

    @property
    def affects_score(self) -> bool:
        return self.score is not ScoreEffect.NONE


_ON_TEAM = SlotRule()

EVENT_RULES: dict[EventType, EventRule] = {
    EventType.GOAL: EventRule(
        primary=_ON_TEAM,
        assist=_ON_TEAM,
        team_required=True,
        score=ScoreEffect.CREDIT_TEAM,
    ),
    EventType.PENALTY: EventRule(
        primary=_ON_TEAM,
        team_required=True,
        score=ScoreEffect.CREDIT_TEAM,
    ),
    # team_id names the side whose player put the ball in their own net
    EventType.OWN_GOAL: EventRule(
        primary=_ON_TEAM,
        team_required=True,
        score=ScoreEffect.CREDIT_OPPONENT,
    ),
    EventType.MISSED_PENALTY: EventRule(primary=_ON_TEAM, team_required=True),
    EventType.YELLOW_CARD: EventRule(primary=_ON_TEAM),
    EventType.SECOND_YELLOW: EventRule(primary=_ON_TEAM),
    EventType.RED_CARD: EventRule(primary=_ON_TEAM),
    EventType.SUBSTITUTION: EventRule(
        primary=SlotRule(required=True, role=LineupRole.STARTER),
        secondary=SlotRule(required=True, role=LineupRole.SUBSTITUTE),
        team_required=True,
    ),
    EventType.ASSIST: EventRule(primary=_ON_TEAM),
}

SCORE_EVENT_TYPES: frozenset[EventType] = frozenset(
    event_type for event_type, rule in EVENT_RULES.items() if rule.affects_score
)


def rule_for(event_type: EventType) -> EventRule:
    return EVENT_RULES[event_type]
