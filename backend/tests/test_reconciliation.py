"""Unit tests for the scoreboard fold and the event-type rule table."""
from __future__ import annotations

from types import SimpleNamespace

import pytest

from shared.models.domain import Scoreboard
from shared.models.enums import EventType, Half, LineupRole

from ledger.reconciliation import compute_scoreboard
from ledger.rules import EVENT_RULES, SCORE_EVENT_TYPES, ScoreEffect, rule_for

HOME = 1
AWAY = 2


def ev(event_type: str, team_id: int | None) -> SimpleNamespace:
    return SimpleNamespace(event_type=event_type, team_id=team_id)


# ── compute_scoreboard ─────────────────────────────────────────────────

class TestComputeScoreboard:

    def test_empty_ledger(self) -> None:
        assert compute_scoreboard([], HOME, AWAY) == Scoreboard(home=0, away=0)

    def test_goal_and_penalty_credit_their_team(self) -> None:
        events = [ev("goal", HOME), ev("penalty", HOME), ev("goal", AWAY)]
        assert compute_scoreboard(events, HOME, AWAY).as_tuple() == (2, 1)

    def test_own_goal_credits_opponent(self) -> None:
        assert compute_scoreboard([ev("own_goal", HOME)], HOME, AWAY).as_tuple() == (0, 1)
        assert compute_scoreboard([ev("own_goal", AWAY)], HOME, AWAY).as_tuple() == (1, 0)

    def test_non_scoring_events_ignored(self) -> None:
        events = [
            ev("yellow_card", HOME),
            ev("red_card", AWAY),
            ev("missed_penalty", HOME),
            ev("substitution", AWAY),
            ev("assist", HOME),
        ]
        assert compute_scoreboard(events, HOME, AWAY).as_tuple() == (0, 0)

    def test_unknown_team_never_counts(self) -> None:
        assert compute_scoreboard([ev("goal", 99), ev("goal", None)], HOME, AWAY).as_tuple() == (0, 0)

    def test_order_does_not_matter(self) -> None:
        events = [ev("goal", HOME), ev("own_goal", HOME), ev("goal", AWAY), ev("penalty", AWAY)]
        forward = compute_scoreboard(events, HOME, AWAY)
        backward = compute_scoreboard(list(reversed(events)), HOME, AWAY)
        assert forward == backward == Scoreboard(home=1, away=3)

    def test_repeated_computation_is_stable(self) -> None:
        events = [ev("goal", HOME), ev("own_goal", AWAY)]
        results = {compute_scoreboard(events, HOME, AWAY).as_tuple() for _ in range(5)}
        assert results == {(2, 0)}

    def test_consistency_formula(self) -> None:
        events = [ev("goal", HOME)] * 3 + [ev("penalty", AWAY), ev("own_goal", AWAY), ev("own_goal", HOME)]
        board = compute_scoreboard(events, HOME, AWAY)
        home_expected = sum(
            1 for e in events if e.event_type in ("goal", "penalty") and e.team_id == HOME
        ) + sum(1 for e in events if e.event_type == "own_goal" and e.team_id == AWAY)
        away_expected = sum(
            1 for e in events if e.event_type in ("goal", "penalty") and e.team_id == AWAY
        ) + sum(1 for e in events if e.event_type == "own_goal" and e.team_id == HOME)
        assert board.as_tuple() == (home_expected, away_expected)


# ── Rule table ──────────────────────────────────────────────────────────

class TestRules:

    def test_every_event_type_has_a_rule(self) -> None:
        assert set(EVENT_RULES) == set(EventType)

    def test_score_event_types(self) -> None:
        assert SCORE_EVENT_TYPES == {EventType.GOAL, EventType.PENALTY, EventType.OWN_GOAL}

    def test_own_goal_credits_opponent(self) -> None:
        assert rule_for(EventType.OWN_GOAL).score is ScoreEffect.CREDIT_OPPONENT

    def test_substitution_roles(self) -> None:
        rule = rule_for(EventType.SUBSTITUTION)
        assert rule.primary.required and rule.primary.role is LineupRole.STARTER
        assert rule.secondary is not None
        assert rule.secondary.required and rule.secondary.role is LineupRole.SUBSTITUTE

    def test_only_goal_takes_an_assist(self) -> None:
        with_assist = {t for t, r in EVENT_RULES.items() if r.assist is not None}
        assert with_assist == {EventType.GOAL}

    def test_cards_do_not_affect_score(self) -> None:
        for event_type in (EventType.YELLOW_CARD, EventType.SECOND_YELLOW, EventType.RED_CARD):
            assert not rule_for(event_type).affects_score


# ── Half parsing ────────────────────────────────────────────────────────

class TestHalfParse:

    @pytest.mark.parametrize("raw,expected", [(1, Half.FIRST), ("2", Half.SECOND), ("extra", Half.EXTRA), (3, Half.EXTRA)])
    def test_accepted(self, raw: object, expected: Half) -> None:
        assert Half.parse(raw) is expected

    @pytest.mark.parametrize("raw", [0, 4, "third", None, True, 1.5])
    def test_rejected(self, raw: object) -> None:
        with pytest.raises(ValueError):
            Half.parse(raw)
