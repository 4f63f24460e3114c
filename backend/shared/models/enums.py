"""Domain enumerations for the match ledger."""
from __future__ import annotations

from enum import Enum


class MatchStatus(str, Enum):
    CREATED = "created"
    LIVE = "live"
    FINISHED = "finished"
    POSTPONED = "postponed"
    CANCELLED = "cancelled"
    TECHNICAL_DEFEAT = "technical_defeat"

    @property
    def accepts_ledger_mutations(self) -> bool:
        return self in (MatchStatus.CREATED, MatchStatus.LIVE)

    @property
    def is_terminal(self) -> bool:
        return self in (
            MatchStatus.FINISHED,
            MatchStatus.POSTPONED,
            MatchStatus.CANCELLED,
            MatchStatus.TECHNICAL_DEFEAT,
        )


class LineupRole(str, Enum):
    STARTER = "starter"
    SUBSTITUTE = "substitute"


class Amplua(str, Enum):
    GOALKEEPER = "Gk"
    DEFENDER = "D"
    DEFENSIVE_MIDFIELDER = "DM"
    MIDFIELDER = "M"
    ATTACKING_MIDFIELDER = "AM"
    FORWARD = "F"


class FieldPosition(str, Enum):
    CENTER = "C"
    LEFT = "L"
    RIGHT = "R"
    LEFT_CENTER = "LC"
    RIGHT_CENTER = "RC"


class Half(int, Enum):
    FIRST = 1
    SECOND = 2
    EXTRA = 3

    @classmethod
    def parse(cls, value: object) -> "Half":
        if isinstance(value, Half):
            return value
        if isinstance(value, str):
            raw = value.strip().lower()
            if raw == "extra":
                return cls.EXTRA
            if raw.isdigit():
                return cls(int(raw))
        if isinstance(value, int) and not isinstance(value, bool):
            return cls(value)
        raise ValueError(f"half must be 1, 2 or 'extra', got {value!r}")


class EventType(str, Enum):
    GOAL = "goal"
    OWN_GOAL = "own_goal"
    PENALTY = "penalty"
    MISSED_PENALTY = "missed_penalty"
    YELLOW_CARD = "yellow_card"
    SECOND_YELLOW = "second_yellow"
    RED_CARD = "red_card"
    SUBSTITUTION = "substitution"
    ASSIST = "assist"


class EventSource(str, Enum):
    MANUAL = "manual"
    SYNC = "sync"


class RefereeRole(str, Enum):
    MAIN = "main"
    FIRST_ASSISTANT = "first_assistant"
    SECOND_ASSISTANT = "second_assistant"
    FOURTH_REFEREE = "fourth_referee"
    VAR_MAIN = "var_main"
    VAR_ASSISTANT = "var_assistant"
    MATCH_INSPECTOR = "match_inspector"


class SyncKind(str, Enum):
    LINEUP = "lineup"
    EVENTS = "events"
