"""
Match lifecycle.

created → live → finished, with postponed / cancelled / technical_defeat
reachable from created or live. ``reset`` sends any state back to created;
whether an external sync session objects is the caller's decision.
"""
from __future__ import annotations

from shared.models.enums import MatchStatus
from shared.models.orm import MatchORM

from ledger.errors import InvalidTransitionError, MatchClosedError

_SIDE_EXITS = {MatchStatus.POSTPONED, MatchStatus.CANCELLED, MatchStatus.TECHNICAL_DEFEAT}

TRANSITIONS: dict[MatchStatus, frozenset[MatchStatus]] = {
    MatchStatus.CREATED: frozenset({MatchStatus.LIVE, *_SIDE_EXITS}),
    MatchStatus.LIVE: frozenset({MatchStatus.FINISHED, *_SIDE_EXITS}),
    MatchStatus.FINISHED: frozenset(),
    MatchStatus.POSTPONED: frozenset(),
    MatchStatus.CANCELLED: frozenset(),
    MatchStatus.TECHNICAL_DEFEAT: frozenset(),
}


def current_status(match: MatchORM) -> MatchStatus:
    return MatchStatus(match.status)


def can_transition(source: MatchStatus, target: MatchStatus) -> bool:
    return source == target or target in TRANSITIONS[source]


def transition(match: MatchORM, target: MatchStatus) -> MatchStatus:
    """Move ``match`` to ``target`` or raise. Returns the previous status."""
    source = current_status(match)
    if not can_transition(source, target):
        raise InvalidTransitionError(
            f"Cannot move match {match.id} from {source.value} to {target.value}",
            match_id=match.id,
            source=source.value,
            target=target.value,
        )
    match.status = target.value
    return source


def reset(match: MatchORM) -> MatchStatus:
    """Reopen a match from any state."""
    source = current_status(match)
    match.status = MatchStatus.CREATED.value
    return source


def ensure_mutable(match: MatchORM) -> None:
    """Ledger, lineup and referee mutations are legal only in created and live."""
    status = current_status(match)
    if not status.accepts_ledger_mutations:
        raise MatchClosedError(match.id, status.value)
