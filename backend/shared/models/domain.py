"""
Pydantic v2 domain models for the match ledger.
These are the wire/internal representations, NOT ORM models.
"""
from __future__ import annotations

from datetime import date, datetime, time
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from shared.models.enums import (
    Amplua,
    EventSource,
    EventType,
    FieldPosition,
    Half,
    LineupRole,
    MatchStatus,
    RefereeRole,
)


# ── Base ────────────────────────────────────────────────────────────────
class DomainModel(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


# ── Scoreboard ──────────────────────────────────────────────────────────
class Scoreboard(DomainModel):
    """Derived (home, away) score; equality is what reconciliation compares."""
    home: int = 0
    away: int = 0

    def as_tuple(self) -> tuple[int, int]:
        return (self.home, self.away)


# ── Match ───────────────────────────────────────────────────────────────
class MatchOut(DomainModel):
    id: int
    season_id: Optional[int] = None
    tour: Optional[int] = None
    match_date: date
    kickoff_time: Optional[time] = None
    home_team_id: int
    away_team_id: int
    status: MatchStatus
    home_score: Optional[int] = None
    away_score: Optional[int] = None
    home_penalty_score: Optional[int] = None
    away_penalty_score: Optional[int] = None
    sync_enabled: bool
    is_featured: bool = False
    video_url: Optional[str] = None
    youtube_live_url: Optional[str] = None
    version: int
    updated_at: Optional[datetime] = None


class MatchPatch(DomainModel):
    """Partial update of a match. Only fields that were sent are applied."""
    version: Optional[int] = Field(None, description="Expected version for optimistic concurrency")
    match_date: Optional[date] = None
    kickoff_time: Optional[time] = None
    status: Optional[MatchStatus] = None
    home_score: Optional[int] = Field(None, ge=0)
    away_score: Optional[int] = Field(None, ge=0)
    home_penalty_score: Optional[int] = Field(None, ge=0)
    away_penalty_score: Optional[int] = Field(None, ge=0)
    sync_enabled: Optional[bool] = None
    is_featured: Optional[bool] = None
    video_url: Optional[str] = None
    youtube_live_url: Optional[str] = None


# ── Lineup ──────────────────────────────────────────────────────────────
class LineupEntryCreate(DomainModel):
    team_id: int
    player_id: int
    lineup_type: LineupRole
    shirt_number: Optional[int] = Field(None, ge=0, le=999)
    amplua: Optional[Amplua] = None
    field_position: Optional[FieldPosition] = None
    is_captain: bool = False


class LineupEntryOut(DomainModel):
    id: int
    match_id: int
    team_id: int
    player_id: int
    lineup_type: LineupRole
    shirt_number: Optional[int] = None
    amplua: Optional[Amplua] = None
    field_position: Optional[FieldPosition] = None
    is_captain: bool = False


# ── Events ──────────────────────────────────────────────────────────────
class MatchEventCreate(DomainModel):
    half: Half
    minute: int
    event_type: EventType
    team_id: Optional[int] = None
    player_id: Optional[int] = None
    player2_id: Optional[int] = None
    assist_player_id: Optional[int] = None

    @field_validator("half", mode="before")
    @classmethod
    def parse_half(cls, value: object) -> Half:
        return Half.parse(value)


class MatchEventOut(DomainModel):
    id: int
    match_id: int
    half: Half
    minute: int
    event_type: EventType
    team_id: Optional[int] = None
    player_id: Optional[int] = None
    player_number: Optional[int] = None
    player2_id: Optional[int] = None
    assist_player_id: Optional[int] = None
    source: EventSource = EventSource.MANUAL
    external_id: Optional[str] = None


# ── Referees ────────────────────────────────────────────────────────────
class RefereeAssignmentCreate(DomainModel):
    referee_id: int
    role: RefereeRole


class RefereeAssignmentOut(DomainModel):
    id: int
    match_id: int
    referee_id: int
    role: RefereeRole


# ── Reconciliation report ──────────────────────────────────────────────
class ReconcileResult(DomainModel):
    match_id: int
    previous: Optional[Scoreboard] = None
    scoreboard: Scoreboard
    drifted: bool = False


# ── Sync feed (ids already resolved to internal ones) ──────────────────
class FeedLineupItem(DomainModel):
    team_id: int
    player_id: int
    lineup_type: LineupRole
    shirt_number: Optional[int] = Field(None, ge=0, le=999)
    amplua: Optional[Amplua] = None
    field_position: Optional[FieldPosition] = None
    is_captain: bool = False


class FeedEvent(DomainModel):
    external_id: str
    half: Half
    minute: int = Field(..., ge=0)
    event_type: EventType
    team_id: Optional[int] = None
    player_id: Optional[int] = None
    player2_id: Optional[int] = None
    assist_player_id: Optional[int] = None

    @field_validator("half", mode="before")
    @classmethod
    def parse_half(cls, value: object) -> Half:
        return Half.parse(value)


class SyncReport(DomainModel):
    match_id: int
    kind: str
    received: int = 0
    applied: int = 0
    skipped: int = 0
    scoreboard: Optional[Scoreboard] = None
    finished_at: datetime = Field(default_factory=datetime.utcnow)
