"""
SQLAlchemy 2.0 ORM models for Match Desk.

Teams, players, rosters, referees and matches are owned by the fixture and
roster collaborators; this service reads them and writes only the
scoreboard/status columns of ``matches`` plus the lineup, event and referee
assignment tables.
"""
from __future__ import annotations

from datetime import date, datetime, time, timezone
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    SmallInteger,
    String,
    Text,
    Time,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class TeamORM(Base):
    __tablename__ = "teams"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    short_name: Mapped[Optional[str]] = mapped_column(String(50))


class PlayerORM(Base):
    __tablename__ = "players"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)


class TeamRosterORM(Base):
    """Eligible participant pool per team and season."""

    __tablename__ = "team_rosters"
    __table_args__ = (
        UniqueConstraint("team_id", "player_id", "season_id", name="uq_team_roster"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    team_id: Mapped[int] = mapped_column(Integer, ForeignKey("teams.id"), nullable=False)
    player_id: Mapped[int] = mapped_column(Integer, ForeignKey("players.id"), nullable=False)
    season_id: Mapped[Optional[int]] = mapped_column(Integer)
    shirt_number: Mapped[Optional[int]] = mapped_column(SmallInteger)


class RefereeORM(Base):
    __tablename__ = "referees"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)


class MatchORM(Base):
    __tablename__ = "matches"
    __table_args__ = (
        CheckConstraint("home_team_id != away_team_id", name="chk_different_teams"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    season_id: Mapped[Optional[int]] = mapped_column(Integer)
    tour: Mapped[Optional[int]] = mapped_column(SmallInteger)
    match_date: Mapped[date] = mapped_column("date", Date, nullable=False)
    kickoff_time: Mapped[Optional[time]] = mapped_column("time", Time)
    home_team_id: Mapped[int] = mapped_column(Integer, ForeignKey("teams.id"), nullable=False)
    away_team_id: Mapped[int] = mapped_column(Integer, ForeignKey("teams.id"), nullable=False)
    status: Mapped[str] = mapped_column(String(30), nullable=False, default="created")
    home_score: Mapped[Optional[int]] = mapped_column(Integer)
    away_score: Mapped[Optional[int]] = mapped_column(Integer)
    # last operator-entered score; shown again once the ledger holds no score events
    manual_home_score: Mapped[Optional[int]] = mapped_column(Integer)
    manual_away_score: Mapped[Optional[int]] = mapped_column(Integer)
    home_penalty_score: Mapped[Optional[int]] = mapped_column(Integer)
    away_penalty_score: Mapped[Optional[int]] = mapped_column(Integer)
    sync_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_featured: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    video_url: Mapped[Optional[str]] = mapped_column(Text)
    youtube_live_url: Mapped[Optional[str]] = mapped_column(Text)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __mapper_args__ = {"version_id_col": version}


class LineupEntryORM(Base):
    __tablename__ = "match_lineups"
    __table_args__ = (
        UniqueConstraint("match_id", "player_id", name="uq_lineup_match_player"),
        Index(
            "uq_lineup_captain",
            "match_id",
            "team_id",
            unique=True,
            postgresql_where=text("is_captain"),
            sqlite_where=text("is_captain"),
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    match_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("matches.id", ondelete="CASCADE"), nullable=False, index=True
    )
    team_id: Mapped[int] = mapped_column(Integer, ForeignKey("teams.id"), nullable=False)
    player_id: Mapped[int] = mapped_column(Integer, ForeignKey("players.id"), nullable=False)
    lineup_type: Mapped[str] = mapped_column(String(20), nullable=False)
    shirt_number: Mapped[Optional[int]] = mapped_column(SmallInteger)
    amplua: Mapped[Optional[str]] = mapped_column(String(5))
    field_position: Mapped[Optional[str]] = mapped_column(String(5))
    is_captain: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


class MatchEventORM(Base):
    __tablename__ = "match_events"
    __table_args__ = (
        UniqueConstraint("match_id", "source", "external_id", name="uq_match_event_external"),
        CheckConstraint("minute >= 0", name="chk_event_minute"),
        Index("ix_match_events_order", "match_id", "half", "minute", "id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    match_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("matches.id", ondelete="CASCADE"), nullable=False
    )
    half: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    minute: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    event_type: Mapped[str] = mapped_column(String(30), nullable=False)
    team_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("teams.id"))
    player_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("players.id"))
    player_number: Mapped[Optional[int]] = mapped_column(SmallInteger)
    player2_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("players.id"))
    assist_player_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("players.id"))
    source: Mapped[str] = mapped_column(String(10), nullable=False, default="manual")
    external_id: Mapped[Optional[str]] = mapped_column(String(200))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


class RefereeAssignmentORM(Base):
    __tablename__ = "match_referees"
    __table_args__ = (
        UniqueConstraint("match_id", "referee_id", "role", name="uq_match_referee_role"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    match_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("matches.id", ondelete="CASCADE"), nullable=False, index=True
    )
    referee_id: Mapped[int] = mapped_column(Integer, ForeignKey("referees.id"), nullable=False)
    role: Mapped[str] = mapped_column(String(30), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
