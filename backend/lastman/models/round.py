"""Round, fixture and pick models."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

# Stored in fixtures.result when the match ends level.
DRAW_RESULT = "DRAW"


class PickOutcome(str, Enum):
    WIN = "WIN"
    LOSE = "LOSE"
    DRAW = "DRAW"


class ResultInput(str, Enum):
    """Result as entered by the organiser, before translation to a team id."""
    home_win = "home_win"
    away_win = "away_win"
    draw = "draw"


class RoundCreate(BaseModel):
    lock_time: datetime


class LockTimeUpdate(BaseModel):
    lock_time: datetime


class FixtureCreate(BaseModel):
    home_team_id: str = Field(min_length=1)
    away_team_id: str = Field(min_length=1)
    kickoff_time: Optional[datetime] = None


class FixtureUpdate(BaseModel):
    """Partial fixture edit. Omitted fields keep their stored value."""
    home_team_id: Optional[str] = Field(default=None, min_length=1)
    away_team_id: Optional[str] = Field(default=None, min_length=1)
    kickoff_time: Optional[datetime] = None


class FixtureBatch(BaseModel):
    fixtures: list[FixtureCreate] = Field(min_length=1)


class FixtureResultSet(BaseModel):
    result: ResultInput


class PickCreate(BaseModel):
    """Request body for a pick. Organisers may pass ``user_id`` to pick on a player's behalf."""
    fixture_id: str
    team_id: str
    user_id: Optional[str] = None


class FixtureResponse(BaseModel):
    id: str
    round_id: str
    home_team_id: str
    away_team_id: str
    kickoff_time: Optional[datetime] = None
    result: Optional[str] = None
    processed_at: Optional[datetime] = None


class RoundResponse(BaseModel):
    id: str
    competition_id: str
    round_number: int
    lock_time: datetime
    is_locked: bool
    resolved_at: Optional[datetime] = None
    fixtures: list[FixtureResponse] = []


class RoundListEntry(BaseModel):
    id: str
    round_number: int
    lock_time: datetime
    is_locked: bool
    resolved_at: Optional[datetime] = None
    fixture_count: int = 0


class PickResponse(BaseModel):
    id: str
    round_id: str
    round_number: int
    user_id: str
    fixture_id: str
    team_id: str
    outcome: Optional[PickOutcome] = None
    set_by: Optional[str] = None
    updated_at: Optional[datetime] = None


class RoundProcessingReport(BaseModel):
    """Tallies from one resolve + apply pass."""
    round_id: str
    round_number: int
    wins: int = 0
    losses: int = 0
    draws: int = 0
    skipped: int = 0
    lives_lost: int = 0
    eliminated: int = 0
    no_pick_penalties: int = 0
    pending_players: int = 0
    round_complete: bool = False
    classification: Optional[str] = None
    winner_user_id: Optional[str] = None
