"""Competition and membership models."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class CompetitionStatus(str, Enum):
    SETUP = "SETUP"
    ACTIVE = "ACTIVE"
    COMPLETE = "COMPLETE"


class Classification(str, Enum):
    """Verdict of the progression judge after a fully resolved round."""
    CONTINUE = "CONTINUE"
    WINNER = "WINNER"
    DRAW = "DRAW"


class PlayerStatus(str, Enum):
    active = "active"
    eliminated = "eliminated"


class TeamEntry(BaseModel):
    team_id: str = Field(min_length=1, max_length=40)
    name: str = Field(min_length=1, max_length=120)


class PlayerHistoryEntry(BaseModel):
    round_id: str
    round_number: int
    team_id: Optional[str] = None
    outcome: str  # WIN | LOSE | DRAW
    no_pick: bool = False
    lives_after: int


class CompetitionCreate(BaseModel):
    """Request body for creating a competition."""
    name: str = Field(min_length=1, max_length=120)
    lives_per_player: int = 1
    no_repeat_teams: bool = True
    teams: list[TeamEntry]


class PlayerJoin(BaseModel):
    """Request body for adding a player. ``user_id`` defaults to the caller."""
    user_id: Optional[str] = None
    display_name: str = Field(min_length=1, max_length=80)


class CompetitionResponse(BaseModel):
    id: str
    name: str
    organiser_id: str
    status: CompetitionStatus
    lives_per_player: int
    no_repeat_teams: bool
    teams: list[TeamEntry]
    classification: Optional[Classification] = None
    winner_user_id: Optional[str] = None
    completed_at: Optional[datetime] = None


class PlayerResponse(BaseModel):
    user_id: str
    display_name: str
    lives_remaining: int
    status: PlayerStatus
    eliminated_round: Optional[int] = None


class PlayerStanding(PlayerResponse):
    """Single row of the standings table."""
    history: list[PlayerHistoryEntry] = []


class CompetitionSummary(BaseModel):
    """Read-only snapshot for dashboards."""
    id: str
    name: str
    status: CompetitionStatus
    classification: Optional[Classification] = None
    winner_user_id: Optional[str] = None
    current_round_number: Optional[int] = None
    current_round_locked: Optional[bool] = None
    active_players: int
    eliminated_players: int
    total_players: int


class PlayerRemoval(BaseModel):
    user_id: str
    display_name: str
    picks_deleted: int
    remaining_players: int
