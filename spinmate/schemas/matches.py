from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, field_validator, model_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def validate_best_of(value: int) -> int:
    if value < 1 or value % 2 == 0:
        raise ValueError("best_of must be an odd integer of at least 1")
    return value


class MatchStatus(str, Enum):
    PENDING = "pending"
    ONGOING = "ongoing"
    ENDED = "ended"


class Game(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    match_id: UUID
    game_number: int = Field(ge=1)
    player_1_score: int = Field(default=0, ge=0)
    player_2_score: int = Field(default=0, ge=0)
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None

    @property
    def is_complete(self) -> bool:
        return self.completed_at is not None

    @property
    def score(self) -> tuple[int, int]:
        return (self.player_1_score, self.player_2_score)


class Match(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    event_id: Optional[UUID] = None
    player_1: UUID
    player_2: UUID
    umpire: Optional[UUID] = None
    status: MatchStatus = MatchStatus.PENDING
    players_confirmed: frozenset[UUID] = frozenset()
    umpire_confirmed: bool = False
    winner: Optional[UUID] = None
    best_of: int
    table_number: int = 1
    games: List[Game] = Field(default_factory=list)
    ranking_score_delta: Optional[float] = None
    manually_created: bool = False
    first_server: Optional[UUID] = None
    created_at: datetime = Field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None

    check_best_of = field_validator("best_of")(validate_best_of)

    @model_validator(mode="after")
    def check_participants(self) -> "Match":
        if self.player_1 == self.player_2:
            raise ValueError("a match needs two distinct players")
        if self.umpire is not None and self.umpire in (self.player_1, self.player_2):
            raise ValueError("the umpire cannot also be a player")
        if not self.players_confirmed <= {self.player_1, self.player_2}:
            raise ValueError("only the two players can be in players_confirmed")
        return self

    @property
    def participants(self) -> tuple[UUID, ...]:
        if self.umpire is None:
            return (self.player_1, self.player_2)
        return (self.player_1, self.player_2, self.umpire)

    def is_player(self, player_id: UUID) -> bool:
        return player_id in (self.player_1, self.player_2)

    def sorted_games(self) -> List[Game]:
        return sorted(self.games, key=lambda g: g.game_number)


class MatchState(BaseModel):
    """Read-only predicates derived from a match, never stored."""
    is_pending: bool
    needs_players_initial_confirmation: bool
    needs_umpire_initial_confirmation: bool
    needs_winner_selection: bool
    needs_umpire_confirmation: bool


class LiveScore(BaseModel):
    match_id: UUID
    status: MatchStatus
    games_won: tuple[int, int]
    current_game: Optional[tuple[int, int]] = None
    current_game_number: Optional[int] = None
    display: str
    current_server: Optional[UUID] = None
    winner: Optional[UUID] = None


class ScoreData(BaseModel):
    player_1: int = Field(ge=0)
    player_2: int = Field(ge=0)


class CreateMatchRequest(BaseModel):
    event_id: Optional[UUID] = None
    player_1: UUID
    player_2: UUID
    umpire: Optional[UUID] = None
    best_of: int
    table_number: int = 1

    check_best_of = field_validator("best_of")(validate_best_of)


class ManualMatchRequest(BaseModel):
    event_id: Optional[UUID] = None
    player_1: UUID
    player_2: UUID
    umpire: Optional[UUID] = None
    best_of: int
    scores: List[ScoreData]
    played_at: Optional[datetime] = None

    check_best_of = field_validator("best_of")(validate_best_of)


class ConfirmUmpireRequest(BaseModel):
    server_id: Optional[UUID] = None


class GameScoreRequest(BaseModel):
    player_1_score: int = Field(ge=0)
    player_2_score: int = Field(ge=0)
    completed: bool = False


class SelectWinnerRequest(BaseModel):
    winner_id: UUID


class ForceTransitionRequest(BaseModel):
    status: MatchStatus
    reason: Optional[str] = None


class ForceTransitionResponse(BaseModel):
    match: Match
    violations: List[str]
