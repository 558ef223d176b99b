from datetime import datetime
from enum import Enum
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from spinmate.schemas.matches import utcnow, validate_best_of


class TournamentStatus(str, Enum):
    IDLE = "idle"
    STARTED = "started"


class PlayerStatus(str, Enum):
    PLAYING = "playing"
    UMPIRING = "umpiring"
    PENDING = "pending"
    UMPIRE_PENDING = "umpire_pending"
    WAITING = "waiting"


class ActiveTournament(BaseModel):
    id: str
    event_id: UUID
    player_ids: List[UUID] = Field(default_factory=list)
    tables: List[int] = Field(default_factory=lambda: [1])
    total_rounds: int = Field(default=1, ge=1)
    best_of: int
    status: TournamentStatus = TournamentStatus.IDLE
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    check_best_of = field_validator("best_of")(validate_best_of)

    @field_validator("player_ids")
    @classmethod
    def unique_player_ids(cls, v: List[UUID]) -> List[UUID]:
        # Keep the first occurrence; join order drives pairing tie-breaks.
        return list(dict.fromkeys(v))


def tournament_id_for(event_id: UUID) -> str:
    return f"tournament-{event_id}"


class CreateTournamentRequest(BaseModel):
    event_id: UUID
    best_of: int
    tables: List[int] = Field(default_factory=lambda: [1], min_length=1)
    total_rounds: Optional[int] = Field(default=None, ge=1)

    check_best_of = field_validator("best_of")(validate_best_of)


class UpdateTournamentRequest(BaseModel):
    best_of: Optional[int] = None
    tables: Optional[List[int]] = Field(default=None, min_length=1)
    total_rounds: Optional[int] = Field(default=None, ge=1)

    @field_validator("best_of")
    @classmethod
    def check_best_of(cls, v: Optional[int]) -> Optional[int]:
        return v if v is None else validate_best_of(v)


class PlayerStatusResponse(BaseModel):
    player_id: UUID
    status: PlayerStatus
    match_id: Optional[UUID] = None
