from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class Player(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    display_name: str
    rating: float = 1000.0
    division: Optional[str] = None


class CreatePlayerRequest(BaseModel):
    display_name: str = Field(min_length=1)
    division: Optional[str] = None
