from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException

from spinmate.api.errors import to_http_exception
from spinmate.core import players as players_core
from spinmate.core.dependencies import get_database_service
from spinmate.core.exceptions import MatchOperationError
from spinmate.schemas.players import CreatePlayerRequest, Player
from spinmate.services.database import DatabaseService

router = APIRouter(prefix="/players", tags=["players"])


@router.post("/", response_model=Player)
async def create_player(
    player_data: CreatePlayerRequest,
    database: DatabaseService = Depends(get_database_service),
):
    """Register a player."""
    try:
        return await players_core.create_player(
            display_name=player_data.display_name,
            division=player_data.division,
            database=database,
        )
    except MatchOperationError as e:
        raise to_http_exception(e) from e
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e)) from e


@router.get("/{player_id}", response_model=Player)
async def get_player(
    player_id: UUID,
    database: DatabaseService = Depends(get_database_service),
):
    """Get a player by ID."""
    try:
        return await players_core.get_player(player_id, database=database)
    except MatchOperationError as e:
        raise to_http_exception(e) from e
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e)) from e
