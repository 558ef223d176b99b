from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException

from spinmate.api.errors import to_http_exception
from spinmate.core import tournament as tournament_core
from spinmate.core.dependencies import get_database_service
from spinmate.core.exceptions import MatchOperationError
from spinmate.schemas.matches import Match
from spinmate.schemas.tournaments import (
    ActiveTournament,
    CreateTournamentRequest,
    PlayerStatusResponse,
    UpdateTournamentRequest,
)
from spinmate.services.database import DatabaseService

router = APIRouter(prefix="/tournaments", tags=["tournaments"])


@router.post("/", response_model=ActiveTournament)
async def create_tournament(
    request: CreateTournamentRequest,
    database: DatabaseService = Depends(get_database_service),
):
    """Open the drop-in tournament for an event."""
    try:
        return await tournament_core.create_tournament(
            event_id=request.event_id,
            best_of=request.best_of,
            tables=request.tables,
            total_rounds=request.total_rounds,
            database=database,
        )
    except MatchOperationError as e:
        raise to_http_exception(e) from e
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e)) from e


@router.get("/{tournament_id}", response_model=ActiveTournament)
async def get_tournament(
    tournament_id: str,
    database: DatabaseService = Depends(get_database_service),
):
    try:
        return await tournament_core.get_tournament(tournament_id, database=database)
    except MatchOperationError as e:
        raise to_http_exception(e) from e
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e)) from e


@router.patch("/{tournament_id}", response_model=ActiveTournament)
async def update_tournament(
    tournament_id: str,
    request: UpdateTournamentRequest,
    database: DatabaseService = Depends(get_database_service),
):
    try:
        return await tournament_core.update_tournament(
            tournament_id,
            best_of=request.best_of,
            tables=request.tables,
            total_rounds=request.total_rounds,
            database=database,
        )
    except MatchOperationError as e:
        raise to_http_exception(e) from e
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e)) from e


@router.post("/{tournament_id}/players/{player_id}", response_model=ActiveTournament)
async def add_player(
    tournament_id: str,
    player_id: UUID,
    database: DatabaseService = Depends(get_database_service),
):
    """Add a present player to the pool."""
    try:
        return await tournament_core.add_player(tournament_id, player_id, database=database)
    except MatchOperationError as e:
        raise to_http_exception(e) from e
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e)) from e


@router.delete("/{tournament_id}/players/{player_id}", response_model=ActiveTournament)
async def remove_player(
    tournament_id: str,
    player_id: UUID,
    database: DatabaseService = Depends(get_database_service),
):
    """Remove a waiting player from the pool."""
    try:
        return await tournament_core.remove_player(tournament_id, player_id, database=database)
    except MatchOperationError as e:
        raise to_http_exception(e) from e
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e)) from e


@router.get("/{tournament_id}/statuses", response_model=List[PlayerStatusResponse])
async def get_player_statuses(
    tournament_id: str,
    database: DatabaseService = Depends(get_database_service),
):
    """What every player in the pool is doing right now."""
    try:
        return await tournament_core.get_player_statuses(tournament_id, database=database)
    except MatchOperationError as e:
        raise to_http_exception(e) from e
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e)) from e


@router.post("/{tournament_id}/next-match", response_model=Optional[Match])
async def generate_next_match(
    tournament_id: str,
    database: DatabaseService = Depends(get_database_service),
):
    """Pair the next match, or return null when nobody can be paired."""
    try:
        return await tournament_core.generate_next_match(tournament_id, database=database)
    except MatchOperationError as e:
        raise to_http_exception(e) from e
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e)) from e


@router.post("/{tournament_id}/fill", response_model=List[Match])
async def fill_tables(
    tournament_id: str,
    database: DatabaseService = Depends(get_database_service),
):
    """Create matches until every free table is taken or nobody can be paired."""
    try:
        return await tournament_core.fill_tables(tournament_id, database=database)
    except MatchOperationError as e:
        raise to_http_exception(e) from e
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e)) from e


@router.post("/{tournament_id}/reset")
async def reset_tournament(
    tournament_id: str,
    database: DatabaseService = Depends(get_database_service),
):
    """Delete pending matches and put the tournament back to idle."""
    try:
        deleted = await tournament_core.reset_tournament(tournament_id, database=database)
        return {"deleted_matches": deleted}
    except MatchOperationError as e:
        raise to_http_exception(e) from e
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e)) from e
