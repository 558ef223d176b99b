import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException

from spinmate.api.errors import to_http_exception
from spinmate.core import lifecycle
from spinmate.core import matches as matches_core
from spinmate.core.dependencies import get_acting_player_id, get_database_service
from spinmate.core.exceptions import MatchOperationError
from spinmate.core.ratings import RatingCollaborator, get_rating_collaborator
from spinmate.schemas.matches import (
    ConfirmUmpireRequest,
    CreateMatchRequest,
    ForceTransitionRequest,
    ForceTransitionResponse,
    GameScoreRequest,
    LiveScore,
    ManualMatchRequest,
    Match,
    MatchState,
    SelectWinnerRequest,
)
from spinmate.services.database import DatabaseService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/matches", tags=["matches"])


@router.post("/", response_model=Match)
async def create_match(
    match_data: CreateMatchRequest,
    database: DatabaseService = Depends(get_database_service),
):
    """Create a pending match."""
    try:
        return await matches_core.create_match(
            player_1=match_data.player_1,
            player_2=match_data.player_2,
            best_of=match_data.best_of,
            umpire=match_data.umpire,
            event_id=match_data.event_id,
            table_number=match_data.table_number,
            database=database,
        )
    except MatchOperationError as e:
        raise to_http_exception(e) from e
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to create match: {str(e)}") from e


@router.post("/manual", response_model=Match)
async def record_manual_match(
    match_data: ManualMatchRequest,
    database: DatabaseService = Depends(get_database_service),
    rating: RatingCollaborator = Depends(get_rating_collaborator),
):
    """Record an already-played match from its game scores."""
    try:
        return await matches_core.record_manual_match(
            player_1=match_data.player_1,
            player_2=match_data.player_2,
            best_of=match_data.best_of,
            scores=[(s.player_1, s.player_2) for s in match_data.scores],
            umpire=match_data.umpire,
            event_id=match_data.event_id,
            played_at=match_data.played_at,
            database=database,
            rating=rating,
        )
    except MatchOperationError as e:
        raise to_http_exception(e) from e
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to record match: {str(e)}") from e


@router.get("/{match_id}", response_model=Match)
async def get_match(
    match_id: UUID,
    database: DatabaseService = Depends(get_database_service),
):
    try:
        return await matches_core.get_match(match_id, database=database)
    except MatchOperationError as e:
        raise to_http_exception(e) from e
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e)) from e


@router.get("/{match_id}/state", response_model=MatchState)
async def get_match_state(
    match_id: UUID,
    database: DatabaseService = Depends(get_database_service),
):
    """What the match is waiting for."""
    try:
        match = await matches_core.get_match(match_id, database=database)
        return lifecycle.match_state(match)
    except MatchOperationError as e:
        raise to_http_exception(e) from e
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e)) from e


@router.get("/{match_id}/score", response_model=LiveScore)
async def get_live_score(
    match_id: UUID,
    database: DatabaseService = Depends(get_database_service),
):
    """Live score for scoreboards and public feeds."""
    try:
        return await matches_core.get_live_score(match_id, database=database)
    except MatchOperationError as e:
        raise to_http_exception(e) from e
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e)) from e


@router.post("/{match_id}/confirm", response_model=Match)
async def confirm_player(
    match_id: UUID,
    player_id: UUID = Depends(get_acting_player_id),
    database: DatabaseService = Depends(get_database_service),
):
    """The acting player confirms they are ready."""
    try:
        return await matches_core.confirm_player(match_id, player_id, database=database)
    except MatchOperationError as e:
        raise to_http_exception(e) from e
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e)) from e


@router.post("/{match_id}/umpire/confirm", response_model=Match)
async def confirm_umpire(
    match_id: UUID,
    request: Optional[ConfirmUmpireRequest] = None,
    umpire_id: UUID = Depends(get_acting_player_id),
    database: DatabaseService = Depends(get_database_service),
):
    """The acting umpire starts the match, optionally naming the first server."""
    try:
        return await matches_core.confirm_umpire(
            match_id,
            umpire_id,
            server_id=request.server_id if request else None,
            database=database,
        )
    except MatchOperationError as e:
        raise to_http_exception(e) from e
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e)) from e


@router.put("/{match_id}/games/{game_number}", response_model=Match)
async def update_game_score(
    match_id: UUID,
    game_number: int,
    score: GameScoreRequest,
    player_id: UUID = Depends(get_acting_player_id),
    database: DatabaseService = Depends(get_database_service),
):
    try:
        logger.debug("Player %s scores game %d of %s", player_id, game_number, match_id)
        return await matches_core.update_game_score(
            match_id,
            game_number,
            score.player_1_score,
            score.player_2_score,
            completed=score.completed,
            database=database,
        )
    except MatchOperationError as e:
        raise to_http_exception(e) from e
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e)) from e


@router.post("/{match_id}/winner", response_model=Match)
async def select_winner(
    match_id: UUID,
    request: SelectWinnerRequest,
    player_id: UUID = Depends(get_acting_player_id),
    database: DatabaseService = Depends(get_database_service),
):
    try:
        logger.debug("Player %s selects winner of %s", player_id, match_id)
        return await matches_core.select_winner(match_id, request.winner_id, database=database)
    except MatchOperationError as e:
        raise to_http_exception(e) from e
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e)) from e


@router.post("/{match_id}/result/confirm", response_model=Match)
async def confirm_result(
    match_id: UUID,
    umpire_id: UUID = Depends(get_acting_player_id),
    database: DatabaseService = Depends(get_database_service),
    rating: RatingCollaborator = Depends(get_rating_collaborator),
):
    """The acting umpire confirms the winner and ends the match."""
    try:
        return await matches_core.confirm_result(
            match_id, umpire_id, database=database, rating=rating
        )
    except MatchOperationError as e:
        raise to_http_exception(e) from e
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e)) from e


@router.post("/{match_id}/force", response_model=ForceTransitionResponse)
async def force_transition(
    match_id: UUID,
    request: ForceTransitionRequest,
    admin_id: UUID = Depends(get_acting_player_id),
    database: DatabaseService = Depends(get_database_service),
    rating: RatingCollaborator = Depends(get_rating_collaborator),
):
    """Admin override: set the status directly, bypassing confirmations."""
    try:
        logger.warning(
            "Admin %s forces match %s to %s (%s)",
            admin_id,
            match_id,
            request.status.value,
            request.reason or "no reason given",
        )
        match, violations = await matches_core.force_transition(
            match_id, request.status, database=database, rating=rating
        )
        return ForceTransitionResponse(match=match, violations=violations)
    except MatchOperationError as e:
        raise to_http_exception(e) from e
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e)) from e
