import logging
import random
from datetime import datetime
from typing import Callable, List, Optional
from uuid import UUID

from spinmate.core import lifecycle, scoring, tournament
from spinmate.core.config import settings
from spinmate.core.exceptions import MatchConflictError, MatchValidationError, NotFoundError
from spinmate.core.ratings import RatingCollaborator, get_rating_collaborator
from spinmate.core.serving import choose_first_server, current_server_side
from spinmate.schemas.matches import LiveScore, Match, MatchStatus, utcnow
from spinmate.services.database import DatabaseService

logger = logging.getLogger(__name__)

# A write that lost a race is re-read and re-applied this many times in total.
WRITE_ATTEMPTS = 2


async def _load_match(match_id: UUID, database: DatabaseService, operation: str) -> Match:
    row = await database.get_match(match_id)
    if not row:
        raise NotFoundError(f"Match {match_id} not found", match_id=match_id, operation=operation)
    return Match.model_validate(row)


async def _rating_delta(
    match: Match, database: DatabaseService, rating: RatingCollaborator
) -> float:
    loser = match.player_2 if match.winner == match.player_1 else match.player_1
    ratings = {
        UUID(str(row["id"])): float(row.get("rating", settings.RATING_BASE))
        for row in await database.get_players_by_ids([match.winner, loser])
    }
    return rating.compute_delta(
        match,
        ratings.get(match.winner, settings.RATING_BASE),
        ratings.get(loser, settings.RATING_BASE),
    )


async def _save(
    updated: Match, loaded: Match, database: DatabaseService, operation: str
) -> Match:
    """Write the changes from ``loaded`` to ``updated``; returns the stored match."""
    row = await database.update_match(updated, loaded)
    if not row:
        raise NotFoundError(
            f"Match {updated.id} was deleted before it could be saved",
            match_id=updated.id,
            operation=operation,
        )
    return Match.model_validate(row)


async def _commit(
    match: Match,
    transition: Callable[[Match], Match],
    database: DatabaseService,
    operation: str,
    rating: RatingCollaborator | None = None,
) -> Match:
    """Apply ``transition`` to ``match`` and store the result.

    If another writer moved the match on in the meantime it is read again
    and the transition re-applied, so a repeated command stays a no-op and
    a command that no longer applies raises from the lifecycle. A match
    that ends here gets its rating delta and frees its table.
    """
    attempts = 0
    while True:
        updated = transition(match)
        if updated is match:
            return match

        ended = updated.status == MatchStatus.ENDED and match.status != MatchStatus.ENDED
        if ended and updated.winner is not None:
            delta = await _rating_delta(updated, database, rating or get_rating_collaborator())
            updated = updated.model_copy(update={"ranking_score_delta": delta})

        try:
            saved = await _save(updated, match, database, operation)
        except MatchConflictError:
            attempts += 1
            if attempts >= WRITE_ATTEMPTS:
                raise
            logger.info("Match %s changed during %s, reading it again", match.id, operation)
            match = await _load_match(match.id, database, operation)
            continue

        if ended:
            await tournament.on_match_ended(saved, database=database)
        return saved


async def _confirm(
    match: Match, transition: Callable[[Match], Match], database: DatabaseService, operation: str
) -> Match:
    """Store a confirmation, then start the match if the stored gate is complete."""
    saved = await _commit(match, transition, database, operation)
    return await _commit(saved, lifecycle.start_if_ready, database, operation)


async def create_match(
    player_1: UUID,
    player_2: UUID,
    best_of: int,
    umpire: UUID | None = None,
    event_id: UUID | None = None,
    table_number: int = 1,
    database: DatabaseService | None = None,
) -> Match:
    """Create a pending match outside the automatic pairing."""
    if database is None:
        database = DatabaseService()

    match = lifecycle.new_match(
        player_1=player_1,
        player_2=player_2,
        best_of=best_of,
        umpire=umpire,
        event_id=event_id,
        table_number=table_number,
    )
    await database.insert_match(match)
    return match


async def get_match(match_id: UUID, database: DatabaseService | None = None) -> Match:
    """Get a match with its games."""
    if database is None:
        database = DatabaseService()

    return await _load_match(match_id, database, "get_match")


async def confirm_player(
    match_id: UUID, player_id: UUID, database: DatabaseService | None = None
) -> Match:
    """A player confirms they are at the table."""
    if database is None:
        database = DatabaseService()

    match = await _load_match(match_id, database, "confirm_player")
    return await _confirm(
        match,
        lambda m: lifecycle.confirm_player(m, player_id),
        database,
        "confirm_player",
    )


async def confirm_umpire(
    match_id: UUID,
    umpire_id: UUID,
    server_id: UUID | None = None,
    database: DatabaseService | None = None,
    rng: random.Random | None = None,
) -> Match:
    """The umpire confirms the match; without a chosen server a coin is flipped."""
    if database is None:
        database = DatabaseService()

    def transition(match: Match) -> Match:
        server = server_id
        if match.status == MatchStatus.PENDING and server is None and match.first_server is None:
            server = choose_first_server(match.player_1, match.player_2, rng)
        return lifecycle.confirm_umpire(match, umpire_id, server_id=server)

    match = await _load_match(match_id, database, "confirm_umpire")
    return await _confirm(match, transition, database, "confirm_umpire")


async def update_game_score(
    match_id: UUID,
    game_number: int,
    player_1_score: int,
    player_2_score: int,
    completed: bool = False,
    database: DatabaseService | None = None,
) -> Match:
    """Set the points of a game in an ongoing match."""
    if database is None:
        database = DatabaseService()

    match = await _load_match(match_id, database, "update_game_score")
    return await _commit(
        match,
        lambda m: lifecycle.record_game_score(
            m, game_number, player_1_score, player_2_score, completed=completed
        ),
        database,
        "update_game_score",
    )


async def select_winner(
    match_id: UUID, winner_id: UUID, database: DatabaseService | None = None
) -> Match:
    if database is None:
        database = DatabaseService()

    match = await _load_match(match_id, database, "select_winner")
    return await _commit(
        match, lambda m: lifecycle.select_winner(m, winner_id), database, "select_winner"
    )


async def confirm_result(
    match_id: UUID,
    umpire_id: UUID,
    database: DatabaseService | None = None,
    rating: RatingCollaborator | None = None,
) -> Match:
    """The umpire confirms the winner; the match ends and tables are refilled."""
    if database is None:
        database = DatabaseService()

    match = await _load_match(match_id, database, "confirm_result")
    return await _commit(
        match,
        lambda m: lifecycle.confirm_result(m, umpire_id),
        database,
        "confirm_result",
        rating=rating,
    )


async def record_manual_match(
    player_1: UUID,
    player_2: UUID,
    best_of: int,
    scores: List[tuple[int, int]],
    umpire: UUID | None = None,
    event_id: UUID | None = None,
    played_at: Optional[datetime] = None,
    database: DatabaseService | None = None,
    rating: RatingCollaborator | None = None,
) -> Match:
    """Store an already-played match, deriving the winner from its scores."""
    if database is None:
        database = DatabaseService()

    played_at = played_at or utcnow()
    match = lifecycle.new_match(
        player_1=player_1,
        player_2=player_2,
        best_of=best_of,
        umpire=umpire,
        event_id=event_id,
        manually_created=True,
    )
    games = scoring.build_completed_games(scores, match.id, played_at)
    outcome = scoring.match_outcome(games, best_of)
    if not outcome.is_decided:
        raise MatchValidationError(
            f"Scores {outcome.games_won[0]}-{outcome.games_won[1]} do not decide a best of {best_of}",
            match_id=match.id,
            operation="record_manual_match",
        )

    match = match.model_copy(
        update={
            "status": MatchStatus.ENDED,
            "players_confirmed": frozenset((player_1, player_2)),
            "umpire_confirmed": True,
            "winner": player_1 if outcome.winner_side == 1 else player_2,
            "games": [g for g in games if g.game_number <= outcome.deciding_game],
            "started_at": played_at,
            "ended_at": played_at,
        }
    )
    rating = rating or get_rating_collaborator()
    match = match.model_copy(
        update={"ranking_score_delta": await _rating_delta(match, database, rating)}
    )
    await database.insert_match(match)
    logger.info("Recorded manual match %s, winner %s", match.id, match.winner)
    return match


async def force_transition(
    match_id: UUID,
    status: MatchStatus,
    database: DatabaseService | None = None,
    rating: RatingCollaborator | None = None,
) -> tuple[Match, List[str]]:
    """Administrative status override; returns the invariants it breaks."""
    if database is None:
        database = DatabaseService()

    violations: List[str] = []

    def transition(match: Match) -> Match:
        forced, broken = lifecycle.force_transition(match, status)
        violations[:] = broken
        return forced

    match = await _load_match(match_id, database, "force_transition")
    forced = await _commit(match, transition, database, "force_transition", rating=rating)
    return forced, violations


def live_score(match: Match) -> LiveScore:
    """Scoreboard view of a match, computed without touching state."""
    games_won = scoring.current_score(match.games)
    current = scoring.in_progress_game(match.games)
    if match.status == MatchStatus.ENDED:
        current = None

    current_server = None
    if current is not None and match.first_server is not None:
        side = current_server_side(
            current.player_1_score,
            current.player_2_score,
            games_completed=sum(games_won),
            player_1_starts=match.first_server == match.player_1,
        )
        current_server = match.player_1 if side == 1 else match.player_2

    return LiveScore(
        match_id=match.id,
        status=match.status,
        games_won=games_won,
        current_game=current.score if current else None,
        current_game_number=current.game_number if current else None,
        display=scoring.format_score(games_won if match.games else None),
        current_server=current_server,
        winner=match.winner,
    )


async def get_live_score(match_id: UUID, database: DatabaseService | None = None) -> LiveScore:
    if database is None:
        database = DatabaseService()

    match = await _load_match(match_id, database, "get_live_score")
    return live_score(match)
