"""
Match lifecycle: pending -> ongoing -> ended.

Transitions are pure: each one takes a ``Match`` and returns a new one,
leaving the input untouched. A rejected command raises and the caller
still holds the unchanged match. Re-delivered confirmations are no-ops.
"""

import logging
from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import ValidationError

from spinmate.core import scoring
from spinmate.core.exceptions import (
    InvalidParticipantError,
    MatchConflictError,
    MatchValidationError,
)
from spinmate.schemas.matches import Game, Match, MatchState, MatchStatus, utcnow

logger = logging.getLogger(__name__)


def new_match(
    player_1: UUID,
    player_2: UUID,
    best_of: int,
    umpire: UUID | None = None,
    event_id: UUID | None = None,
    table_number: int = 1,
    manually_created: bool = False,
) -> Match:
    """Build a pending match with no confirmations and no games."""
    try:
        return Match(
            player_1=player_1,
            player_2=player_2,
            umpire=umpire,
            best_of=best_of,
            event_id=event_id,
            table_number=table_number,
            manually_created=manually_created,
        )
    except ValidationError as e:
        raise MatchValidationError(str(e), operation="create_match") from e


def match_state(match: Match) -> MatchState:
    pending = match.status == MatchStatus.PENDING
    ongoing = match.status == MatchStatus.ONGOING
    all_players_confirmed = len(match.players_confirmed) == 2

    return MatchState(
        is_pending=pending,
        needs_players_initial_confirmation=pending and not all_players_confirmed,
        needs_umpire_initial_confirmation=(
            pending and all_players_confirmed and not match.umpire_confirmed
        ),
        needs_winner_selection=ongoing and match.winner is None,
        needs_umpire_confirmation=(
            ongoing and match.winner is not None and not match.umpire_confirmed
        ),
    )


def _check_umpire(match: Match, umpire_id: UUID, operation: str) -> None:
    # Without an assigned umpire the match is self-umpired by anyone.
    if match.umpire is not None and umpire_id != match.umpire:
        raise InvalidParticipantError(
            f"{umpire_id} is not the umpire of match {match.id}",
            match_id=match.id,
            operation=operation,
        )


def _start(match: Match, now: datetime) -> Match:
    first_game = Game(match_id=match.id, game_number=1, started_at=now)
    logger.info("Match %s is now ongoing", match.id)
    return match.model_copy(
        update={
            "status": MatchStatus.ONGOING,
            "started_at": now,
            "games": [first_game],
        }
    )


def start_if_ready(match: Match, now: Optional[datetime] = None) -> Match:
    """Start a pending match once both players and the umpire are in.

    Also applied to the stored match after a confirmation has been merged
    with whatever other confirmations were written meanwhile.
    """
    if (
        match.status == MatchStatus.PENDING
        and len(match.players_confirmed) == 2
        and match.umpire_confirmed
    ):
        return _start(match, now or utcnow())
    return match


def confirm_player(match: Match, player_id: UUID, now: Optional[datetime] = None) -> Match:
    """Record that one of the two players is ready."""
    if not match.is_player(player_id):
        raise InvalidParticipantError(
            f"{player_id} is not playing in match {match.id}",
            match_id=match.id,
            operation="confirm_player",
        )
    if player_id in match.players_confirmed:
        return match
    if match.status != MatchStatus.PENDING:
        raise MatchConflictError(
            f"Match {match.id} is {match.status.value}, players can no longer confirm",
            match_id=match.id,
            operation="confirm_player",
        )

    updated = match.model_copy(
        update={"players_confirmed": match.players_confirmed | {player_id}}
    )
    return start_if_ready(updated, now)


def confirm_umpire(
    match: Match,
    umpire_id: UUID,
    server_id: UUID | None = None,
    now: Optional[datetime] = None,
) -> Match:
    """The umpire's go-ahead. Starts the match once both players are in."""
    _check_umpire(match, umpire_id, "confirm_umpire")
    if server_id is not None and not match.is_player(server_id):
        raise InvalidParticipantError(
            f"Server {server_id} is not playing in match {match.id}",
            match_id=match.id,
            operation="confirm_umpire",
        )

    if match.status != MatchStatus.PENDING:
        if match.umpire_confirmed:
            return match
        raise MatchConflictError(
            f"Match {match.id} is waiting for the umpire to confirm the result",
            match_id=match.id,
            operation="confirm_umpire",
        )
    if match.umpire_confirmed and (server_id is None or server_id == match.first_server):
        return match

    updated = match.model_copy(
        update={
            "umpire_confirmed": True,
            "first_server": server_id or match.first_server,
        }
    )
    return start_if_ready(updated, now)


def record_game_score(
    match: Match,
    game_number: int,
    player_1_score: int,
    player_2_score: int,
    completed: bool = False,
    now: Optional[datetime] = None,
) -> Match:
    """Set the points of a game, opening it if it is the next one."""
    if match.status != MatchStatus.ONGOING:
        raise MatchConflictError(
            f"Match {match.id} is {match.status.value}, scores can only change while ongoing",
            match_id=match.id,
            operation="record_game_score",
        )
    if player_1_score < 0 or player_2_score < 0:
        raise MatchValidationError(
            f"Scores cannot be negative: {player_1_score}-{player_2_score}",
            match_id=match.id,
            operation="record_game_score",
        )
    if completed:
        scoring.validate_completed_score(player_1_score, player_2_score, match.id)

    now = now or utcnow()
    games = match.sorted_games()
    existing = next((g for g in games if g.game_number == game_number), None)

    if existing is None:
        if game_number != len(games) + 1:
            raise MatchValidationError(
                f"Game {game_number} does not follow game {len(games)}",
                match_id=match.id,
                operation="record_game_score",
            )
        if games and not games[-1].is_complete:
            raise MatchConflictError(
                f"Game {games[-1].game_number} is still in progress",
                match_id=match.id,
                operation="record_game_score",
            )
        if scoring.match_outcome(games, match.best_of).is_decided:
            raise MatchConflictError(
                f"Match {match.id} is already decided",
                match_id=match.id,
                operation="record_game_score",
            )
        existing = Game(match_id=match.id, game_number=game_number, started_at=now)
        games.append(existing)

    completed_at = (existing.completed_at or now) if completed else None
    updated_game = existing.model_copy(
        update={
            "player_1_score": player_1_score,
            "player_2_score": player_2_score,
            "completed_at": completed_at,
        }
    )
    games = [updated_game if g.game_number == game_number else g for g in games]
    return match.model_copy(update={"games": games})


def select_winner(match: Match, winner_id: UUID) -> Match:
    """Name the winner; the umpire then has to confirm the result."""
    if not match.is_player(winner_id):
        raise InvalidParticipantError(
            f"{winner_id} is not playing in match {match.id}",
            match_id=match.id,
            operation="select_winner",
        )
    if match.winner == winner_id and match.status != MatchStatus.PENDING:
        return match
    if match.status != MatchStatus.ONGOING:
        raise MatchConflictError(
            f"Match {match.id} is {match.status.value}, a winner cannot be selected",
            match_id=match.id,
            operation="select_winner",
        )

    return match.model_copy(update={"winner": winner_id, "umpire_confirmed": False})


def confirm_result(match: Match, umpire_id: UUID, now: Optional[datetime] = None) -> Match:
    """The umpire signs off the winner, ending the match."""
    _check_umpire(match, umpire_id, "confirm_result")
    if match.status == MatchStatus.ENDED:
        return match
    if match.status != MatchStatus.ONGOING:
        raise MatchConflictError(
            f"Match {match.id} has not started",
            match_id=match.id,
            operation="confirm_result",
        )
    if match.winner is None:
        raise MatchConflictError(
            f"Match {match.id} has no winner selected",
            match_id=match.id,
            operation="confirm_result",
        )

    scored_winner = scoring.match_winner(
        match.games, match.best_of, match.player_1, match.player_2
    )
    if scored_winner != match.winner:
        raise MatchValidationError(
            f"Recorded games of match {match.id} do not produce winner {match.winner}",
            match_id=match.id,
            operation="confirm_result",
        )

    logger.info("Match %s ended, winner %s", match.id, match.winner)
    return match.model_copy(
        update={
            "status": MatchStatus.ENDED,
            "umpire_confirmed": True,
            "ended_at": now or utcnow(),
        }
    )


def check_invariants(match: Match) -> list[str]:
    """Describe every way ``match`` breaks the rules the engine relies on."""
    violations = []
    confirmed = len(match.players_confirmed) == 2

    if match.status == MatchStatus.PENDING and match.games:
        violations.append("pending match already has games")
    if match.status in (MatchStatus.ONGOING, MatchStatus.ENDED):
        if not confirmed:
            violations.append(f"{match.status.value} match is missing player confirmations")
        if match.started_at is None:
            violations.append(f"{match.status.value} match has no start time")
    if match.status == MatchStatus.ONGOING and match.winner is None and not match.umpire_confirmed:
        violations.append("ongoing match was never confirmed by the umpire")
    if match.status == MatchStatus.ENDED:
        if match.winner is None:
            violations.append("ended match has no winner")
        elif scoring.match_winner(
            match.games, match.best_of, match.player_1, match.player_2
        ) != match.winner:
            violations.append("ended match winner is not backed by the recorded games")
        if not match.umpire_confirmed:
            violations.append("ended match result was never confirmed by the umpire")
    return violations


def force_transition(
    match: Match, status: MatchStatus, now: Optional[datetime] = None
) -> tuple[Match, list[str]]:
    """Administrative override that sets the status without any gate.

    The result is not re-validated; whatever invariants it breaks are
    returned so the caller can surface them.
    """
    now = now or utcnow()
    update: dict = {"status": status}
    if status == MatchStatus.PENDING:
        update.update({"started_at": None, "ended_at": None})
    if status in (MatchStatus.ONGOING, MatchStatus.ENDED) and match.started_at is None:
        update["started_at"] = now
    if status == MatchStatus.ONGOING:
        update["ended_at"] = None
    if status == MatchStatus.ENDED and match.ended_at is None:
        update["ended_at"] = now

    forced = match.model_copy(update=update)
    violations = check_invariants(forced)
    if violations:
        logger.warning(
            "Forced match %s from %s to %s, breaking: %s",
            match.id,
            match.status.value,
            status.value,
            "; ".join(violations),
        )
    else:
        logger.info("Forced match %s from %s to %s", match.id, match.status.value, status.value)
    return forced, violations
