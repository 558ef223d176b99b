"""
Table tennis scoring rules.

Everything here is a pure function of the scores handed in: nothing
reads or writes persistence, so live views, public feeds and the match
lifecycle can all share it.
"""

from datetime import datetime
from typing import Iterable, NamedTuple, Optional, Sequence
from uuid import UUID, uuid4

from spinmate.core.config import settings
from spinmate.core.exceptions import MatchValidationError
from spinmate.schemas.matches import Game, utcnow, validate_best_of

NBSP = "\u00a0"
EMPTY_SCORE = f"{NBSP * 3}-{NBSP * 3}"


class MatchOutcome(NamedTuple):
    winner_side: Optional[int]
    games_won: tuple[int, int]
    deciding_game: Optional[int]

    @property
    def is_decided(self) -> bool:
        return self.winner_side is not None


def game_winner(
    player_1_score: int, player_2_score: int, points_to_win: int | None = None
) -> Optional[int]:
    """Return 1 or 2 for a decided game, None while it is still open.

    A game is won at ``points_to_win`` or more with a lead of at least two,
    with no upper cap on deuce.
    """
    if player_1_score < 0 or player_2_score < 0:
        raise MatchValidationError(
            f"Scores cannot be negative: {player_1_score}-{player_2_score}",
            operation="game_winner",
        )
    if points_to_win is None:
        points_to_win = settings.POINTS_TO_WIN

    reached_min_points = max(player_1_score, player_2_score) >= points_to_win
    two_point_lead = abs(player_1_score - player_2_score) >= 2
    if reached_min_points and two_point_lead:
        return 1 if player_1_score > player_2_score else 2
    return None


def games_needed(best_of: int) -> int:
    """Games a player must win to take a best-of-``best_of`` match."""
    try:
        validate_best_of(best_of)
    except ValueError as e:
        raise MatchValidationError(str(e), operation="games_needed") from e
    return best_of // 2 + 1


def completed_games(games: Iterable[Game]) -> list[Game]:
    return sorted((g for g in games if g.is_complete), key=lambda g: g.game_number)


def in_progress_game(games: Iterable[Game]) -> Optional[Game]:
    """The latest game without a completion time, if any."""
    open_games = [g for g in games if not g.is_complete]
    if not open_games:
        return None
    return max(open_games, key=lambda g: g.game_number)


def match_outcome(games: Iterable[Game], best_of: int) -> MatchOutcome:
    """Walk completed games in order until one side has enough wins.

    Games completed after the deciding one are ignored so they can never
    change the result.
    """
    needed = games_needed(best_of)
    tally = [0, 0]
    for game in completed_games(games):
        side = game_winner(game.player_1_score, game.player_2_score)
        if side is None:
            continue
        tally[side - 1] += 1
        if tally[side - 1] >= needed:
            return MatchOutcome(side, (tally[0], tally[1]), game.game_number)
    return MatchOutcome(None, (tally[0], tally[1]), None)


def match_winner(
    games: Iterable[Game], best_of: int, player_1: UUID, player_2: UUID
) -> Optional[UUID]:
    outcome = match_outcome(games, best_of)
    if outcome.winner_side is None:
        return None
    return player_1 if outcome.winner_side == 1 else player_2


def current_score(games: Iterable[Game]) -> tuple[int, int]:
    """Games won by each player, counting completed games only."""
    player_1_wins = player_2_wins = 0
    for game in completed_games(games):
        side = game_winner(game.player_1_score, game.player_2_score)
        if side == 1:
            player_1_wins += 1
        elif side == 2:
            player_2_wins += 1
    return (player_1_wins, player_2_wins)


def validate_completed_score(
    player_1_score: int, player_2_score: int, match_id: UUID | None = None
) -> int:
    """Reject a final game score that does not satisfy the win rule."""
    side = game_winner(player_1_score, player_2_score)
    if side is None:
        raise MatchValidationError(
            f"{player_1_score}-{player_2_score} is not a finished game",
            match_id=match_id,
            operation="complete_game",
        )
    return side


def build_completed_games(
    scores: Sequence[tuple[int, int]],
    match_id: UUID,
    played_at: datetime | None = None,
) -> list[Game]:
    """Turn final game scores entered after the fact into completed games.

    Rows of 0-0 are games that were never played and are skipped; every
    other row has to be a finished game.
    """
    played_at = played_at or utcnow()
    games = []
    for player_1_score, player_2_score in scores:
        if player_1_score == 0 and player_2_score == 0:
            continue
        validate_completed_score(player_1_score, player_2_score, match_id)
        games.append(
            Game(
                match_id=match_id,
                game_number=len(games) + 1,
                player_1_score=player_1_score,
                player_2_score=player_2_score,
                started_at=played_at,
                completed_at=played_at,
            )
        )
    return games


def recompute_outcome(
    scores: Sequence[tuple[int, int]], best_of: int, match_id: UUID | None = None
) -> MatchOutcome:
    """Same result as playing ``scores`` through the live lifecycle."""
    games = build_completed_games(scores, match_id or uuid4())
    return match_outcome(games, best_of)


def pad_score(score: Optional[str]) -> str:
    """Render "a-b" as two fixed-width fields separated by " - "."""
    if not score:
        return EMPTY_SCORE
    if "-" not in score:
        raise MatchValidationError(
            f"Score {score!r} is not of the form \"a-b\"",
            operation="pad_score",
        )
    first, second = (part.strip() for part in score.split("-", 1))
    return f"{first.rjust(2, NBSP)} - {second.rjust(2, NBSP)}"


def format_score(score: Optional[tuple[int, int]]) -> str:
    if score is None:
        return EMPTY_SCORE
    return pad_score(f"{score[0]}-{score[1]}")
