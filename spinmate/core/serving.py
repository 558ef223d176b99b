import random
from typing import Optional
from uuid import UUID

from spinmate.core.config import settings

_system_random = random.SystemRandom()


def choose_first_server(
    player_1: UUID, player_2: UUID, rng: Optional[random.Random] = None
) -> UUID:
    """Coin flip for who serves first. Each player gets exactly half the odds."""
    rng = rng or _system_random
    return player_1 if rng.random() < 0.5 else player_2


def should_alternate_every_point(
    player_1_score: int, player_2_score: int, points_to_win: int | None = None
) -> bool:
    points_to_win = points_to_win or settings.POINTS_TO_WIN
    return player_1_score >= points_to_win - 1 and player_2_score >= points_to_win - 1


def current_server_side(
    player_1_score: int,
    player_2_score: int,
    games_completed: int,
    player_1_starts: bool,
    points_to_win: int | None = None,
) -> int:
    """Return 1 or 2 for whoever serves the next point.

    The player who served first in game 1 receives first in game 2 and so
    on. Service changes every two points (five for games longer than 11),
    and every point once both players are one point from game point.
    """
    points_to_win = points_to_win or settings.POINTS_TO_WIN
    total_points = player_1_score + player_2_score
    effective_player_1_starts = player_1_starts if games_completed % 2 == 0 else not player_1_starts

    if should_alternate_every_point(player_1_score, player_2_score, points_to_win):
        player_1_serves = (total_points % 2 == 0) == effective_player_1_starts
    else:
        points_per_serve = 2 if points_to_win <= 11 else 5
        service_block = total_points // points_per_serve
        player_1_serves = (service_block % 2 == 0) == effective_player_1_starts

    return 1 if player_1_serves else 2
