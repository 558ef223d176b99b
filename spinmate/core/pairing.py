"""
Pick the next two players to face each other.

The match history is always rebuilt from the full list of matches; there
is no running counter to fall out of sync when several clients write at
once. Two coordinators racing to pair the same player simply produce a
pair that shows up twice in the next history count.
"""

import logging
from collections import Counter
from itertools import combinations
from typing import Iterable, Optional, Protocol, Sequence, TypeVar
from uuid import UUID

from spinmate.core.exceptions import MatchConflictError, MatchValidationError
from spinmate.schemas.matches import Match

logger = logging.getLogger(__name__)


class HasId(Protocol):
    id: UUID


P = TypeVar("P", bound=HasId)

PairKey = frozenset


def pair_key(player_a: UUID, player_b: UUID) -> PairKey:
    return frozenset((player_a, player_b))


def match_history(matches: Iterable[Match]) -> Counter:
    """How many times each unordered pair has met, whatever the match status."""
    return Counter(pair_key(m.player_1, m.player_2) for m in matches)


def umpire_counts(matches: Iterable[Match]) -> Counter:
    return Counter(m.umpire for m in matches if m.umpire is not None)


def _check_pool(pool: Sequence[HasId]) -> None:
    seen = set()
    duplicates = []
    for player in pool:
        if player.id in seen:
            duplicates.append(player.id)
        seen.add(player.id)
    if duplicates:
        raise MatchConflictError(
            f"Player pool contains duplicate ids: {', '.join(str(d) for d in duplicates)}",
            operation="find_valid_pair",
        )


def find_valid_pair(
    pool: Sequence[P], matches: Iterable[Match], total_rounds: int = 1
) -> Optional[tuple[P, P]]:
    """Return the least-played pair that is still under ``total_rounds``.

    Ties go to the pair that comes first in pool order, so the same input
    always gives the same answer.
    """
    if total_rounds < 1:
        raise MatchValidationError(
            f"total_rounds must be at least 1, got {total_rounds}",
            operation="find_valid_pair",
        )
    _check_pool(pool)
    if len(pool) < 2:
        return None

    history = match_history(matches)
    best: Optional[tuple[P, P]] = None
    best_count = total_rounds
    for player_a, player_b in combinations(pool, 2):
        prior = history[pair_key(player_a.id, player_b.id)]
        if prior < best_count:
            best, best_count = (player_a, player_b), prior
            if prior == 0:
                break

    if best is None:
        logger.debug("No pair of %d players is under %d rounds", len(pool), total_rounds)
    return best


def select_umpire(
    pool: Sequence[P], pair: tuple[HasId, HasId], matches: Iterable[Match]
) -> Optional[P]:
    """Whoever in the pool has umpired least, excluding the two players."""
    excluded = {pair[0].id, pair[1].id}
    candidates = [p for p in pool if p.id not in excluded]
    if not candidates:
        return None
    counts = umpire_counts(matches)
    # min() keeps the first of equal candidates, i.e. pool order
    return min(candidates, key=lambda p: counts[p.id])
