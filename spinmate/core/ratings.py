from typing import Protocol

from trueskill import TrueSkill

from spinmate.core.config import settings
from spinmate.schemas.matches import Match

LEAGUE_DIVISIONS = (
    "MKTTL - Premier",
    "MKTTL - Division 1",
    "MKTTL - Division 2",
    "MKTTL - Division 3",
    "MKTTL - Division 4",
    "MKTTL - Division 5",
    "MKTTL - Division 6",
    "MKTTL - Division 7",
    "Not in a league",
)


def initial_rating(division: str | None = None) -> float:
    """Starting rating for a new player, one step lower per division."""
    if division not in LEAGUE_DIVISIONS:
        return settings.RATING_BASE
    return settings.RATING_BASE - LEAGUE_DIVISIONS.index(division) * settings.RATING_DIVISION_STEP


class RatingCollaborator(Protocol):
    def compute_delta(self, match: Match, winner_rating: float, loser_rating: float) -> float:
        ...


class TrueSkillRating:
    """Winner's TrueSkill gain in an environment scaled to the rating base."""

    def __init__(self, base: float | None = None):
        base = base or settings.RATING_BASE
        self.env = TrueSkill(
            mu=base,
            sigma=base / 3,
            beta=base / 6,
            tau=base / 300,
            draw_probability=0.0,
        )

    def compute_delta(self, match: Match, winner_rating: float, loser_rating: float) -> float:
        winner = self.env.create_rating(mu=winner_rating)
        loser = self.env.create_rating(mu=loser_rating)
        (new_winner,), _ = self.env.rate([(winner,), (loser,)])
        return round(new_winner.mu - winner.mu, 1)


def get_rating_collaborator() -> RatingCollaborator:
    return TrueSkillRating()
