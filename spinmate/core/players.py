import logging
from uuid import UUID

from spinmate.core.exceptions import NotFoundError
from spinmate.core.ratings import initial_rating
from spinmate.schemas.players import Player
from spinmate.services.database import DatabaseService

logger = logging.getLogger(__name__)


async def create_player(
    display_name: str,
    division: str | None = None,
    database: DatabaseService | None = None,
) -> Player:
    """Register a player, seeding the rating from their league division."""
    if database is None:
        database = DatabaseService()

    player = Player(
        display_name=display_name,
        division=division,
        rating=initial_rating(division),
    )
    await database.create_player(player)
    logger.info("Created player %s with rating %.0f", player.display_name, player.rating)
    return player


async def get_player(player_id: UUID, database: DatabaseService | None = None) -> Player:
    if database is None:
        database = DatabaseService()

    row = await database.get_player(player_id)
    if not row:
        raise NotFoundError(f"Player {player_id} not found", operation="get_player")
    return Player.model_validate(row)
