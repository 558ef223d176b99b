"""
Tournament coordination for a drop-in event.

Player status, the waiting pool and the match history are derived from
the event's match list on every call. When a match ends its three
participants are free again by construction, and the coordinator tries
to put them straight back on a table.
"""

import logging
from typing import Iterable, List, Optional, Sequence
from uuid import UUID

from pydantic import ValidationError

from spinmate.core import lifecycle
from spinmate.core.config import settings
from spinmate.core.exceptions import MatchConflictError, MatchValidationError, NotFoundError
from spinmate.core.pairing import find_valid_pair, select_umpire
from spinmate.schemas.matches import Match, MatchStatus, utcnow
from spinmate.schemas.players import Player
from spinmate.schemas.tournaments import (
    ActiveTournament,
    PlayerStatus,
    PlayerStatusResponse,
    TournamentStatus,
    tournament_id_for,
)
from spinmate.services.database import DatabaseService

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = (MatchStatus.PENDING, MatchStatus.ONGOING)


def player_status(player_id: UUID, matches: Iterable[Match]) -> tuple[PlayerStatus, Optional[UUID]]:
    """Status of one player and the match it comes from.

    An ongoing match wins over a pending one; a pending match only counts
    while the player's own confirmation is still outstanding.
    """
    matches = list(matches)
    for match in matches:
        if match.status != MatchStatus.ONGOING:
            continue
        if match.umpire == player_id:
            return PlayerStatus.UMPIRING, match.id
        if match.is_player(player_id):
            return PlayerStatus.PLAYING, match.id

    for match in matches:
        if match.status != MatchStatus.PENDING:
            continue
        if match.umpire == player_id and not match.umpire_confirmed:
            return PlayerStatus.UMPIRE_PENDING, match.id
        if match.is_player(player_id) and player_id not in match.players_confirmed:
            return PlayerStatus.PENDING, match.id

    return PlayerStatus.WAITING, None


def player_statuses(player_ids: Iterable[UUID], matches: Iterable[Match]) -> List[PlayerStatusResponse]:
    matches = list(matches)
    statuses = []
    for player_id in player_ids:
        status, match_id = player_status(player_id, matches)
        statuses.append(PlayerStatusResponse(player_id=player_id, status=status, match_id=match_id))
    return statuses


def is_busy(player_id: UUID, matches: Iterable[Match]) -> bool:
    """True while the player plays or umpires a match that has not ended."""
    return any(
        m.status in ACTIVE_STATUSES and player_id in m.participants for m in matches
    )


def waiting_players(players: Sequence[Player], matches: Iterable[Match]) -> List[Player]:
    """Players free to be paired, in pool order."""
    matches = list(matches)
    return [p for p in players if not is_busy(p.id, matches)]


def free_tables(tables: Iterable[int], matches: Iterable[Match]) -> List[int]:
    used = {m.table_number for m in matches if m.status in ACTIVE_STATUSES}
    return sorted(set(tables) - used)


async def get_tournament(
    tournament_id: str, database: DatabaseService | None = None
) -> ActiveTournament:
    """Get a tournament, raising if it does not exist."""
    if database is None:
        database = DatabaseService()

    row = await database.get_tournament(tournament_id)
    if not row:
        raise NotFoundError(f"Tournament {tournament_id} not found", operation="get_tournament")
    return ActiveTournament.model_validate(row)


async def _load_event(
    tournament: ActiveTournament, database: DatabaseService
) -> tuple[List[Player], List[Match]]:
    rows = await database.get_players_by_ids(tournament.player_ids)
    by_id = {}
    for row in rows:
        player = Player.model_validate(row)
        by_id[player.id] = player
    players = [by_id[pid] for pid in tournament.player_ids if pid in by_id]

    matches = [Match.model_validate(row) for row in await database.get_event_matches(tournament.event_id)]
    return players, matches


async def create_tournament(
    event_id: UUID,
    best_of: int,
    tables: List[int] | None = None,
    total_rounds: int | None = None,
    database: DatabaseService | None = None,
) -> ActiveTournament:
    """Create the active tournament for an event."""
    if database is None:
        database = DatabaseService()

    tournament_id = tournament_id_for(event_id)
    if await database.get_tournament(tournament_id):
        raise MatchConflictError(
            f"Event {event_id} already has an active tournament",
            operation="create_tournament",
        )

    try:
        tournament = ActiveTournament(
            id=tournament_id,
            event_id=event_id,
            best_of=best_of,
            tables=tables or [1],
            total_rounds=total_rounds or settings.DEFAULT_TOTAL_ROUNDS,
        )
    except ValidationError as e:
        raise MatchValidationError(str(e), operation="create_tournament") from e
    await database.create_tournament(tournament)
    logger.info("Created tournament %s (best of %d)", tournament.id, tournament.best_of)
    return tournament


async def update_tournament(
    tournament_id: str,
    best_of: int | None = None,
    tables: List[int] | None = None,
    total_rounds: int | None = None,
    database: DatabaseService | None = None,
) -> ActiveTournament:
    """Change tournament settings. Existing matches keep their best_of."""
    if database is None:
        database = DatabaseService()

    tournament = await get_tournament(tournament_id, database)
    update_data = {"updated_at": utcnow()}
    if best_of is not None:
        update_data["best_of"] = best_of
    if tables is not None:
        update_data["tables"] = tables
    if total_rounds is not None:
        update_data["total_rounds"] = total_rounds

    try:
        tournament = ActiveTournament.model_validate({**tournament.model_dump(), **update_data})
    except ValidationError as e:
        raise MatchValidationError(str(e), operation="update_tournament") from e
    await database.update_tournament(tournament)
    return tournament


async def add_player(
    tournament_id: str, player_id: UUID, database: DatabaseService | None = None
) -> ActiveTournament:
    """Add a player to the pool. Adding someone twice changes nothing."""
    if database is None:
        database = DatabaseService()

    tournament = await get_tournament(tournament_id, database)
    if player_id in tournament.player_ids:
        return tournament
    if not await database.get_player(player_id):
        raise NotFoundError(f"Player {player_id} not found", operation="add_player")

    tournament = tournament.model_copy(
        update={"player_ids": [*tournament.player_ids, player_id], "updated_at": utcnow()}
    )
    await database.update_tournament(tournament)
    logger.info("Player %s joined %s", player_id, tournament_id)
    return tournament


async def remove_player(
    tournament_id: str, player_id: UUID, database: DatabaseService | None = None
) -> ActiveTournament:
    """Take a waiting player out of the pool."""
    if database is None:
        database = DatabaseService()

    tournament = await get_tournament(tournament_id, database)
    if player_id not in tournament.player_ids:
        return tournament

    matches = [Match.model_validate(row) for row in await database.get_event_matches(tournament.event_id)]
    if is_busy(player_id, matches):
        status, match_id = player_status(player_id, matches)
        raise MatchConflictError(
            f"Player {player_id} cannot leave while {status.value}",
            match_id=match_id,
            operation="remove_player",
        )

    tournament = tournament.model_copy(
        update={
            "player_ids": [pid for pid in tournament.player_ids if pid != player_id],
            "updated_at": utcnow(),
        }
    )
    await database.update_tournament(tournament)
    logger.info("Player %s left %s", player_id, tournament_id)
    return tournament


async def reset_tournament(tournament_id: str, database: DatabaseService | None = None) -> int:
    """Drop every pending match and put the tournament back to idle."""
    if database is None:
        database = DatabaseService()

    tournament = await get_tournament(tournament_id, database)
    deleted = await database.delete_pending_matches(tournament.event_id)
    tournament = tournament.model_copy(
        update={"status": TournamentStatus.IDLE, "updated_at": utcnow()}
    )
    await database.update_tournament(tournament)
    logger.info("Reset %s, removed %d pending matches", tournament_id, deleted)
    return deleted


async def get_player_statuses(
    tournament_id: str, database: DatabaseService | None = None
) -> List[PlayerStatusResponse]:
    if database is None:
        database = DatabaseService()

    tournament = await get_tournament(tournament_id, database)
    matches = [Match.model_validate(row) for row in await database.get_event_matches(tournament.event_id)]
    return player_statuses(tournament.player_ids, matches)


async def generate_next_match(
    tournament_id: str, database: DatabaseService | None = None
) -> Optional[Match]:
    """Pair two waiting players with an umpire on a free table.

    Returns None when the tournament is gone, or when there are not enough
    waiting players, no free table, no valid pair or no umpire.
    """
    if database is None:
        database = DatabaseService()

    row = await database.get_tournament(tournament_id)
    if not row:
        logger.info("Tournament %s not found, nothing to pair", tournament_id)
        return None
    tournament = ActiveTournament.model_validate(row)

    players, matches = await _load_event(tournament, database)
    waiting = waiting_players(players, matches)
    if len(waiting) < settings.MIN_WAITING_PLAYERS:
        logger.debug("%s: only %d players waiting", tournament_id, len(waiting))
        return None

    tables = free_tables(tournament.tables, matches)
    if not tables:
        logger.debug("%s: no free table", tournament_id)
        return None

    pair = find_valid_pair(waiting, matches, tournament.total_rounds)
    if pair is None:
        logger.info("%s: no valid pair among %d waiting players", tournament_id, len(waiting))
        return None

    umpire = select_umpire(waiting, pair, matches)
    if umpire is None:
        logger.info("%s: no umpire available", tournament_id)
        return None

    match = lifecycle.new_match(
        player_1=pair[0].id,
        player_2=pair[1].id,
        umpire=umpire.id,
        best_of=tournament.best_of,
        event_id=tournament.event_id,
        table_number=tables[0],
    )
    await database.insert_match(match)
    logger.info(
        "%s: %s vs %s, umpire %s, table %d",
        tournament_id,
        pair[0].display_name,
        pair[1].display_name,
        umpire.display_name,
        match.table_number,
    )

    if tournament.status != TournamentStatus.STARTED:
        tournament = tournament.model_copy(
            update={"status": TournamentStatus.STARTED, "updated_at": utcnow()}
        )
        await database.update_tournament(tournament)
    return match


async def fill_tables(tournament_id: str, database: DatabaseService | None = None) -> List[Match]:
    """Keep creating matches while tables, pairs and umpires allow."""
    if database is None:
        database = DatabaseService()

    created = []
    while True:
        match = await generate_next_match(tournament_id, database)
        if match is None:
            return created
        created.append(match)


async def on_match_ended(match: Match, database: DatabaseService | None = None) -> List[Match]:
    """Re-feed the freed players of an ended match into new pairings."""
    if database is None:
        database = DatabaseService()

    if match.event_id is None:
        return []
    return await fill_tables(tournament_id_for(match.event_id), database)
