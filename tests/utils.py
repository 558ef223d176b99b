"""
Shared test utilities and helpers for the SpinMate test suite.

Holds an in-memory stand-in for ``DatabaseService`` that stores rows as
JSON-shaped dicts, the same way Supabase hands them back, plus helpers
for building players and playing matches through the core commands.
"""

import logging
from typing import Any, Dict, List, Optional
from uuid import UUID

from spinmate.core import matches as matches_core
from spinmate.core.exceptions import ExternalSyncError
from spinmate.schemas.matches import Game, Match, MatchStatus, utcnow
from spinmate.schemas.players import Player
from spinmate.schemas.tournaments import ActiveTournament
from spinmate.services.database import (
    changed_fields,
    changed_games,
    game_row,
    match_row,
    merge_confirmations,
    stale_write,
)

logger = logging.getLogger(__name__)

DEFAULT_INITIAL_RATING = 1000.0

PLAYER_NAMES = ["Alice", "Bob", "Carol", "Dave", "Erin", "Frank"]

STRAIGHT_GAMES = [(11, 5), (11, 7), (11, 3), (11, 9)]


class InMemoryDatabaseService:
    """Dict-backed replacement for DatabaseService with the same coroutines."""

    def __init__(self):
        self.players: Dict[str, Dict[str, Any]] = {}
        self.matches: Dict[str, Dict[str, Any]] = {}
        self.games: Dict[str, Dict[str, Any]] = {}
        self.tournaments: Dict[str, Dict[str, Any]] = {}
        self.fail_writes = False
        self.stale_reads: Dict[str, List[Dict[str, Any]]] = {}

    def _check_write(self, operation: str, match_id: Optional[UUID] = None) -> None:
        if self.fail_writes:
            raise ExternalSyncError(
                f"{operation} failed: store unavailable",
                match_id=match_id,
                operation=operation,
            )

    def _with_games(self, row: Dict[str, Any]) -> Dict[str, Any]:
        games = [dict(g) for g in self.games.values() if g["match_id"] == row["id"]]
        games.sort(key=lambda g: g["game_number"])
        return {**row, "games": games}

    # Player operations
    async def create_player(self, player: Player) -> Dict[str, Any]:
        self._check_write("create_player")
        row = player.model_dump(mode="json")
        self.players[row["id"]] = row
        return dict(row)

    async def get_player(self, player_id: UUID) -> Optional[Dict[str, Any]]:
        row = self.players.get(str(player_id))
        return dict(row) if row else None

    async def get_players_by_ids(self, player_ids: List[UUID]) -> List[Dict[str, Any]]:
        return [dict(self.players[str(pid)]) for pid in player_ids if str(pid) in self.players]

    # Match operations
    async def insert_match(self, match: Match) -> Dict[str, Any]:
        self._check_write("insert_match", match.id)
        row = match_row(match)
        self.matches[row["id"]] = row
        if match.games:
            await self.upsert_games(match.games)
        return self._with_games(row)

    def serve_stale(self, row: Dict[str, Any]) -> None:
        """Hand ``row`` to the next get_match of that match, as a lagging replica would."""
        self.stale_reads.setdefault(row["id"], []).append(row)

    async def get_match(self, match_id: UUID) -> Optional[Dict[str, Any]]:
        queued = self.stale_reads.get(str(match_id))
        if queued:
            return dict(queued.pop(0))
        row = self.matches.get(str(match_id))
        return self._with_games(row) if row else None

    async def get_event_matches(self, event_id: UUID) -> List[Dict[str, Any]]:
        return [
            self._with_games(row)
            for row in self.matches.values()
            if row["event_id"] == str(event_id)
        ]

    async def update_match(self, match: Match, previous: Match) -> Dict[str, Any]:
        self._check_write("update_match", match.id)
        stored = self.matches.get(str(match.id))
        if stored is None:
            return {}
        if stored["status"] != previous.status.value:
            raise stale_write(match, stored["status"])

        changes = changed_fields(match, previous)
        if "players_confirmed" in changes:
            changes["players_confirmed"] = merge_confirmations(
                stored["players_confirmed"], changes["players_confirmed"]
            )
        stored.update(changes)
        games = changed_games(match, previous)
        if games:
            await self.upsert_games(games)
        return self._with_games(stored)

    async def upsert_games(self, games: List[Game]) -> List[Dict[str, Any]]:
        self._check_write("upsert_games", games[0].match_id if games else None)
        rows = [game_row(g) for g in games]
        for row in rows:
            self.games[row["id"]] = row
        return rows

    async def delete_pending_matches(self, event_id: UUID) -> int:
        self._check_write("delete_pending_matches")
        doomed = [
            match_id
            for match_id, row in self.matches.items()
            if row["event_id"] == str(event_id) and row["status"] == MatchStatus.PENDING.value
        ]
        for match_id in doomed:
            del self.matches[match_id]
            for game_id in [gid for gid, g in self.games.items() if g["match_id"] == match_id]:
                del self.games[game_id]
        return len(doomed)

    # Tournament operations
    async def create_tournament(self, tournament: ActiveTournament) -> Dict[str, Any]:
        self._check_write("create_tournament")
        row = tournament.model_dump(mode="json")
        self.tournaments[row["id"]] = row
        return dict(row)

    async def get_tournament(self, tournament_id: str) -> Optional[Dict[str, Any]]:
        row = self.tournaments.get(tournament_id)
        return dict(row) if row else None

    async def update_tournament(self, tournament: ActiveTournament) -> Dict[str, Any]:
        self._check_write("update_tournament")
        if tournament.id not in self.tournaments:
            return {}
        row = tournament.model_dump(mode="json")
        self.tournaments[row["id"]] = row
        return dict(row)


async def create_test_players(db_service, count: int, rating: float = DEFAULT_INITIAL_RATING) -> List[Player]:
    """Create ``count`` players named Alice, Bob, Carol, ..."""
    players = []
    for name in PLAYER_NAMES[:count]:
        player = Player(display_name=name, rating=rating)
        await db_service.create_player(player)
        players.append(player)
    return players


async def start_match(db_service, match: Match) -> Match:
    """Run both player confirmations and the umpire's go-ahead."""
    await matches_core.confirm_player(match.id, match.player_1, database=db_service)
    await matches_core.confirm_player(match.id, match.player_2, database=db_service)
    umpire = match.umpire or match.player_1
    return await matches_core.confirm_umpire(
        match.id, umpire, server_id=match.player_1, database=db_service
    )


async def play_match(db_service, match: Match, player_1_wins: bool = True) -> Match:
    """Play a match to the end in straight games and confirm the result."""
    match = await start_match(db_service, match)
    needed = match.best_of // 2 + 1
    for number, (high, low) in enumerate(STRAIGHT_GAMES[:needed], start=1):
        score = (high, low) if player_1_wins else (low, high)
        await matches_core.update_game_score(
            match.id, number, score[0], score[1], completed=True, database=db_service
        )
    winner = match.player_1 if player_1_wins else match.player_2
    await matches_core.select_winner(match.id, winner, database=db_service)
    umpire = match.umpire or match.player_1
    return await matches_core.confirm_result(match.id, umpire, database=db_service)


def completed_game(match_id: UUID, number: int, score: tuple[int, int]) -> Game:
    now = utcnow()
    return Game(
        match_id=match_id,
        game_number=number,
        player_1_score=score[0],
        player_2_score=score[1],
        started_at=now,
        completed_at=now,
    )
