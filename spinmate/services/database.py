from typing import Optional, List, Dict, Any
import logging
import os
from supabase import create_client, Client
from postgrest.exceptions import APIError
from uuid import UUID

from spinmate.core.exceptions import ExternalSyncError, MatchConflictError
from spinmate.schemas.matches import Game, Match, MatchStatus
from spinmate.schemas.players import Player
from spinmate.schemas.tournaments import ActiveTournament

logger = logging.getLogger(__name__)


def match_row(match: Match) -> Dict[str, Any]:
    row = match.model_dump(mode="json", exclude={"games"})
    row["players_confirmed"] = sorted(row["players_confirmed"])
    return row


def game_row(game: Game) -> Dict[str, Any]:
    return game.model_dump(mode="json")


def changed_fields(match: Match, previous: Match) -> Dict[str, Any]:
    """Match columns whose value differs from the snapshot it was derived from."""
    before = match_row(previous)
    return {k: v for k, v in match_row(match).items() if before.get(k) != v}


def changed_games(match: Match, previous: Match) -> List[Game]:
    before = {g.id: g for g in previous.games}
    return [g for g in match.games if before.get(g.id) != g]


def merge_confirmations(stored: Optional[List[str]], written: List[str]) -> List[str]:
    # Confirmations only ever accumulate.
    return sorted(set(stored or []) | set(written))


def stale_write(match: Match, stored_status: Optional[str] = None) -> MatchConflictError:
    now = f", it is now {stored_status}" if stored_status else ""
    return MatchConflictError(
        f"Match {match.id} was changed by another writer since it was read{now}",
        match_id=match.id,
        operation="update_match",
    )


class DatabaseService:
    def __init__(self, url: Optional[str] = None, key: Optional[str] = None):
        """Initialize the database service with Supabase credentials."""
        if url and key:
            self.url = url
            self.key = key
        else:
            # Try LOCAL_ first (for local development), then fallback to remote
            self.url = url or os.getenv("LOCAL_SUPABASE_URL") or os.getenv("SUPABASE_URL")
            self.key = key or os.getenv("LOCAL_SUPABASE_KEY") or os.getenv("SUPABASE_ANON_KEY") or os.getenv("SUPABASE_KEY")

        if not self.url or not self.key:
            raise ValueError("Supabase URL and key must be provided or set in environment variables")
        self.client: Client = create_client(self.url, self.key)

    def _execute(self, query, operation: str, match_id: Optional[UUID] = None):
        """Run a query, turning Supabase failures into ExternalSyncError."""
        try:
            return query.execute()
        except APIError as e:
            logger.exception("Supabase %s failed: %s", operation, e)
            raise ExternalSyncError(
                f"{operation} failed: {e.message}",
                match_id=match_id,
                operation=operation,
            ) from e

    # Player operations
    async def create_player(self, player: Player) -> Dict[str, Any]:
        """Create a new player."""
        response = self._execute(
            self.client.table("players").insert(player.model_dump(mode="json")),
            "create_player",
        )
        return response.data[0]

    async def get_player(self, player_id: UUID) -> Optional[Dict[str, Any]]:
        """Get a player by ID."""
        response = self._execute(
            self.client.table("players").select("*").eq("id", str(player_id)),
            "get_player",
        )
        return response.data[0] if response.data else None

    async def get_players_by_ids(self, player_ids: List[UUID]) -> List[Dict[str, Any]]:
        """Get players for multiple IDs."""
        if not player_ids:
            return []

        str_ids = [str(pid) for pid in player_ids]
        response = self._execute(
            self.client.table("players").select("*").in_("id", str_ids),
            "get_players_by_ids",
        )
        return response.data

    # Match operations
    async def insert_match(self, match: Match) -> Dict[str, Any]:
        """Create a new match together with any games it already has."""
        response = self._execute(
            self.client.table("matches").insert(match_row(match)),
            "insert_match",
            match.id,
        )
        row = response.data[0]
        row["games"] = await self.upsert_games(match.games) if match.games else []
        return row

    async def get_match(self, match_id: UUID) -> Optional[Dict[str, Any]]:
        """Get a match by ID with its games."""
        match_response = self._execute(
            self.client.table("matches").select("*").eq("id", str(match_id)),
            "get_match",
            match_id,
        )
        if not match_response.data:
            return None
        games_response = self._execute(
            self.client.table("games").select("*").eq("match_id", str(match_id)).order("game_number"),
            "get_match",
            match_id,
        )

        match = match_response.data[0]
        match["games"] = games_response.data
        return match

    async def get_event_matches(self, event_id: UUID) -> List[Dict[str, Any]]:
        """Get all matches of an event, any status, with their games."""
        response = self._execute(
            self.client.table("matches").select("*, games(*)").eq("event_id", str(event_id)).order("created_at"),
            "get_event_matches",
        )
        return response.data

    async def update_match(self, match: Match, previous: Match) -> Dict[str, Any]:
        """Write what ``match`` changed since ``previous`` was read.

        The write only lands while the stored status is still the one that
        was read, otherwise MatchConflictError. players_confirmed is merged
        with the stored set. Returns {} when the match no longer exists.
        """
        current = self._execute(
            self.client.table("matches").select("status, players_confirmed").eq("id", str(match.id)),
            "update_match",
            match.id,
        )
        if not current.data:
            return {}
        stored = current.data[0]
        if stored["status"] != previous.status.value:
            raise stale_write(match, stored["status"])

        changes = changed_fields(match, previous)
        if "players_confirmed" in changes:
            changes["players_confirmed"] = merge_confirmations(
                stored.get("players_confirmed"), changes["players_confirmed"]
            )
        if changes:
            query = (
                self.client.table("matches")
                .update(changes)
                .eq("id", str(match.id))
                .eq("status", previous.status.value)
            )
            if "players_confirmed" in changes:
                # Only lands while the stored set is still the one merged into.
                confirmed = stored.get("players_confirmed") or []
                query = query.contains("players_confirmed", confirmed).contained_by(
                    "players_confirmed", confirmed
                )
            response = self._execute(query, "update_match", match.id)
            if not response.data:
                raise stale_write(match)

        games = changed_games(match, previous)
        if games:
            await self.upsert_games(games)
        return await self.get_match(match.id) or {}

    async def upsert_games(self, games: List[Game]) -> List[Dict[str, Any]]:
        """Append new games and update existing ones."""
        match_id = games[0].match_id if games else None
        response = self._execute(
            self.client.table("games").upsert([game_row(g) for g in games]),
            "upsert_games",
            match_id,
        )
        return response.data

    async def delete_pending_matches(self, event_id: UUID) -> int:
        """Delete every pending match of an event."""
        response = self._execute(
            self.client.table("matches").delete().eq("event_id", str(event_id)).eq("status", MatchStatus.PENDING.value),
            "delete_pending_matches",
        )
        return len(response.data or [])

    # Tournament operations
    async def create_tournament(self, tournament: ActiveTournament) -> Dict[str, Any]:
        """Create the active tournament for an event."""
        response = self._execute(
            self.client.table("active_tournaments").insert(tournament.model_dump(mode="json")),
            "create_tournament",
        )
        return response.data[0]

    async def get_tournament(self, tournament_id: str) -> Optional[Dict[str, Any]]:
        """Get an active tournament by ID."""
        response = self._execute(
            self.client.table("active_tournaments").select("*").eq("id", tournament_id),
            "get_tournament",
        )
        return response.data[0] if response.data else None

    async def update_tournament(self, tournament: ActiveTournament) -> Dict[str, Any]:
        """Write an active tournament."""
        response = self._execute(
            self.client.table("active_tournaments").update(tournament.model_dump(mode="json")).eq("id", tournament.id),
            "update_tournament",
        )
        return response.data[0] if response.data else {}
