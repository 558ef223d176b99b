"""
Unit tests for the match commands in the SpinMate application.

Tests cover creating and loading matches, the confirmation flow through
storage, the coin flip, manual entry, admin overrides, storage failures
and the live score feed. All tests run against the in-memory database.
"""

import random
from itertools import permutations
from uuid import uuid4

import pytest

from spinmate.core import matches as matches_core
from spinmate.core.exceptions import (
    ExternalSyncError,
    MatchConflictError,
    MatchValidationError,
    NotFoundError,
)
from spinmate.schemas.matches import MatchStatus
from tests.utils import play_match, start_match

NBSP = "\u00a0"


class FixedRandom(random.Random):
    def __init__(self, value: float):
        super().__init__()
        self.value = value

    def random(self):
        return self.value


class FixedRating:
    def compute_delta(self, match, winner_rating, loser_rating):
        return 12.5


async def _create(db_service, players, best_of=3, event_id=None):
    player_1, player_2, umpire = players
    return await matches_core.create_match(
        player_1=player_1.id,
        player_2=player_2.id,
        umpire=umpire.id,
        best_of=best_of,
        event_id=event_id,
        database=db_service,
    )


@pytest.mark.asyncio
async def test_create_match(db_service, three_players):
    """A new match is stored as pending with nobody confirmed."""
    # Execute: Create the match
    match = await _create(db_service, three_players)

    # Verify: Match was stored with the right players
    stored = await matches_core.get_match(match.id, database=db_service)
    assert stored.status == MatchStatus.PENDING
    assert stored.player_1 == three_players[0].id
    assert stored.umpire == three_players[2].id
    assert stored.players_confirmed == frozenset()


@pytest.mark.asyncio
async def test_create_match_rejects_even_best_of(db_service, three_players):
    with pytest.raises(MatchValidationError):
        await _create(db_service, three_players, best_of=4)
    assert db_service.matches == {}


@pytest.mark.asyncio
async def test_missing_match(db_service):
    missing = uuid4()
    with pytest.raises(NotFoundError) as exc_info:
        await matches_core.confirm_player(missing, uuid4(), database=db_service)
    assert exc_info.value.match_id == missing
    assert exc_info.value.operation == "confirm_player"


@pytest.mark.asyncio
async def test_full_match_flow(db_service, three_players):
    """Confirm, score, select the winner and end the match."""
    match = await _create(db_service, three_players)

    # Execute: Play the match to the end
    ended = await play_match(db_service, match, player_1_wins=False)

    # Assert: Result and rating change are stored
    stored = await matches_core.get_match(match.id, database=db_service)
    assert ended.status == MatchStatus.ENDED
    assert stored.status == MatchStatus.ENDED
    assert stored.winner == three_players[1].id
    assert stored.ranking_score_delta is not None
    assert stored.ranking_score_delta > 0
    assert [g.score for g in stored.sorted_games()] == [(5, 11), (7, 11)]


@pytest.mark.asyncio
async def test_confirm_result_uses_rating_collaborator(db_service, three_players):
    match = await _create(db_service, three_players, best_of=1)
    await start_match(db_service, match)
    await matches_core.update_game_score(match.id, 1, 11, 2, completed=True, database=db_service)
    await matches_core.select_winner(match.id, match.player_1, database=db_service)

    ended = await matches_core.confirm_result(
        match.id, match.umpire, database=db_service, rating=FixedRating()
    )

    assert ended.ranking_score_delta == 12.5


@pytest.mark.asyncio
async def test_coin_flip_picks_first_server(db_service, three_players):
    match = await _create(db_service, three_players)
    await matches_core.confirm_player(match.id, match.player_1, database=db_service)
    await matches_core.confirm_player(match.id, match.player_2, database=db_service)

    started = await matches_core.confirm_umpire(
        match.id, match.umpire, database=db_service, rng=FixedRandom(0.9)
    )

    assert started.status == MatchStatus.ONGOING
    assert started.first_server == match.player_2


@pytest.mark.asyncio
async def test_chosen_server_skips_coin_flip(db_service, three_players):
    match = await _create(db_service, three_players)

    confirmed = await matches_core.confirm_umpire(
        match.id,
        match.umpire,
        server_id=match.player_1,
        database=db_service,
        rng=FixedRandom(0.9),
    )

    assert confirmed.status == MatchStatus.PENDING
    assert confirmed.first_server == match.player_1


@pytest.mark.asyncio
async def test_repeated_confirmation_does_not_write(db_service, three_players):
    match = await _create(db_service, three_players)
    await matches_core.confirm_player(match.id, match.player_1, database=db_service)

    db_service.fail_writes = True
    again = await matches_core.confirm_player(match.id, match.player_1, database=db_service)

    assert again.players_confirmed == frozenset({match.player_1})


@pytest.mark.asyncio
async def test_failed_write_leaves_match_unchanged(db_service, three_players):
    match = await _create(db_service, three_players)

    db_service.fail_writes = True
    with pytest.raises(ExternalSyncError) as exc_info:
        await matches_core.confirm_player(match.id, match.player_1, database=db_service)
    db_service.fail_writes = False

    assert exc_info.value.match_id == match.id
    stored = await matches_core.get_match(match.id, database=db_service)
    assert stored.players_confirmed == frozenset()


class TestManualMatch:
    @pytest.mark.asyncio
    async def test_winner_comes_from_scores(self, db_service, three_players):
        player_1, player_2, _ = three_players

        match = await matches_core.record_manual_match(
            player_1=player_1.id,
            player_2=player_2.id,
            best_of=5,
            scores=[(11, 5), (11, 7), (9, 11), (11, 6), (0, 0)],
            database=db_service,
            rating=FixedRating(),
        )

        assert match.status == MatchStatus.ENDED
        assert match.manually_created
        assert match.winner == player_1.id
        assert len(match.games) == 4
        assert match.ranking_score_delta == 12.5
        stored = await matches_core.get_match(match.id, database=db_service)
        assert stored.winner == player_1.id
        assert len(stored.games) == 4

    @pytest.mark.asyncio
    async def test_games_after_the_decision_are_dropped(self, db_service, three_players):
        player_1, player_2, _ = three_players

        match = await matches_core.record_manual_match(
            player_1=player_1.id,
            player_2=player_2.id,
            best_of=3,
            scores=[(3, 11), (4, 11), (11, 2)],
            database=db_service,
            rating=FixedRating(),
        )

        assert match.winner == player_2.id
        assert [g.game_number for g in match.games] == [1, 2]

    @pytest.mark.asyncio
    async def test_undecided_scores_are_rejected(self, db_service, three_players):
        player_1, player_2, _ = three_players

        with pytest.raises(MatchValidationError):
            await matches_core.record_manual_match(
                player_1=player_1.id,
                player_2=player_2.id,
                best_of=5,
                scores=[(11, 5), (5, 11)],
                database=db_service,
            )
        assert db_service.matches == {}


class TestForceTransition:
    @pytest.mark.asyncio
    async def test_force_end_reports_violations(self, db_service, three_players):
        match = await _create(db_service, three_players)

        forced, violations = await matches_core.force_transition(
            match.id, MatchStatus.ENDED, database=db_service
        )

        assert forced.status == MatchStatus.ENDED
        assert "ended match has no winner" in violations
        stored = await matches_core.get_match(match.id, database=db_service)
        assert stored.status == MatchStatus.ENDED

    @pytest.mark.asyncio
    async def test_force_back_to_ongoing(self, db_service, three_players):
        match = await _create(db_service, three_players, best_of=1)
        await play_match(db_service, match)

        forced, _ = await matches_core.force_transition(
            match.id, MatchStatus.ONGOING, database=db_service
        )

        assert forced.status == MatchStatus.ONGOING
        assert forced.ended_at is None


class TestLiveScore:
    @pytest.mark.asyncio
    async def test_pending_match_has_blank_score(self, db_service, three_players):
        match = await _create(db_service, three_players)

        score = await matches_core.get_live_score(match.id, database=db_service)

        assert score.display == f"{NBSP * 3}-{NBSP * 3}"
        assert score.current_game is None
        assert score.current_server is None

    @pytest.mark.asyncio
    async def test_score_follows_the_games(self, db_service, three_players):
        match = await _create(db_service, three_players)
        await start_match(db_service, match)

        score = await matches_core.get_live_score(match.id, database=db_service)
        assert score.games_won == (0, 0)
        assert score.current_game == (0, 0)
        assert score.current_server == match.player_1

        await matches_core.update_game_score(match.id, 1, 11, 8, completed=True, database=db_service)
        await matches_core.update_game_score(match.id, 2, 0, 0, database=db_service)

        score = await matches_core.get_live_score(match.id, database=db_service)
        assert score.games_won == (1, 0)
        assert score.current_game_number == 2
        assert score.current_server == match.player_2
        assert score.display == f"{NBSP}1 - {NBSP}0"

    @pytest.mark.asyncio
    async def test_ended_match(self, db_service, three_players):
        match = await _create(db_service, three_players)
        await play_match(db_service, match)

        score = await matches_core.get_live_score(match.id, database=db_service)

        assert score.status == MatchStatus.ENDED
        assert score.games_won == (2, 0)
        assert score.current_game is None
        assert score.winner == match.player_1


async def _confirm_as(db_service, match, role):
    if role == "umpire":
        return await matches_core.confirm_umpire(
            match.id, match.umpire, server_id=match.player_1, database=db_service
        )
    return await matches_core.confirm_player(match.id, getattr(match, role), database=db_service)


class TestConcurrentWrites:
    """Commands issued by clients holding an out-of-date copy of the match."""

    @pytest.mark.asyncio
    async def test_late_score_cannot_reopen_an_ended_match(self, db_service, three_players):
        # Setup: A client reads the match while it is still ongoing
        match = await _create(db_service, three_players)
        await start_match(db_service, match)
        await matches_core.update_game_score(match.id, 1, 11, 4, completed=True, database=db_service)
        await matches_core.update_game_score(match.id, 2, 11, 6, completed=True, database=db_service)
        ongoing = await db_service.get_match(match.id)

        # Setup: Meanwhile the umpire ends the match
        await matches_core.select_winner(match.id, match.player_1, database=db_service)
        await matches_core.confirm_result(
            match.id, match.umpire, database=db_service, rating=FixedRating()
        )

        # Execute: The late correction arrives
        db_service.serve_stale(ongoing)
        with pytest.raises(MatchConflictError):
            await matches_core.update_game_score(
                match.id, 1, 11, 5, completed=True, database=db_service
            )

        # Assert: The match stays ended with its result
        stored = await matches_core.get_match(match.id, database=db_service)
        assert stored.status == MatchStatus.ENDED
        assert stored.ranking_score_delta == 12.5
        assert stored.sorted_games()[0].score == (11, 4)

    @pytest.mark.asyncio
    async def test_umpire_confirmation_keeps_a_player_confirmation(self, db_service, three_players):
        match = await _create(db_service, three_players)
        before_player = await db_service.get_match(match.id)

        await matches_core.confirm_player(match.id, match.player_1, database=db_service)
        db_service.serve_stale(before_player)
        await matches_core.confirm_umpire(
            match.id, match.umpire, server_id=match.player_1, database=db_service
        )

        stored = await matches_core.get_match(match.id, database=db_service)
        assert stored.players_confirmed == frozenset({match.player_1})
        assert stored.umpire_confirmed

    @pytest.mark.asyncio
    @pytest.mark.parametrize("order", list(permutations(["player_1", "player_2", "umpire"])))
    async def test_confirmations_commute(self, db_service, three_players, order):
        """Every confirmation is issued from the same untouched copy."""
        match = await _create(db_service, three_players)
        untouched = await db_service.get_match(match.id)

        for role in order:
            db_service.serve_stale(untouched)
            await _confirm_as(db_service, match, role)

        stored = await matches_core.get_match(match.id, database=db_service)
        assert stored.status == MatchStatus.ONGOING
        assert stored.players_confirmed == frozenset({match.player_1, match.player_2})
        assert stored.umpire_confirmed
        assert [g.game_number for g in stored.games] == [1]

    @pytest.mark.asyncio
    async def test_redelivered_confirmation_after_start_is_a_no_op(self, db_service, three_players):
        match = await _create(db_service, three_players)
        await matches_core.confirm_player(match.id, match.player_1, database=db_service)
        await matches_core.confirm_umpire(
            match.id, match.umpire, server_id=match.player_1, database=db_service
        )
        before_start = await db_service.get_match(match.id)
        started = await matches_core.confirm_player(match.id, match.player_2, database=db_service)

        db_service.serve_stale(before_start)
        again = await matches_core.confirm_player(match.id, match.player_2, database=db_service)

        assert again.status == MatchStatus.ONGOING
        assert [g.id for g in again.games] == [g.id for g in started.games]

    @pytest.mark.asyncio
    async def test_match_purged_before_the_write(self, db_service, three_players, event_id):
        match = await _create(db_service, three_players, event_id=event_id)
        snapshot = await db_service.get_match(match.id)
        await db_service.delete_pending_matches(event_id)

        db_service.serve_stale(snapshot)
        with pytest.raises(NotFoundError) as exc_info:
            await matches_core.confirm_player(match.id, match.player_1, database=db_service)

        assert exc_info.value.match_id == match.id
        assert exc_info.value.operation == "confirm_player"
