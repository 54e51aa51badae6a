"""Tests for the rating update rule and the rating store."""

import pytest

from arena.operations.rating_store import PlayerRating, RatingStore
from arena.utils.elo import EloCalculator


class TestEloCalculator:

    def test_equal_ratings_expect_half(self):
        assert EloCalculator.calculate_expected_score(1000, 1000) == 0.5

    def test_equal_ratings_move_sixteen_each_way(self):
        assert EloCalculator.calculate_match_rating_changes(1000, 1000, 32) == (16, -16)

    def test_upset_moves_more_than_expected_win(self):
        upset, _ = EloCalculator.calculate_match_rating_changes(900, 1300, 32)
        expected, _ = EloCalculator.calculate_match_rating_changes(1300, 900, 32)
        assert upset > expected

    def test_decay_rounds_and_floors(self):
        assert EloCalculator.apply_decay(1016, 0.95) == 965
        assert EloCalculator.apply_decay(984, 0.95) == 935
        assert EloCalculator.apply_decay(0, 0.95) == 0

    def test_format_rating_change(self):
        assert EloCalculator.format_rating_change(16) == "+16"
        assert EloCalculator.format_rating_change(-16) == "-16"
        assert EloCalculator.format_rating_change(0) == "±0"


class TestRatingStore:

    def test_unknown_player_reads_starting_rating(self, settings):
        store = RatingStore(settings)

        assert store.get_rating("net1:ghost") == 1000
        assert store.get("net1:ghost") is None
        assert len(store) == 0

    def test_equal_ratings_update_then_decay(self, settings):
        """1000 vs 1000: +16/-16, then both scaled by 0.95"""
        store = RatingStore(settings)

        update = store.record_outcome("net1:winner", "net2:loser")

        assert update.expected_winner == 0.5
        assert update.winner_change == 16
        assert update.loser_change == -16
        assert update.winner_pre_decay == 1016
        assert update.loser_pre_decay == 984
        assert store.get_rating("net1:winner") == 965
        assert store.get_rating("net2:loser") == 935

    def test_ratings_created_lazily_with_record(self, settings):
        store = RatingStore(settings)
        store.record_outcome("a:1", "b:2")

        winner = store.get("a:1")
        loser = store.get("b:2")
        assert (winner.wins, winner.losses) == (1, 0)
        assert (loser.wins, loser.losses) == (0, 1)
        assert winner.win_rate == 100.0
        assert loser.matches_played == 1

    @pytest.mark.parametrize("winner_rating,loser_rating", [
        (1000, 1000), (1400, 900), (900, 1400), (0, 2000), (2000, 0),
    ])
    def test_winner_never_drops_and_loser_never_rises_before_decay(self, settings, winner_rating, loser_rating):
        store = RatingStore(settings)
        store.set(PlayerRating("a:w", winner_rating))
        store.set(PlayerRating("a:l", loser_rating))

        update = store.record_outcome("a:w", "a:l")

        assert update.winner_pre_decay >= winner_rating
        assert update.loser_pre_decay <= loser_rating

    def test_rating_floored_at_zero(self, settings):
        store = RatingStore(settings)
        store.set(PlayerRating("a:w", 0))
        store.set(PlayerRating("a:l", 0))

        store.record_outcome("a:w", "a:l")

        assert store.get_rating("a:l") == 0
        assert store.get_rating("a:w") == 15

    def test_decay_can_be_disabled(self, settings):
        settings.rating_decay = 1.0
        store = RatingStore(settings)

        store.record_outcome("a:w", "a:l")

        assert store.get_rating("a:w") == 1016
        assert store.get_rating("a:l") == 984

    def test_self_outcome_rejected(self, settings):
        with pytest.raises(ValueError):
            RatingStore(settings).record_outcome("a:1", "a:1")

    def test_negative_rating_rejected(self, settings):
        with pytest.raises(ValueError):
            RatingStore(settings).set(PlayerRating("a:1", -1))

    def test_leaderboard_order_and_network_filter(self, settings):
        store = RatingStore(settings)
        store.load([
            PlayerRating("net1:a", 1200, wins=3),
            PlayerRating("net2:b", 1300, wins=1),
            PlayerRating("net1:c", 1200, wins=5),
            PlayerRating("net2:d", 900),
        ])

        assert [r.player_id for r in store.leaderboard()] == ["net2:b", "net1:c", "net1:a", "net2:d"]
        assert [r.player_id for r in store.leaderboard(network_id="net1")] == ["net1:c", "net1:a"]
        assert len(store.leaderboard(limit=2)) == 2
