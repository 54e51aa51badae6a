import math
from typing import Tuple
from arena.config import Config

class EloCalculator:
    """Handles rating calculations for ranked arena battles"""

    @staticmethod
    def calculate_expected_score(rating_a: int, rating_b: int) -> float:
        """
        Calculate the expected score for player A against player B

        Args:
            rating_a: Player A's current rating
            rating_b: Player B's current rating

        Returns:
            Expected score (0.0 to 1.0) for player A
        """
        return 1 / (1 + math.pow(10, (rating_b - rating_a) / 400))

    @staticmethod
    def calculate_rating_change(current_rating: int, opponent_rating: int,
                                actual_score: float, k_factor: int = None) -> int:
        """
        Calculate the rating change for a player

        Args:
            current_rating: Player's current rating
            opponent_rating: Opponent's current rating
            actual_score: Actual score (1.0 for win, 0.0 for loss)
            k_factor: K-factor, defaults to Config.RATING_K_FACTOR

        Returns:
            Rating change (can be positive or negative)
        """
        if k_factor is None:
            k_factor = Config.RATING_K_FACTOR
        expected_score = EloCalculator.calculate_expected_score(current_rating, opponent_rating)
        return round(k_factor * (actual_score - expected_score))

    @staticmethod
    def calculate_match_rating_changes(winner_rating: int, loser_rating: int,
                                       k_factor: int = None) -> Tuple[int, int]:
        """
        Calculate rating changes for both sides of a decided battle

        Args:
            winner_rating: Winner's current rating
            loser_rating: Loser's current rating
            k_factor: K-factor shared by both sides

        Returns:
            Tuple of (winner_change, loser_change); winner_change >= 0 >= loser_change
        """
        winner_change = EloCalculator.calculate_rating_change(winner_rating, loser_rating, 1.0, k_factor)
        loser_change = EloCalculator.calculate_rating_change(loser_rating, winner_rating, 0.0, k_factor)
        return winner_change, loser_change

    @staticmethod
    def apply_decay(rating: int, decay: float) -> int:
        """Scale a rating by the decay factor, rounding to the nearest integer"""
        return max(0, round(rating * decay))

    @staticmethod
    def format_rating_change(change: int) -> str:
        """Format a rating change for display"""
        if change > 0:
            return f"+{change}"
        elif change < 0:
            return str(change)
        else:
            return "±0"
