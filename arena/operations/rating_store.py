"""
Rating Store

Holds the skill rating and win/loss counters per player and applies the
logistic rating update after a ranked outcome. Ratings are created lazily on
the first ranked outcome; unknown players read as the starting rating.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from arena.config import ArenaSettings
from arena.utils.elo import EloCalculator
from arena.utils.logger import setup_logger

logger = setup_logger(__name__)


@dataclass
class PlayerRating:
    """Rating and record of one player"""
    player_id: str
    rating: int
    wins: int = 0
    losses: int = 0

    @property
    def matches_played(self) -> int:
        return self.wins + self.losses

    @property
    def win_rate(self) -> float:
        if self.matches_played == 0:
            return 0.0
        return (self.wins / self.matches_played) * 100


@dataclass
class RatingUpdate:
    """Result of one ranked update with the pre-decay breakdown"""
    winner_id: str
    loser_id: str
    winner_old: int
    loser_old: int
    winner_change: int
    loser_change: int
    expected_winner: float
    winner_new: int
    loser_new: int

    @property
    def winner_pre_decay(self) -> int:
        return max(0, self.winner_old + self.winner_change)

    @property
    def loser_pre_decay(self) -> int:
        return max(0, self.loser_old + self.loser_change)


class RatingStore:
    """
    In-memory rating table owned by a single logical actor.

    All writes are last-write-wins per player id.
    """

    def __init__(self, settings: Optional[ArenaSettings] = None):
        self.settings = settings or ArenaSettings()
        self._ratings: Dict[str, PlayerRating] = {}

    def get(self, player_id: str) -> Optional[PlayerRating]:
        return self._ratings.get(player_id)

    def get_rating(self, player_id: str) -> int:
        """Current rating, or the starting rating for players never ranked"""
        record = self._ratings.get(player_id)
        return record.rating if record else self.settings.starting_rating

    def _get_or_create(self, player_id: str) -> PlayerRating:
        record = self._ratings.get(player_id)
        if record is None:
            record = PlayerRating(player_id=player_id, rating=self.settings.starting_rating)
            self._ratings[player_id] = record
        return record

    def set(self, record: PlayerRating) -> None:
        """Overwrite a player's record (restart recovery, admin tooling)"""
        if record.rating < 0:
            raise ValueError("rating must be >= 0")
        self._ratings[record.player_id] = record

    def load(self, records: Iterable[PlayerRating]) -> int:
        count = 0
        for record in records:
            self.set(record)
            count += 1
        logger.info(f"Loaded {count} player ratings")
        return count

    def record_outcome(self, winner_id: str, loser_id: str) -> RatingUpdate:
        """
        Apply a ranked outcome.

        The winner gains ``round(K * (1 - E_w))`` and the loser changes by
        ``round(K * (0 - E_l))`` using its own expected score. Both ratings are
        floored at 0 and then decayed once by ``rating_decay``.

        Args:
            winner_id: Global id of the winner
            loser_id: Global id of the loser

        Returns:
            RatingUpdate describing old/new ratings
        """
        if winner_id == loser_id:
            raise ValueError("winner and loser must differ")

        winner = self._get_or_create(winner_id)
        loser = self._get_or_create(loser_id)
        winner_old, loser_old = winner.rating, loser.rating

        winner_change, loser_change = EloCalculator.calculate_match_rating_changes(
            winner_old, loser_old, self.settings.rating_k_factor
        )

        decay = self.settings.rating_decay
        winner.rating = EloCalculator.apply_decay(max(0, winner_old + winner_change), decay)
        loser.rating = EloCalculator.apply_decay(max(0, loser_old + loser_change), decay)
        winner.wins += 1
        loser.losses += 1

        update = RatingUpdate(
            winner_id=winner_id,
            loser_id=loser_id,
            winner_old=winner_old,
            loser_old=loser_old,
            winner_change=winner_change,
            loser_change=loser_change,
            expected_winner=EloCalculator.calculate_expected_score(winner_old, loser_old),
            winner_new=winner.rating,
            loser_new=loser.rating,
        )
        logger.info(
            f"Ratings updated: {winner_id} {EloCalculator.format_rating_change(winner_change)} "
            f"({winner_old}->{winner.rating}), {loser_id} "
            f"{EloCalculator.format_rating_change(loser_change)} ({loser_old}->{loser.rating})"
        )
        return update

    def leaderboard(self, limit: int = 10, network_id: Optional[str] = None) -> List[PlayerRating]:
        """Top players by rating; ``network_id`` filters on the global id prefix"""
        records = list(self._ratings.values())
        if network_id:
            prefix = f"{network_id}:"
            records = [r for r in records if r.player_id.startswith(prefix)]
        records.sort(key=lambda r: (-r.rating, -r.wins, r.player_id))
        return records[:limit]

    def all(self) -> List[PlayerRating]:
        return list(self._ratings.values())

    def __len__(self) -> int:
        return len(self._ratings)
