import random

import pytest

from arena.config import ArenaSettings
from arena.services.player_directory import PlayerProfile


class FakeClock:
    """Manually advanced clock injected in place of time.time"""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def settings():
    return ArenaSettings(
        max_level=9999,
        level_bracket_size=10,
        enable_ranking=True,
        rating_decay=0.95,
        rating_k_factor=32,
        starting_rating=1000,
        max_wait_seconds=300,
        level_window=5,
        rating_range=100,
        critical_chance=0.10,
        item_drop_chance=0.30,
        battle_timeout_seconds=900,
        min_tournament_participants=4,
        tournament_start_delay_seconds=300,
    )


@pytest.fixture
def make_player():
    def _make(local_id: str, level: int = 10, network: str = "net1", hp: int = None) -> PlayerProfile:
        return PlayerProfile(
            player_id=PlayerProfile.make_global_id(network, local_id),
            name=local_id.title(),
            network_id=network,
            level=level,
            hp=hp,
        )
    return _make
