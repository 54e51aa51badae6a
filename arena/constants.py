"""
Static game tables for the arena engine.

Monster templates, tournament types and loot tables used by the battle
resolver and the tournament orchestrator.
"""

from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class MonsterTemplate:
    name: str
    level: int
    hp: int
    attack: int
    defense: int
    exp: int
    gold: int


MONSTER_TEMPLATES: Tuple[MonsterTemplate, ...] = (
    # Low level (1-50)
    MonsterTemplate('Goblin', 5, 50, 15, 5, 25, 10),
    MonsterTemplate('Orc', 10, 100, 25, 10, 50, 20),
    MonsterTemplate('Skeleton', 15, 150, 35, 15, 75, 30),
    MonsterTemplate('Troll', 25, 300, 60, 30, 150, 60),
    MonsterTemplate('Ogre', 35, 500, 90, 45, 250, 100),
    # Mid level (51-200)
    MonsterTemplate('Dragon', 75, 1000, 150, 75, 500, 200),
    MonsterTemplate('Lich', 100, 1500, 200, 100, 750, 300),
    MonsterTemplate('Demon', 150, 2500, 300, 150, 1250, 500),
    MonsterTemplate('Vampire Lord', 200, 4000, 400, 200, 2000, 800),
    # High level (201-500)
    MonsterTemplate('Ancient Dragon', 300, 6000, 600, 300, 3000, 1200),
    MonsterTemplate('Shadow Lord', 400, 8000, 800, 400, 4000, 1600),
    MonsterTemplate('Void King', 500, 10000, 1000, 500, 5000, 2000),
    # Legendary (501+)
    MonsterTemplate('Time Master', 750, 15000, 1500, 750, 7500, 3000),
    MonsterTemplate('Soul Reaper', 1000, 20000, 2000, 1000, 10000, 4000),
    MonsterTemplate('Divine Destroyer', 1500, 30000, 3000, 1500, 15000, 6000),
)


class RewardConstants:
    """Multipliers for battle rewards."""

    PVE_EXP_PER_LEVEL = 0.1
    PVE_GOLD_PER_LEVEL = 0.05
    PVP_EXP_PER_LEVEL = 10
    PVP_GOLD_PER_LEVEL = 5
    ITEM_VALUE_PER_LEVEL = 10
    LEVELS_PER_RARITY = 100


ITEM_NAMES = (
    'Health Potion', 'Mana Potion', 'Strength Potion',
    'Defense Potion', 'Speed Potion', 'Luck Potion',
    'Magic Gem', 'Ancient Rune', 'Mystic Crystal',
)

ITEM_RARITIES = ('Common', 'Uncommon', 'Rare', 'Epic', 'Legendary')


@dataclass(frozen=True)
class PrizeTier:
    """A payout fraction shared by ``places`` consecutive finishing places."""
    fraction: float
    places: int = 1


@dataclass(frozen=True)
class TournamentType:
    key: str
    name: str
    description: str
    max_participants: int
    entry_fee: int
    duration_seconds: int
    prize_pool: Tuple[PrizeTier, ...]


TOURNAMENT_TYPES = {
    'daily': TournamentType(
        key='daily',
        name='Daily Tournament',
        description='Quick daily competition',
        max_participants=16,
        entry_fee=50,
        duration_seconds=60 * 60,
        prize_pool=(PrizeTier(0.5), PrizeTier(0.3), PrizeTier(0.2)),
    ),
    'weekly': TournamentType(
        key='weekly',
        name='Weekly Championship',
        description='Weekly major tournament',
        max_participants=32,
        entry_fee=100,
        duration_seconds=2 * 60 * 60,
        prize_pool=(PrizeTier(0.4), PrizeTier(0.3), PrizeTier(0.2), PrizeTier(0.1)),
    ),
    'monthly': TournamentType(
        key='monthly',
        name='Monthly Grand Championship',
        description='Monthly epic tournament',
        max_participants=64,
        entry_fee=250,
        duration_seconds=4 * 60 * 60,
        prize_pool=(PrizeTier(0.35), PrizeTier(0.25), PrizeTier(0.2),
                    PrizeTier(0.1), PrizeTier(0.05, 2)),
    ),
    'special': TournamentType(
        key='special',
        name='Special Event Tournament',
        description='Special themed tournament',
        max_participants=128,
        entry_fee=500,
        duration_seconds=6 * 60 * 60,
        prize_pool=(PrizeTier(0.3), PrizeTier(0.2), PrizeTier(0.15), PrizeTier(0.1),
                    PrizeTier(0.08), PrizeTier(0.07), PrizeTier(0.05, 2)),
    ),
}


class UIConstants:
    """Constants for Discord UI elements."""

    DEFAULT_EMBED_COLOR = 0x3498db  # Blue
    GOLD_RANK_COLOR = 0xffd700     # Gold for champions
    ERROR_COLOR = 0xe74c3c         # Red for errors
    SUCCESS_COLOR = 0x2ecc71       # Green for success

    TROPHY_EMOJI = "🏆"
    SWORDS_EMOJI = "⚔️"
    GIFT_EMOJI = "🎁"
    TARGET_EMOJI = "🎯"
