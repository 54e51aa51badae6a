"""
Player directory: level/network lookup and reward application.

This is the player-state collaborator the engine consumes. It seeds battle
stats and matchmaking windows and receives experience, gold and items from
resolved battles and tournament prizes. Lookups are synchronous so the
matchmaking tick never yields mid-scan; writes are mirrored best-effort to
persistence.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from arena.config import ArenaSettings
from arena.utils.exceptions import PlayerNotFound
from arena.utils.logger import setup_logger

logger = setup_logger(__name__)


@dataclass
class PlayerProfile:
    """Player state as seen by the arena engine"""
    player_id: str                  # Global id "<network>:<local id>"
    name: str
    network_id: str
    level: int = 1
    hp: Optional[int] = None        # Explicit max HP; derived from level when None
    experience: int = 0
    gold: int = 0
    items: List[dict] = field(default_factory=list)

    @staticmethod
    def make_global_id(network_id, local_id) -> str:
        return f"{network_id}:{local_id}"


def max_hp_for(profile: PlayerProfile, settings: ArenaSettings) -> int:
    """Battle HP of a player: explicit profile HP, else derived from level"""
    if profile.hp is not None:
        return profile.hp
    return settings.base_player_hp + profile.level * settings.hp_per_level


class PlayerDirectory:
    """In-memory player table with optional snapshot persistence"""

    def __init__(self, settings: Optional[ArenaSettings] = None, snapshot_store=None):
        self.settings = settings or ArenaSettings()
        self.snapshot_store = snapshot_store
        self._players: Dict[str, PlayerProfile] = {}

    def find(self, player_id: str) -> Optional[PlayerProfile]:
        return self._players.get(player_id)

    def get(self, player_id: str) -> PlayerProfile:
        profile = self._players.get(player_id)
        if profile is None:
            raise PlayerNotFound(player_id)
        return profile

    def max_hp_for(self, profile: PlayerProfile) -> int:
        return max_hp_for(profile, self.settings)

    def load(self, profiles: Iterable[PlayerProfile]) -> int:
        count = 0
        for profile in profiles:
            self._players[profile.player_id] = profile
            count += 1
        logger.info(f"Loaded {count} player profiles")
        return count

    async def upsert(self, profile: PlayerProfile) -> PlayerProfile:
        """Create or replace a profile, clamping the level to the configured range"""
        profile.level = max(1, min(profile.level, self.settings.max_level))
        self._players[profile.player_id] = profile
        if self.snapshot_store:
            await self.snapshot_store.save_player(profile)
        return profile

    async def apply_rewards(self, player_id: str, experience: int = 0, gold: int = 0,
                            items: Iterable[dict] = ()) -> Optional[PlayerProfile]:
        """
        Credit rewards to a player.

        Unknown ids (for example a monster winning a PvE battle) are ignored.

        Returns:
            Updated profile, or None when the player is unknown
        """
        profile = self._players.get(player_id)
        if profile is None:
            logger.debug(f"Skipping rewards for unknown player {player_id}")
            return None

        items = list(items)
        profile.experience += experience
        profile.gold += gold
        profile.items.extend(items)
        logger.info(f"Rewards applied to {player_id}: {experience} exp, {gold} gold, {len(items)} items")

        if self.snapshot_store:
            await self.snapshot_store.save_player(profile)
        return profile

    def __len__(self) -> int:
        return len(self._players)
