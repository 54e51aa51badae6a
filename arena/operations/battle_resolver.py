"""
Battle Resolver - turn-based PvE and PvP battles

Creates battles, applies submitted turns, detects termination and computes
rewards. The resolver knows nothing about tournaments or matchmaking: it
announces every resolved battle once on the event hub under
``battle_completed`` keyed by the battle id, and callers subscribe to the ids
they care about through ``on_completed``.

Damage model:
- PvE hit:     max(1, power + level*2 [x2 on critical] - monster.defense)
- PvE counter: max(1, monster.attack - level*1.5), only if the monster survived
- PvP hit:     max(1, power + attacker.level*2 - defender.level*1.5)

The acting side's hit is always resolved before any counter-attack, so at most
one side can drop to 0 HP per turn. Idle battles are resolved by forfeit on
``expire_idle_battles``.
"""

import asyncio
import math
import random
import time
import uuid
from collections import OrderedDict, defaultdict, deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Deque, Dict, List, Optional, Sequence, Union

from arena.config import ArenaSettings
from arena.constants import (
    ITEM_NAMES, ITEM_RARITIES, MONSTER_TEMPLATES, MonsterTemplate, RewardConstants
)
from arena.services.player_directory import PlayerProfile, max_hp_for
from arena.utils.events import EventHub, BATTLE_COMPLETED, BATTLE_STARTED, TURN_PROCESSED
from arena.utils.exceptions import (
    BattleAlreadyResolved, InvalidParticipants, NoSuitableMonster, NotAParticipant, UnknownBattle
)
from arena.utils.logger import setup_logger

logger = setup_logger(__name__)

# Finished battles kept for lookups; older ids report UnknownBattle instead of BattleAlreadyResolved
RESOLVED_CACHE_SIZE = 1000
PLAYER_HISTORY_LIMIT = 100


class BattleKind(Enum):
    PVE = "pve"
    PVP = "pvp"


class BattleStatus(Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class BattleOutcome(Enum):
    KNOCKOUT = "knockout"
    FORFEIT = "forfeit"


@dataclass
class Combatant:
    entity_id: str
    name: str
    level: int
    max_hp: int
    hp: int
    attack: int = 0
    defense: int = 0
    is_monster: bool = False

    @property
    def alive(self) -> bool:
        return self.hp > 0

    @classmethod
    def from_player(cls, profile: PlayerProfile, settings: ArenaSettings) -> 'Combatant':
        hp = max_hp_for(profile, settings)
        return cls(entity_id=profile.player_id, name=profile.name, level=profile.level, max_hp=hp, hp=hp)

    @classmethod
    def from_monster(cls, template: MonsterTemplate) -> 'Combatant':
        return cls(
            entity_id=f"monster:{template.name}",
            name=template.name,
            level=template.level,
            max_hp=template.hp,
            hp=template.hp,
            attack=template.attack,
            defense=template.defense,
            is_monster=True,
        )


@dataclass
class BattleAction:
    """A submitted action; anything other than an attack is a pass"""
    kind: str = "attack"
    power: Optional[int] = None


@dataclass
class TurnResult:
    battle_id: str
    turn_number: int
    actor_id: str
    action: str
    target_id: Optional[str]
    result: str                     # "hit" or "pass"
    damage: int
    critical: bool
    counter_damage: int
    actor_hp: int
    target_hp: Optional[int]
    timestamp: float
    completed: bool = False
    winner: Optional[str] = None


@dataclass
class BattleRewards:
    experience: int = 0
    gold: int = 0
    items: List[dict] = field(default_factory=list)


@dataclass
class Battle:
    id: str
    kind: BattleKind
    participants: List[str]
    combatants: Dict[str, Combatant]
    started_at: float
    opponent: Optional[Combatant] = None    # Monster for PvE
    monster: Optional[MonsterTemplate] = None
    ranked: bool = False
    context: dict = field(default_factory=dict)
    status: BattleStatus = BattleStatus.ACTIVE
    turns: List[TurnResult] = field(default_factory=list)
    last_action_at: Dict[str, float] = field(default_factory=dict)
    winner: Optional[str] = None
    loser: Optional[str] = None
    outcome: Optional[BattleOutcome] = None
    rewards: BattleRewards = field(default_factory=BattleRewards)
    ended_at: Optional[float] = None

    @property
    def is_active(self) -> bool:
        return self.status == BattleStatus.ACTIVE

    @property
    def last_activity(self) -> float:
        return max(self.last_action_at.values(), default=self.started_at)

    def combatant(self, entity_id: str) -> Optional[Combatant]:
        if self.opponent and self.opponent.entity_id == entity_id:
            return self.opponent
        return self.combatants.get(entity_id)

    def other_participant(self, player_id: str) -> Optional[str]:
        return next((p for p in self.participants if p != player_id), None)


@dataclass
class BattleHistoryEntry:
    battle_id: str
    kind: BattleKind
    result: str
    timestamp: float
    rewards: BattleRewards


class BattleResolver:
    """Owns turn-level state of every active battle"""

    def __init__(
        self,
        settings: Optional[ArenaSettings] = None,
        events: Optional[EventHub] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.time,
        monsters: Sequence[MonsterTemplate] = MONSTER_TEMPLATES,
    ):
        self.settings = settings or ArenaSettings()
        self.events = events or EventHub()
        self.rng = rng or random.Random()
        self.clock = clock
        self.monsters = list(monsters)
        self.lock = asyncio.Lock()

        self._active: Dict[str, Battle] = {}
        self._resolved: 'OrderedDict[str, Battle]' = OrderedDict()
        self._completed_count = 0
        self._history: Dict[str, Deque[BattleHistoryEntry]] = defaultdict(
            lambda: deque(maxlen=PLAYER_HISTORY_LIMIT)
        )

    # ------------------------------------------------------------------
    # Battle creation
    # ------------------------------------------------------------------

    def select_monster(self, level: int) -> MonsterTemplate:
        """
        Pick a monster near ``level``, weighted towards closer levels.

        Raises:
            NoSuitableMonster: If no template is within the level range
        """
        level_range = self.settings.monster_level_range
        min_level = max(1, level - level_range)
        max_level = level + level_range

        suitable = [m for m in self.monsters if min_level <= m.level <= max_level]
        if not suitable:
            raise NoSuitableMonster(level)

        weights = [max(1, 100 - abs(m.level - level)) for m in suitable]
        return self.rng.choices(suitable, weights=weights, k=1)[0]

    async def start_battle(
        self,
        kind: Union[BattleKind, str],
        participants: Sequence[PlayerProfile],
        opponent_spec: Union[MonsterTemplate, int, None] = None,
        ranked: bool = True,
        context: Optional[dict] = None,
    ) -> Battle:
        """
        Create and register an active battle.

        Args:
            kind: BattleKind or its value ("pve"/"pvp")
            participants: One player for PvE, two distinct players for PvP
            opponent_spec: PvE only - a MonsterTemplate, or a level to pick a monster near
            ranked: PvP only - whether the outcome updates ratings
            context: Opaque caller data carried on the battle (e.g. tournament match)

        Returns:
            The new active Battle

        Raises:
            InvalidParticipants: On a wrong participant count or a self-duel
            NoSuitableMonster: If no monster fits the requested level
        """
        kind = BattleKind(kind)
        participants = list(participants)

        if kind == BattleKind.PVE and len(participants) != 1:
            raise InvalidParticipants(f"PvE battles take exactly one player, got {len(participants)}")
        if kind == BattleKind.PVP:
            if len(participants) != 2:
                raise InvalidParticipants(f"PvP battles take exactly two players, got {len(participants)}")
            if participants[0].player_id == participants[1].player_id:
                raise InvalidParticipants("A player cannot fight themselves")

        opponent = None
        monster = None
        if kind == BattleKind.PVE:
            if isinstance(opponent_spec, MonsterTemplate):
                monster = opponent_spec
            else:
                level = opponent_spec if opponent_spec is not None else participants[0].level
                monster = self.select_monster(level)
            opponent = Combatant.from_monster(monster)

        battle = Battle(
            id=f"battle_{uuid.uuid4().hex[:12]}",
            kind=kind,
            participants=[p.player_id for p in participants],
            combatants={p.player_id: Combatant.from_player(p, self.settings) for p in participants},
            started_at=self.clock(),
            opponent=opponent,
            monster=monster,
            ranked=ranked and kind == BattleKind.PVP,
            context=dict(context or {}),
        )

        async with self.lock:
            self._active[battle.id] = battle

        if kind == BattleKind.PVE:
            logger.info(f"PvE battle started: {battle.participants[0]} vs {monster.name} [{battle.id}]")
        else:
            logger.info(f"PvP battle started: {battle.participants[0]} vs {battle.participants[1]} [{battle.id}]")
        await self.events.emit(BATTLE_STARTED, battle, key=battle.id)
        return battle

    async def start_pve_battle(self, player: PlayerProfile, opponent_level: int = None) -> Battle:
        return await self.start_battle(BattleKind.PVE, [player], opponent_level)

    async def start_pvp_battle(self, player_a: PlayerProfile, player_b: PlayerProfile,
                               ranked: bool = True, context: Optional[dict] = None) -> Battle:
        return await self.start_battle(BattleKind.PVP, [player_a, player_b], ranked=ranked, context=context)

    def on_completed(self, battle_id: str, handler) -> Callable[[], None]:
        """Subscribe to the single completion of one battle"""
        return self.events.once(BATTLE_COMPLETED, handler, key=battle_id)

    # ------------------------------------------------------------------
    # Turns
    # ------------------------------------------------------------------

    def _pve_turn(self, battle: Battle, actor: Combatant, action: BattleAction, turn: TurnResult):
        monster = battle.opponent
        turn.target_id = monster.entity_id

        power = action.power if action.power is not None else self.settings.base_action_damage
        raw = power + actor.level * 2
        if self.rng.random() < self.settings.critical_chance:
            raw *= 2
            turn.critical = True

        damage = max(1, math.floor(raw - monster.defense))
        monster.hp = max(0, monster.hp - damage)
        turn.damage = damage
        turn.result = "hit"

        # Monster counter-attack
        if monster.hp > 0:
            counter = max(1, math.floor(monster.attack - actor.level * 1.5))
            actor.hp = max(0, actor.hp - counter)
            turn.counter_damage = counter

        turn.target_hp = monster.hp

    def _pvp_turn(self, battle: Battle, actor: Combatant, action: BattleAction, turn: TurnResult):
        defender = battle.combatants[battle.other_participant(actor.entity_id)]
        turn.target_id = defender.entity_id

        power = action.power if action.power is not None else self.settings.base_action_damage
        damage = max(1, math.floor(power + actor.level * 2 - defender.level * 1.5))
        defender.hp = max(0, defender.hp - damage)
        turn.damage = damage
        turn.result = "hit"
        turn.target_hp = defender.hp

    def _knockout(self, battle: Battle):
        """(winner, loser) once a side is at 0 HP, else None"""
        if battle.kind == BattleKind.PVE:
            player = battle.combatants[battle.participants[0]]
            if not battle.opponent.alive:
                return player.entity_id, battle.opponent.entity_id
            if not player.alive:
                return battle.opponent.entity_id, player.entity_id
            return None

        for player_id in battle.participants:
            if not battle.combatants[player_id].alive:
                return battle.other_participant(player_id), player_id
        return None

    async def submit_turn(self, battle_id: str, actor_id: str, action: Optional[BattleAction] = None) -> TurnResult:
        """
        Apply one action to an active battle.

        Raises:
            BattleAlreadyResolved: If the battle has completed
            UnknownBattle: If the id was never an active battle
            NotAParticipant: If the actor is not fighting in the battle
        """
        action = action or BattleAction()

        async with self.lock:
            battle = self._active.get(battle_id)
            if battle is None:
                if battle_id in self._resolved:
                    raise BattleAlreadyResolved(battle_id)
                raise UnknownBattle(battle_id)
            if actor_id not in battle.participants:
                raise NotAParticipant(battle_id, actor_id)

            now = self.clock()
            actor = battle.combatants[actor_id]
            turn = TurnResult(
                battle_id=battle.id,
                turn_number=len(battle.turns) + 1,
                actor_id=actor_id,
                action=action.kind,
                target_id=None,
                result="pass",
                damage=0,
                critical=False,
                counter_damage=0,
                actor_hp=actor.hp,
                target_hp=None,
                timestamp=now,
            )

            if action.kind == "attack":
                if battle.kind == BattleKind.PVE:
                    self._pve_turn(battle, actor, action, turn)
                else:
                    self._pvp_turn(battle, actor, action, turn)
            turn.actor_hp = actor.hp

            battle.turns.append(turn)
            battle.last_action_at[actor_id] = now

            decided = self._knockout(battle)
            if decided:
                self._finish(battle, decided[0], decided[1], BattleOutcome.KNOCKOUT, now)
                turn.completed = True
                turn.winner = battle.winner

        logger.debug(f"Turn {turn.turn_number} processed in battle {battle.id}")
        await self.events.emit(TURN_PROCESSED, turn, key=battle.id)
        if turn.completed:
            await self._announce(battle)
        return turn

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    def calculate_rewards(self, battle: Battle) -> BattleRewards:
        if battle.kind == BattleKind.PVE:
            player = battle.combatants[battle.participants[0]]
            if battle.winner != player.entity_id:
                return BattleRewards()
            monster = battle.monster
            return BattleRewards(
                experience=math.floor(monster.exp * (1 + player.level * RewardConstants.PVE_EXP_PER_LEVEL)),
                gold=math.floor(monster.gold * (1 + player.level * RewardConstants.PVE_GOLD_PER_LEVEL)),
                items=self.generate_items(monster.level),
            )

        winner = battle.combatants[battle.winner]
        loser = battle.combatants[battle.loser]
        level_sum = winner.level + loser.level
        return BattleRewards(
            experience=level_sum * RewardConstants.PVP_EXP_PER_LEVEL,
            gold=level_sum * RewardConstants.PVP_GOLD_PER_LEVEL,
        )

    def generate_items(self, level: int) -> List[dict]:
        if self.rng.random() >= self.settings.item_drop_chance:
            return []
        max_rarity = min(level // RewardConstants.LEVELS_PER_RARITY, len(ITEM_RARITIES) - 1)
        return [{
            'name': self.rng.choice(ITEM_NAMES),
            'rarity': ITEM_RARITIES[self.rng.randint(0, max_rarity)],
            'value': level * RewardConstants.ITEM_VALUE_PER_LEVEL,
        }]

    def _finish(self, battle: Battle, winner: str, loser: str, outcome: BattleOutcome, now: float):
        """Terminal transition; caller holds the lock"""
        battle.status = BattleStatus.COMPLETED
        battle.winner = winner
        battle.loser = loser
        battle.outcome = outcome
        battle.ended_at = now
        battle.rewards = self.calculate_rewards(battle)

        self._completed_count += 1
        del self._active[battle.id]
        self._resolved[battle.id] = battle
        while len(self._resolved) > RESOLVED_CACHE_SIZE:
            self._resolved.popitem(last=False)

        for player_id in battle.participants:
            self._history[player_id].append(BattleHistoryEntry(
                battle_id=battle.id,
                kind=battle.kind,
                result='win' if player_id == winner else 'loss',
                timestamp=now,
                rewards=battle.rewards,
            ))

    async def cancel(self, battle_id: str) -> bool:
        """
        Drop an active battle without a result.

        No completion is emitted and completion handlers for it are discarded,
        so nobody is rated or rewarded.

        Returns:
            False when the battle was not active
        """
        async with self.lock:
            battle = self._active.pop(battle_id, None)
            if battle is None:
                return False
            battle.status = BattleStatus.CANCELLED
            battle.ended_at = self.clock()
            self._resolved[battle.id] = battle
            while len(self._resolved) > RESOLVED_CACHE_SIZE:
                self._resolved.popitem(last=False)
        self.events.discard(BATTLE_COMPLETED, key=battle_id)
        logger.info(f"Battle cancelled: {battle_id}")
        return True

    async def _announce(self, battle: Battle):
        logger.info(f"Battle ended: {battle.id}, Winner: {battle.winner} ({battle.outcome.value})")
        await self.events.emit(BATTLE_COMPLETED, battle, key=battle.id)

    def _forfeit_result(self, battle: Battle):
        if battle.kind == BattleKind.PVE:
            return battle.opponent.entity_id, battle.participants[0]

        first, second = battle.participants
        acted_first = battle.last_action_at.get(first)
        acted_second = battle.last_action_at.get(second)
        if acted_first is not None or acted_second is not None:
            if acted_second is None or (acted_first is not None and acted_first >= acted_second):
                return first, second
            return second, first

        if battle.combatants[second].hp > battle.combatants[first].hp:
            return second, first
        return first, second

    async def expire_idle_battles(self) -> List[Battle]:
        """
        Resolve battles idle longer than the battle timeout by forfeit.

        PvE: the monster wins. PvP: the most recently active participant wins,
        then the one with more HP, then the first participant.
        """
        expired = []
        async with self.lock:
            now = self.clock()
            timeout = self.settings.battle_timeout_seconds
            for battle in list(self._active.values()):
                if now - battle.last_activity <= timeout:
                    continue
                winner, loser = self._forfeit_result(battle)
                self._finish(battle, winner, loser, BattleOutcome.FORFEIT, now)
                expired.append(battle)

        for battle in expired:
            await self._announce(battle)
        return expired

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_battle(self, battle_id: str) -> Battle:
        battle = self._active.get(battle_id) or self._resolved.get(battle_id)
        if battle is None:
            raise UnknownBattle(battle_id)
        return battle

    def is_active(self, battle_id: str) -> bool:
        return battle_id in self._active

    def active_battles(self) -> List[Battle]:
        return list(self._active.values())

    def get_active_battle_for(self, player_id: str) -> Optional[Battle]:
        """Most recently started active battle the player is fighting in"""
        battles = [b for b in self._active.values() if player_id in b.participants]
        return max(battles, key=lambda b: b.started_at) if battles else None

    def get_history(self, player_id: str) -> List[BattleHistoryEntry]:
        return list(self._history.get(player_id, ()))

    def stats(self) -> dict:
        return {
            'active_battles': len(self._active),
            'total_battles': self._completed_count,
            'monster_count': len(self.monsters),
        }
