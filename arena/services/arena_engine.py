"""
Arena engine facade.

Builds the rating store, match queue, battle resolver and tournament
orchestrator around one event hub and exposes the boundary calls used by the
command layer and admin tooling. It also closes the loop between the
components:

- ``match_created``  -> start a ranked PvP battle for the pairing
- ``battle_completed`` -> ranked rating update, rewards, match history result
- every transition    -> announcement sink and best-effort snapshot

Tournament advancement is not wired here: the orchestrator subscribes to the
completion of its own battles.
"""

import random
import time
from collections import deque
from typing import Callable, Deque, List, Optional, Union

from arena.config import ArenaSettings
from arena.operations.battle_resolver import Battle, BattleAction, BattleKind, BattleResolver, TurnResult
from arena.operations.match_queue import MatchPairing, MatchQueue, MatchRequest, MatchmakingTickResult
from arena.operations.rating_store import PlayerRating, RatingStore, RatingUpdate
from arena.operations.tournament_orchestrator import Tournament, TournamentOrchestrator
from arena.services.announcements import AnnouncementService
from arena.services.player_directory import PlayerDirectory, PlayerProfile
from arena.utils.elo import EloCalculator
from arena.utils.events import (
    EventHub, BATTLE_COMPLETED, BATTLE_STARTED, MATCH_CREATED, MATCH_EXPIRED, MATCH_REQUESTED
)
from arena.utils.logger import setup_logger

logger = setup_logger(__name__)

RECENT_RATING_UPDATES = 100

PlayerRef = Union[PlayerProfile, str]


class ArenaEngine:
    """Owns the four arena components and the wiring between them"""

    def __init__(
        self,
        settings: Optional[ArenaSettings] = None,
        announcer: Optional[AnnouncementService] = None,
        snapshot_store=None,
        directory: Optional[PlayerDirectory] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.settings = settings or ArenaSettings()
        self.rng = rng or random.Random()
        self.clock = clock
        self.snapshot_store = snapshot_store
        self.announcer = announcer or AnnouncementService(clock=clock)
        self.events = EventHub()

        self.directory = directory or PlayerDirectory(self.settings, snapshot_store)
        self.ratings = RatingStore(self.settings)
        self.match_queue = MatchQueue(self.ratings, self.settings, self.events, self.rng, clock)
        self.resolver = BattleResolver(self.settings, self.events, self.rng, clock)
        self.tournaments = TournamentOrchestrator(
            self.resolver, self.directory, self.settings,
            announcer=self.announcer, snapshot_store=snapshot_store, rng=self.rng, clock=clock,
        )
        self.rating_updates: Deque[RatingUpdate] = deque(maxlen=RECENT_RATING_UPDATES)

        # Registered before any per-battle subscription so ratings and rewards
        # are settled before a tournament advances on the same completion.
        self.events.subscribe(MATCH_REQUESTED, self._on_match_requested)
        self.events.subscribe(MATCH_CREATED, self._on_match_created)
        self.events.subscribe(MATCH_EXPIRED, self._on_match_expired)
        self.events.subscribe(BATTLE_STARTED, self._on_battle_started)
        self.events.subscribe(BATTLE_COMPLETED, self._on_battle_completed)

    # ------------------------------------------------------------------
    # Players
    # ------------------------------------------------------------------

    def _player(self, player: PlayerRef) -> PlayerProfile:
        if isinstance(player, PlayerProfile):
            return player
        return self.directory.get(player)

    def _name(self, entity_id: str) -> str:
        profile = self.directory.find(entity_id)
        if profile:
            return profile.name
        if entity_id.startswith("monster:"):
            return entity_id.split(":", 1)[1]
        return entity_id

    async def register_profile(self, profile: PlayerProfile) -> PlayerProfile:
        return await self.directory.upsert(profile)

    async def restore(self) -> dict:
        """Reload ratings and player profiles from persistence after a restart"""
        if not self.snapshot_store:
            return {'ratings': 0, 'players': 0}
        players = self.directory.load(await self.snapshot_store.load_players())
        ratings = self.ratings.load(await self.snapshot_store.load_ratings())
        logger.info(f"Arena state restored: {players} players, {ratings} ratings")
        return {'ratings': ratings, 'players': players}

    # ------------------------------------------------------------------
    # Tournaments
    # ------------------------------------------------------------------

    async def schedule_tournament(self, tournament_type: str, options: Optional[dict] = None) -> Tournament:
        return await self.tournaments.schedule_tournament(tournament_type, options)

    async def register_player(self, tournament_id: str, player_id: str) -> Tournament:
        return await self.tournaments.register_player(tournament_id, player_id)

    async def start_tournament(self, tournament_id: str) -> Tournament:
        return await self.tournaments.start_tournament(tournament_id)

    def get_standings(self, tournament_id: str) -> List[str]:
        return self.tournaments.get_standings(tournament_id)

    # ------------------------------------------------------------------
    # Matchmaking
    # ------------------------------------------------------------------

    async def enqueue_match(self, player: PlayerRef, criteria: Optional[dict] = None) -> str:
        return await self.match_queue.enqueue(self._player(player), criteria)

    async def dequeue_match(self, player_id: str) -> bool:
        request = self.match_queue.get_request(player_id)
        removed = await self.match_queue.dequeue(player_id)
        if removed and self.snapshot_store:
            await self.snapshot_store.save_match_request(request)
        return removed

    async def tick(self) -> MatchmakingTickResult:
        """One matchmaking pass; pairings start battles through ``match_created``"""
        return await self.match_queue.process()

    # ------------------------------------------------------------------
    # Battles
    # ------------------------------------------------------------------

    async def start_pve_battle(self, player: PlayerRef, opponent_level: int = None) -> Battle:
        return await self.resolver.start_pve_battle(self._player(player), opponent_level)

    async def start_pvp_battle(self, player_a: PlayerRef, player_b: PlayerRef, ranked: bool = True) -> Battle:
        return await self.resolver.start_pvp_battle(self._player(player_a), self._player(player_b), ranked=ranked)

    async def submit_turn(self, battle_id: str, actor_id: str, action: Optional[BattleAction] = None) -> TurnResult:
        return await self.resolver.submit_turn(battle_id, actor_id, action)

    def get_leaderboard(self, limit: int = 10, network_id: Optional[str] = None) -> List[PlayerRating]:
        return self.ratings.leaderboard(limit=limit, network_id=network_id)

    async def sweep(self) -> dict:
        """
        Housekeeping pass: forfeit idle battles, then start (or cancel) due tournaments.

        Forfeits run first so a round stalled by an idle player can advance
        within the same pass.
        """
        forfeited = await self.resolver.expire_idle_battles()
        tournaments = await self.tournaments.start_due_tournaments()
        if forfeited or tournaments:
            logger.info(f"Sweep: {len(forfeited)} battles forfeited, {len(tournaments)} tournaments started/cancelled")
        return {'forfeited': forfeited, 'tournaments': tournaments}

    # ------------------------------------------------------------------
    # Event wiring
    # ------------------------------------------------------------------

    async def _on_match_requested(self, request: MatchRequest):
        if self.snapshot_store:
            await self.snapshot_store.save_match_request(request)

    async def _on_match_created(self, pairing: MatchPairing):
        player, opponent = pairing.player, pairing.opponent
        cross = " (cross-network)" if pairing.cross_network else ""
        await self.announcer.announce(
            'match_created',
            f"⚔️ Match found{cross}! {player.name} (Level {player.level}) vs "
            f"{opponent.name} (Level {opponent.level})",
            match_id=pairing.id,
            players=[player.player_id, opponent.player_id],
        )
        if self.snapshot_store:
            await self.snapshot_store.save_match_request(pairing.request)
            await self.snapshot_store.save_match_request(pairing.opponent_request)

        await self.resolver.start_pvp_battle(player, opponent, ranked=True, context={'match_id': pairing.id})

    async def _on_match_expired(self, request: MatchRequest):
        await self.announcer.announce(
            'match_expired',
            f"⌛ No opponent found for {request.player.name} - matchmaking request expired.",
            player_id=request.player_id,
        )
        if self.snapshot_store:
            await self.snapshot_store.save_match_request(request)

    async def _on_battle_started(self, battle: Battle):
        names = [self._name(pid) for pid in battle.participants]
        if battle.kind == BattleKind.PVE:
            message = f"⚔️ {names[0]} engages a {battle.opponent.name} (Level {battle.opponent.level})!"
        else:
            message = f"⚔️ {names[0]} and {names[1]} begin their battle!"
        await self.announcer.announce('battle_started', message, battle_id=battle.id)
        if self.snapshot_store:
            await self.snapshot_store.save_battle(battle)

    async def _on_battle_completed(self, battle: Battle):
        message = f"🏆 {self._name(battle.winner)} defeats {self._name(battle.loser)}"

        if battle.kind == BattleKind.PVP:
            if battle.ranked:
                update = self.ratings.record_outcome(battle.winner, battle.loser)
                self.rating_updates.append(update)
                message += (
                    f" ({EloCalculator.format_rating_change(update.winner_new - update.winner_old)} / "
                    f"{EloCalculator.format_rating_change(update.loser_new - update.loser_old)} rating)"
                )
                if self.snapshot_store:
                    await self.snapshot_store.save_rating(self.ratings.get(battle.winner))
                    await self.snapshot_store.save_rating(self.ratings.get(battle.loser))
            self.match_queue.record_result(battle.winner, battle.loser)

        rewards = battle.rewards
        if rewards.experience or rewards.gold or rewards.items:
            await self.directory.apply_rewards(battle.winner, rewards.experience, rewards.gold, rewards.items)

        await self.announcer.announce(
            'battle_completed',
            f"{message} by {battle.outcome.value}!",
            battle_id=battle.id,
            winner=battle.winner,
        )
        if self.snapshot_store:
            await self.snapshot_store.save_battle(battle)

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    def stats(self) -> dict:
        stats = {'players': len(self.directory), 'rated_players': len(self.ratings)}
        stats.update(self.match_queue.stats())
        stats.update(self.resolver.stats())
        stats.update(self.tournaments.stats())
        return stats
