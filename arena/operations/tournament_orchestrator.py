"""
Tournament Orchestrator - single-elimination brackets

Lifecycle: scheduled -> active -> completed (or scheduled -> cancelled when the
start time passes without enough entrants). Registration is open only while
scheduled; filling the roster starts the tournament immediately.

On start the roster is frozen and shuffled, then paired into round 0; an odd
player out receives a bye. Every non-bye match launches a ranked PvP battle
through the Battle Resolver and subscribes to that battle's completion. A
round is complete once every match is a bye or completed; its winners, in
match order, form the next round until a single champion remains.

Standings rank the champion first, then losers round by round from the final
backwards, in match order within a round. Players knocked out in the same
round are not ranked against each other beyond bracket order.
"""

import asyncio
import math
import random
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from arena.config import ArenaSettings
from arena.constants import TOURNAMENT_TYPES, PrizeTier, TournamentType
from arena.operations.battle_resolver import Battle, BattleResolver
from arena.services.player_directory import PlayerDirectory, PlayerProfile
from arena.utils.exceptions import (
    AlreadyRegistered, InsufficientParticipants, InvalidOptions, InvalidState,
    RegistrationClosed, TournamentFull, TournamentNotFound, UnknownTournamentType
)
from arena.utils.logger import setup_logger

logger = setup_logger(__name__)


class TournamentStatus(Enum):
    SCHEDULED = "scheduled"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class BracketMatchStatus(Enum):
    PENDING = "pending"
    ACTIVE = "active"
    BYE = "bye"
    COMPLETED = "completed"


@dataclass
class BracketMatch:
    id: str
    round: int
    slot_a: str
    slot_b: Optional[str]           # None means bye
    status: BracketMatchStatus = BracketMatchStatus.PENDING
    winner: Optional[str] = None
    battle_id: Optional[str] = None

    @property
    def is_bye(self) -> bool:
        return self.slot_b is None

    @property
    def is_resolved(self) -> bool:
        return self.status in (BracketMatchStatus.BYE, BracketMatchStatus.COMPLETED)

    @property
    def players(self) -> List[str]:
        return [p for p in (self.slot_a, self.slot_b) if p is not None]

    @property
    def loser(self) -> Optional[str]:
        if self.status != BracketMatchStatus.COMPLETED or self.is_bye:
            return None
        return self.slot_b if self.winner == self.slot_a else self.slot_a


@dataclass
class Prize:
    player_id: str
    position: int
    gold: int
    fraction: float


@dataclass
class Tournament:
    id: str
    type: str
    name: str
    description: str
    max_participants: int
    entry_fee: int
    duration_seconds: int
    prize_pool: Tuple[PrizeTier, ...]
    created_at: float
    start_time: float
    status: TournamentStatus = TournamentStatus.SCHEDULED
    participants: List[str] = field(default_factory=list)
    rounds: List[List[BracketMatch]] = field(default_factory=list)
    current_round: int = 0
    champion: Optional[str] = None
    started_at: Optional[float] = None
    ended_at: Optional[float] = None
    prizes: List[Prize] = field(default_factory=list)

    @property
    def total_pool(self) -> int:
        return len(self.participants) * self.entry_fee

    @property
    def current_matches(self) -> List[BracketMatch]:
        return self.rounds[self.current_round] if self.rounds else []

    def find_match(self, match_id: str) -> Optional[BracketMatch]:
        for bracket_round in self.rounds:
            for match in bracket_round:
                if match.id == match_id:
                    return match
        return None


PrizePoolSpec = Union[Sequence[PrizeTier], Sequence[Tuple[float, int]], Dict[float, int]]


def normalize_prize_pool(prize_pool: PrizePoolSpec) -> Tuple[PrizeTier, ...]:
    """Accept tiers, (fraction, places) pairs or a {fraction: places} map, in place order"""
    if isinstance(prize_pool, dict):
        items: Iterable = prize_pool.items()
    else:
        items = prize_pool

    tiers = []
    for item in items:
        tier = item if isinstance(item, PrizeTier) else PrizeTier(float(item[0]), int(item[1]))
        if tier.fraction < 0 or tier.places < 1:
            raise InvalidOptions("prize fractions must be >= 0 and cover at least one place")
        tiers.append(tier)

    if sum(t.fraction * t.places for t in tiers) > 1 + 1e-9:
        raise InvalidOptions("prize pool pays out more than 100%")
    return tuple(tiers)


def calculate_prizes(standings: Sequence[str], prize_pool: Sequence[PrizeTier], total_pool: int) -> List[Prize]:
    """
    Walk the prize tiers in place order; each place pays floor(total * fraction).

    Places beyond the tracked standings pay nothing.
    """
    prizes = []
    position = 1
    for tier in prize_pool:
        for _ in range(tier.places):
            if position <= len(standings):
                prizes.append(Prize(
                    player_id=standings[position - 1],
                    position=position,
                    gold=math.floor(round(total_pool * tier.fraction, 6)),
                    fraction=tier.fraction,
                ))
            position += 1
    return prizes


def position_text(position: int) -> str:
    if 10 <= position % 100 <= 20:
        suffix = 'th'
    else:
        suffix = {1: 'st', 2: 'nd', 3: 'rd'}.get(position % 10, 'th')
    return f"{position}{suffix}"


class TournamentOrchestrator:
    """Owns bracket and match lifecycle for every tournament"""

    def __init__(
        self,
        resolver: BattleResolver,
        directory: PlayerDirectory,
        settings: Optional[ArenaSettings] = None,
        announcer=None,
        snapshot_store=None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.time,
        tournament_types: Dict[str, TournamentType] = None,
    ):
        self.resolver = resolver
        self.directory = directory
        self.settings = settings or ArenaSettings()
        self.announcer = announcer
        self.snapshot_store = snapshot_store
        self.rng = rng or random.Random()
        self.clock = clock
        self.tournament_types = tournament_types or TOURNAMENT_TYPES
        self.lock = asyncio.Lock()

        self._tournaments: Dict[str, Tournament] = {}
        self._battle_index: Dict[str, Tuple[str, str]] = {}  # battle id -> (tournament id, match id)

    # ------------------------------------------------------------------
    # Side effects
    # ------------------------------------------------------------------

    async def _announce(self, event: str, message: str, **payload):
        if self.announcer:
            await self.announcer.announce(event, message, **payload)

    async def _persist(self, tournament: Tournament):
        if self.snapshot_store:
            await self.snapshot_store.save_tournament(tournament)

    def _profile(self, player_id: str) -> PlayerProfile:
        profile = self.directory.find(player_id)
        if profile is None:
            network_id = player_id.split(':', 1)[0]
            profile = PlayerProfile(player_id=player_id, name=player_id, network_id=network_id)
        return profile

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get_tournament(self, tournament_id: str) -> Tournament:
        tournament = self._tournaments.get(tournament_id)
        if tournament is None:
            raise TournamentNotFound(tournament_id)
        return tournament

    def list_tournaments(self, status: Optional[TournamentStatus] = None) -> List[Tournament]:
        tournaments = list(self._tournaments.values())
        if status is not None:
            tournaments = [t for t in tournaments if t.status == status]
        return sorted(tournaments, key=lambda t: t.created_at)

    def get_match(self, tournament_id: str, match_id: str) -> BracketMatch:
        match = self.get_tournament(tournament_id).find_match(match_id)
        if match is None:
            raise TournamentNotFound(f"{tournament_id}/{match_id}")
        return match

    # ------------------------------------------------------------------
    # Scheduling & registration
    # ------------------------------------------------------------------

    async def schedule_tournament(self, tournament_type: str, options: Optional[dict] = None) -> Tournament:
        """
        Create a tournament in the scheduled state and announce it.

        Args:
            tournament_type: Key into the tournament type table ("daily", "weekly", ...)
            options: Overrides for max_participants, entry_fee, duration, prize_pool, delay

        Raises:
            UnknownTournamentType: For an unconfigured type
            InvalidOptions: When the overrides cannot produce a startable tournament
        """
        template = self.tournament_types.get(tournament_type)
        if template is None:
            raise UnknownTournamentType(tournament_type)

        options = options or {}
        max_participants = int(options.get('max_participants', template.max_participants))
        entry_fee = int(options.get('entry_fee', template.entry_fee))
        minimum = self.settings.min_tournament_participants

        if max_participants < max(2, minimum):
            raise InvalidOptions(f"max participants must be at least {max(2, minimum)}")
        if entry_fee < 0:
            raise InvalidOptions("entry fee cannot be negative")

        now = self.clock()
        tournament = Tournament(
            id=f"tournament_{uuid.uuid4().hex[:12]}",
            type=tournament_type,
            name=options.get('name', template.name),
            description=template.description,
            max_participants=max_participants,
            entry_fee=entry_fee,
            duration_seconds=int(options.get('duration', template.duration_seconds)),
            prize_pool=normalize_prize_pool(options.get('prize_pool', template.prize_pool)),
            created_at=now,
            start_time=now + options.get('delay', self.settings.tournament_start_delay_seconds),
        )

        async with self.lock:
            self._tournaments[tournament.id] = tournament

        logger.info(f"Tournament scheduled: {tournament.name} ({tournament.id})")
        await self._announce(
            'tournament_scheduled',
            f"🏆 NEW TOURNAMENT ANNOUNCED! {tournament.name} - Entry Fee: {tournament.entry_fee} gold - "
            f"Max Participants: {tournament.max_participants} - Register now! 🏆",
            tournament_id=tournament.id,
        )
        await self._persist(tournament)
        return tournament

    async def register_player(self, tournament_id: str, player_id: str) -> Tournament:
        """
        Add a player to a scheduled tournament; starts it when the roster fills.

        Raises:
            TournamentNotFound, RegistrationClosed, TournamentFull, AlreadyRegistered
        """
        async with self.lock:
            tournament = self.get_tournament(tournament_id)

            if tournament.status != TournamentStatus.SCHEDULED:
                raise RegistrationClosed(tournament_id, tournament.status.value)
            if len(tournament.participants) >= tournament.max_participants:
                raise TournamentFull(tournament_id, tournament.max_participants)
            if player_id in tournament.participants:
                raise AlreadyRegistered(tournament_id, player_id)

            tournament.participants.append(player_id)
            logger.info(f"Player {player_id} registered for tournament {tournament_id}")
            await self._announce(
                'player_registered',
                f"📝 {self._profile(player_id).name} has registered for {tournament.name}! "
                f"({len(tournament.participants)}/{tournament.max_participants}) 📝",
                tournament_id=tournament_id,
                player_id=player_id,
            )
            await self._persist(tournament)

            full = len(tournament.participants) >= tournament.max_participants
            if full and len(tournament.participants) >= self.settings.min_tournament_participants:
                await self._start(tournament)

        return tournament

    # ------------------------------------------------------------------
    # Bracket lifecycle
    # ------------------------------------------------------------------

    async def start_tournament(self, tournament_id: str) -> Tournament:
        """
        Close registration, build the bracket and launch round 0.

        Raises:
            TournamentNotFound, InvalidState, InsufficientParticipants
        """
        async with self.lock:
            tournament = self.get_tournament(tournament_id)
            await self._start(tournament)
        return tournament

    async def start_due_tournaments(self) -> List[Tournament]:
        """
        Start scheduled tournaments whose start time has passed.

        A tournament without enough participants at its start time is cancelled.
        """
        touched = []
        async with self.lock:
            now = self.clock()
            due = [t for t in self._tournaments.values()
                   if t.status == TournamentStatus.SCHEDULED and t.start_time <= now]
            for tournament in due:
                try:
                    await self._start(tournament)
                except InsufficientParticipants as e:
                    tournament.status = TournamentStatus.CANCELLED
                    tournament.ended_at = now
                    logger.info(f"Tournament {tournament.id} cancelled: {e}")
                    await self._announce(
                        'tournament_cancelled',
                        f"❌ {tournament.name} was cancelled - not enough participants "
                        f"({e.registered}/{e.minimum}).",
                        tournament_id=tournament.id,
                    )
                    await self._persist(tournament)
                except Exception as e:
                    logger.error(f"Error starting tournament {tournament.id}: {e}", exc_info=True)
                    continue
                touched.append(tournament)
        return touched

    async def _start(self, tournament: Tournament):
        if tournament.status != TournamentStatus.SCHEDULED:
            raise InvalidState(
                f"Tournament '{tournament.id}' cannot start from status {tournament.status.value}",
                "❌ This tournament has already started or finished."
            )
        minimum = self.settings.min_tournament_participants
        if len(tournament.participants) < minimum:
            raise InsufficientParticipants(tournament.id, len(tournament.participants), minimum)

        tournament.status = TournamentStatus.ACTIVE
        tournament.started_at = self.clock()

        seeded = list(tournament.participants)
        self.rng.shuffle(seeded)
        tournament.rounds = [self._build_round(seeded, 0)]
        tournament.current_round = 0

        logger.info(f"Tournament started: {tournament.name} ({tournament.id}) "
                    f"with {len(tournament.participants)} participants")
        await self._announce(
            'tournament_started',
            f"🏆 TOURNAMENT STARTED! {tournament.name} with {len(tournament.participants)} participants! "
            f"May the best warrior win! 🏆",
            tournament_id=tournament.id,
        )
        await self._start_round(tournament)

    def _build_round(self, players: Sequence[str], round_index: int) -> List[BracketMatch]:
        """Pair consecutive players; an odd player out gets a bye"""
        matches = []
        for i in range(0, len(players), 2):
            match_id = f"match_{uuid.uuid4().hex[:12]}"
            if i + 1 < len(players):
                matches.append(BracketMatch(id=match_id, round=round_index,
                                            slot_a=players[i], slot_b=players[i + 1]))
            else:
                matches.append(BracketMatch(id=match_id, round=round_index, slot_a=players[i],
                                            slot_b=None, status=BracketMatchStatus.BYE,
                                            winner=players[i]))
        return matches

    async def _start_round(self, tournament: Tournament):
        for match in tournament.current_matches:
            if match.status != BracketMatchStatus.PENDING:
                continue
            battle = await self.resolver.start_pvp_battle(
                self._profile(match.slot_a),
                self._profile(match.slot_b),
                ranked=True,
                context={'tournament_id': tournament.id, 'match_id': match.id},
            )
            match.battle_id = battle.id
            match.status = BracketMatchStatus.ACTIVE
            self._battle_index[battle.id] = (tournament.id, match.id)
            self.resolver.on_completed(battle.id, self._on_battle_completed)

        pairings = ", ".join(
            f"{m.slot_a} vs {m.slot_b}" if not m.is_bye else f"{m.slot_a} (bye)"
            for m in tournament.current_matches
        )
        logger.info(f"Round {tournament.current_round + 1} started for tournament {tournament.id}: {pairings}")
        await self._announce(
            'round_started',
            f"⚔️ {tournament.name} - Round {tournament.current_round + 1} begins: {pairings}",
            tournament_id=tournament.id,
            round=tournament.current_round,
        )
        await self._persist(tournament)
        await self._check_round_complete(tournament)

    async def _on_battle_completed(self, battle: Battle):
        async with self.lock:
            ref = self._battle_index.pop(battle.id, None)
            if ref is None:
                return
            tournament_id, match_id = ref
            tournament = self._tournaments.get(tournament_id)
            if tournament is None or tournament.status != TournamentStatus.ACTIVE:
                return
            match = tournament.find_match(match_id)
            if match is None or match.status != BracketMatchStatus.ACTIVE:
                return
            await self._resolve_match(tournament, match, battle.winner)

    async def report_match_winner(self, tournament_id: str, match_id: str, winner_id: str) -> BracketMatch:
        """
        Decide an active bracket match without its battle (admin override).

        The match battle is cancelled, so it never rates or rewards anyone.

        Raises:
            TournamentNotFound: Unknown tournament or match id
            InvalidState: Match not active or winner not in the match
        """
        async with self.lock:
            tournament = self.get_tournament(tournament_id)
            match = tournament.find_match(match_id)
            if match is None:
                raise TournamentNotFound(f"{tournament_id}/{match_id}")
            if match.status != BracketMatchStatus.ACTIVE:
                raise InvalidState(
                    f"Match '{match_id}' is {match.status.value}",
                    "❌ That match is not in progress."
                )
            if winner_id not in match.players:
                raise InvalidState(
                    f"'{winner_id}' is not playing match '{match_id}'",
                    "❌ The winner must be one of the match players."
                )
            if match.battle_id:
                self._battle_index.pop(match.battle_id, None)
                await self.resolver.cancel(match.battle_id)
            await self._resolve_match(tournament, match, winner_id)
            return match

    async def _resolve_match(self, tournament: Tournament, match: BracketMatch, winner_id: str):
        match.winner = winner_id
        match.status = BracketMatchStatus.COMPLETED

        logger.info(f"Tournament match completed: {match.slot_a} vs {match.slot_b}, Winner: {winner_id}")
        await self._announce(
            'tournament_match_completed',
            f"⚔️ {tournament.name}: {self._profile(winner_id).name} defeats "
            f"{self._profile(match.loser).name}!",
            tournament_id=tournament.id,
            match_id=match.id,
            winner=winner_id,
        )
        await self._persist(tournament)
        await self._check_round_complete(tournament)

    async def _check_round_complete(self, tournament: Tournament):
        current = tournament.current_matches
        if any(not m.is_resolved for m in current):
            return

        winners = [m.winner for m in current]
        if len(winners) == 1:
            await self._complete(tournament, winners[0])
            return

        logger.info(f"Round {tournament.current_round + 1} completed for tournament {tournament.id}")
        tournament.current_round += 1
        tournament.rounds.append(self._build_round(winners, tournament.current_round))
        await self._start_round(tournament)

    async def _complete(self, tournament: Tournament, champion: str):
        tournament.status = TournamentStatus.COMPLETED
        tournament.champion = champion
        tournament.ended_at = self.clock()
        tournament.prizes = calculate_prizes(self.standings(tournament), tournament.prize_pool,
                                             tournament.total_pool)

        logger.info(f"Tournament completed: {tournament.name}, Winner: {champion}")
        await self._announce(
            'tournament_completed',
            f"🏆 TOURNAMENT COMPLETED! {tournament.name} - Winner: {self._profile(champion).name}! "
            f"Congratulations! 🏆",
            tournament_id=tournament.id,
            champion=champion,
        )

        for prize in tournament.prizes:
            await self.directory.apply_rewards(prize.player_id, gold=prize.gold)
            await self._announce(
                'tournament_prize',
                f"🎁 {self._profile(prize.player_id).name} earned {prize.gold} gold for "
                f"{position_text(prize.position)} place in {tournament.name}! 🎁",
                tournament_id=tournament.id,
                player_id=prize.player_id,
                gold=prize.gold,
            )
        await self._persist(tournament)

    # ------------------------------------------------------------------
    # Standings & stats
    # ------------------------------------------------------------------

    def standings(self, tournament: Tournament) -> List[str]:
        if not tournament.rounds:
            return list(tournament.participants)

        ordered = []
        for match in tournament.current_matches:
            ordered.extend([match.winner] if match.is_resolved else match.players)
        for bracket_round in reversed(tournament.rounds):
            for match in bracket_round:
                if match.loser:
                    ordered.append(match.loser)
        return ordered

    def get_standings(self, tournament_id: str) -> List[str]:
        return self.standings(self.get_tournament(tournament_id))

    def stats(self) -> dict:
        by_status = {status: 0 for status in TournamentStatus}
        for tournament in self._tournaments.values():
            by_status[tournament.status] += 1
        return {
            'active_tournaments': by_status[TournamentStatus.ACTIVE],
            'scheduled_tournaments': by_status[TournamentStatus.SCHEDULED],
            'completed_tournaments': by_status[TournamentStatus.COMPLETED],
            'cancelled_tournaments': by_status[TournamentStatus.CANCELLED],
            'total_participants': sum(
                len(t.participants) for t in self._tournaments.values()
                if t.status == TournamentStatus.ACTIVE
            ),
        }
