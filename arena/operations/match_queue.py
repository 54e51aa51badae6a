"""
Match Queue - opponent matchmaking for free-roaming players

Holds one pending request per player, partitions queued players into fixed
level brackets and pairs them on a periodic tick:

1. Candidates come from the requester's level bracket; when that bracket has
   no valid opponent the search widens to the requester's level window across
   every bracket.
2. Candidates outside the level window, among the requester's last few
   opponents, or (with ranking enabled) outside the rating range are dropped.
3. The remaining candidates are scored on level proximity, cross-network
   preference, rating proximity, recent activity and a random jitter; the best
   score wins.
4. Requests with no candidate stay queued until they are older than their
   maximum wait time, then they expire.

Requests are processed in FIFO submission order. ``match_created`` and
``match_expired`` are emitted on the event hub after the tick releases the
queue lock so handlers may enqueue again.
"""

import asyncio
import random
import time
import uuid
from collections import defaultdict, deque
from dataclasses import dataclass, field
from enum import Enum
from itertools import count
from typing import Callable, Deque, Dict, List, Optional, Set

from arena.config import ArenaSettings
from arena.operations.rating_store import RatingStore
from arena.services.player_directory import PlayerProfile
from arena.utils.events import EventHub, MATCH_CREATED, MATCH_EXPIRED, MATCH_REQUESTED
from arena.utils.exceptions import AlreadyQueued
from arena.utils.logger import setup_logger

logger = setup_logger(__name__)


class RequestStatus(Enum):
    QUEUED = "queued"
    MATCHED = "matched"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


@dataclass
class MatchCriteria:
    """Constraints a requester places on its opponent"""
    level_bracket: str
    min_level: int
    max_level: int
    prefer_cross_network: bool = True
    max_wait_time: float = 300
    rating_range: int = 100


@dataclass
class MatchRequest:
    id: str
    player: PlayerProfile
    submitted_at: float
    criteria: MatchCriteria
    sequence: int
    status: RequestStatus = RequestStatus.QUEUED

    @property
    def player_id(self) -> str:
        return self.player.player_id

    def age(self, now: float) -> float:
        return now - self.submitted_at


@dataclass
class LevelBracket:
    """Matchmaking-only partition of queued players by level"""
    bracket_id: str
    min_level: int
    max_level: int
    members: Set[str] = field(default_factory=set)

    def covers(self, level: int) -> bool:
        return self.min_level <= level <= self.max_level


@dataclass
class MatchHistoryEntry:
    opponent_id: str
    timestamp: float
    result: str = "pending"


@dataclass
class ScoredCandidate:
    request: MatchRequest
    score: float


@dataclass
class MatchPairing:
    """Two players taken off the queue to fight each other"""
    id: str
    request: MatchRequest
    opponent_request: MatchRequest
    score: float
    created_at: float

    @property
    def player(self) -> PlayerProfile:
        return self.request.player

    @property
    def opponent(self) -> PlayerProfile:
        return self.opponent_request.player

    @property
    def cross_network(self) -> bool:
        return self.player.network_id != self.opponent.network_id


@dataclass
class MatchmakingTickResult:
    pairings: List[MatchPairing] = field(default_factory=list)
    expired: List[MatchRequest] = field(default_factory=list)
    failures: int = 0


class MatchQueue:
    """Pending match requests, level brackets and the pairing loop"""

    def __init__(
        self,
        rating_store: RatingStore,
        settings: Optional[ArenaSettings] = None,
        events: Optional[EventHub] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.rating_store = rating_store
        self.settings = settings or ArenaSettings()
        self.events = events or EventHub()
        self.rng = rng or random.Random()
        self.clock = clock
        self.lock = asyncio.Lock()

        self._requests: Dict[str, MatchRequest] = {}  # player id -> active request
        self._history: Dict[str, Deque[MatchHistoryEntry]] = defaultdict(
            lambda: deque(maxlen=self.settings.match_history_limit)
        )
        self._sequence = count()
        self._brackets: Dict[str, LevelBracket] = {}
        self._bracket_order: List[str] = []
        self._setup_level_brackets()

    # ------------------------------------------------------------------
    # Level brackets
    # ------------------------------------------------------------------

    def _setup_level_brackets(self):
        size = self.settings.level_bracket_size
        max_level = self.settings.max_level
        if size <= 0:
            raise ValueError("level_bracket_size must be positive")
        # Layout is fixed for the life of the queue
        self._bracket_size = size
        self._bracket_max_level = max_level

        for level in range(1, max_level + 1, size):
            upper = min(level + size - 1, max_level)
            bracket = LevelBracket(f"bracket_{level}_{upper}", level, upper)
            self._brackets[bracket.bracket_id] = bracket
            self._bracket_order.append(bracket.bracket_id)

    def bracket_for_level(self, level: int) -> LevelBracket:
        """Bracket covering ``level``; levels are clamped to the range the brackets were built for"""
        level = max(1, min(level, self._bracket_max_level))
        index = (level - 1) // self._bracket_size
        return self._brackets[self._bracket_order[index]]

    @property
    def brackets(self) -> List[LevelBracket]:
        return [self._brackets[b] for b in self._bracket_order]

    def _remove_from_brackets(self, player_id: str):
        for bracket in self._brackets.values():
            bracket.members.discard(player_id)

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def build_criteria(self, player: PlayerProfile, options: Optional[dict] = None) -> MatchCriteria:
        """Fill in defaults for any criteria the caller did not give"""
        options = options or {}
        window = self.settings.level_window
        return MatchCriteria(
            level_bracket=options.get('level_bracket') or self.bracket_for_level(player.level).bracket_id,
            min_level=options.get('min_level', player.level - window),
            max_level=options.get('max_level', player.level + window),
            prefer_cross_network=options.get('prefer_cross_network', True),
            max_wait_time=options.get('max_wait_time', self.settings.max_wait_seconds),
            rating_range=options.get('rating_range', self.settings.rating_range),
        )

    async def enqueue(self, player: PlayerProfile, options: Optional[dict] = None) -> str:
        """
        Add or replace the player's pending request.

        Args:
            player: Requesting player's profile
            options: Optional criteria overrides (see build_criteria)

        Returns:
            The request id

        Raises:
            AlreadyQueued: If the player is queued and replacement is disabled
        """
        async with self.lock:
            existing = self._requests.get(player.player_id)
            if existing and not self.settings.allow_request_replacement:
                raise AlreadyQueued(player.player_id)

            if existing:
                existing.status = RequestStatus.CANCELLED
                self._remove_from_brackets(player.player_id)
                logger.info(f"Replacing match request {existing.id} for {player.player_id}")

            request = MatchRequest(
                id=f"request_{uuid.uuid4().hex[:12]}",
                player=player,
                submitted_at=self.clock(),
                criteria=self.build_criteria(player, options),
                sequence=next(self._sequence),
            )
            self._requests[player.player_id] = request
            self.bracket_for_level(player.level).members.add(player.player_id)

        logger.info(f"Match requested for {player.name} (Level {player.level}) [{request.id}]")
        await self.events.emit(MATCH_REQUESTED, request)
        return request.id

    async def dequeue(self, player_id: str) -> bool:
        """Cancel a pending request; returns False when there was none"""
        async with self.lock:
            request = self._requests.pop(player_id, None)
            if request is None:
                return False
            request.status = RequestStatus.CANCELLED
            self._remove_from_brackets(player_id)

        logger.info(f"Match request {request.id} cancelled by {player_id}")
        return True

    def get_request(self, player_id: str) -> Optional[MatchRequest]:
        return self._requests.get(player_id)

    def pending_requests(self) -> List[MatchRequest]:
        """Active requests in FIFO submission order"""
        return sorted(self._requests.values(), key=lambda r: (r.submitted_at, r.sequence))

    # ------------------------------------------------------------------
    # History & activity
    # ------------------------------------------------------------------

    def record_match(self, player_id: str, opponent_id: str, timestamp: float):
        self._history[player_id].append(MatchHistoryEntry(opponent_id=opponent_id, timestamp=timestamp))

    def record_result(self, winner_id: str, loser_id: str):
        """Mark the latest pending history entries of a pairing as decided"""
        for player_id, opponent_id, result in ((winner_id, loser_id, "win"), (loser_id, winner_id, "loss")):
            for entry in reversed(self._history.get(player_id, ())):
                if entry.opponent_id == opponent_id and entry.result == "pending":
                    entry.result = result
                    break

    def get_history(self, player_id: str) -> List[MatchHistoryEntry]:
        return list(self._history.get(player_id, ()))

    def recent_opponents(self, player_id: str) -> List[str]:
        entries = list(self._history.get(player_id, ()))
        window = self.settings.anti_repeat_window
        return [entry.opponent_id for entry in entries[-window:]] if window > 0 else []

    def recent_activity(self, player_id: str, now: float) -> int:
        """Matches recorded for the player within the activity window"""
        cutoff = now - self.settings.activity_window_seconds
        return sum(1 for entry in self._history.get(player_id, ()) if entry.timestamp > cutoff)

    # ------------------------------------------------------------------
    # Candidate search & scoring
    # ------------------------------------------------------------------

    def is_valid_opponent(self, request: MatchRequest, candidate: MatchRequest) -> bool:
        player, opponent, criteria = request.player, candidate.player, request.criteria

        if opponent.player_id == player.player_id:
            return False

        if opponent.level < criteria.min_level or opponent.level > criteria.max_level:
            return False

        if opponent.player_id in self.recent_opponents(player.player_id):
            return False

        if self.settings.enable_ranking:
            rating_diff = abs(self.rating_store.get_rating(player.player_id)
                              - self.rating_store.get_rating(opponent.player_id))
            if rating_diff > criteria.rating_range:
                return False

        return True

    def find_candidates(self, request: MatchRequest) -> List[MatchRequest]:
        """Valid opponents for a request, in FIFO order"""
        bracket = self._brackets.get(request.criteria.level_bracket)
        pool = []
        if bracket:
            pool = [self._requests[pid] for pid in bracket.members if pid in self._requests]
        candidates = [c for c in pool if self.is_valid_opponent(request, c)]

        if not candidates:
            # Widen to the explicit level window across all brackets
            criteria = request.criteria
            pool = [
                r for r in self._requests.values()
                if criteria.min_level <= r.player.level <= criteria.max_level
            ]
            candidates = [c for c in pool if self.is_valid_opponent(request, c)]

        candidates.sort(key=lambda r: (r.submitted_at, r.sequence))
        return candidates

    def score_candidate(self, request: MatchRequest, candidate: MatchRequest, now: float) -> float:
        player, opponent = request.player, candidate.player
        score = 0.0

        # Level proximity
        level_diff = abs(player.level - opponent.level)
        score += max(0, 100 - level_diff * 2)

        # Cross-network bonus
        if request.criteria.prefer_cross_network and player.network_id != opponent.network_id:
            score += 50

        # Rating proximity
        rating_diff = abs(self.rating_store.get_rating(player.player_id)
                          - self.rating_store.get_rating(opponent.player_id))
        score += max(0, 50 - rating_diff)

        # Activity bonus
        score += (self.recent_activity(player.player_id, now)
                  + self.recent_activity(opponent.player_id, now)) * 10

        # Jitter so the same two players are not always paired
        score += self.rng.uniform(0, 20)
        return score

    def select_opponent(self, request: MatchRequest, now: float) -> Optional[ScoredCandidate]:
        best = None
        for candidate in self.find_candidates(request):
            score = self.score_candidate(request, candidate, now)
            if best is None or score > best.score:
                best = ScoredCandidate(request=candidate, score=score)
        return best

    # ------------------------------------------------------------------
    # Processing loop
    # ------------------------------------------------------------------

    def _take(self, request: MatchRequest, status: RequestStatus):
        if self._requests.get(request.player_id) is request:
            del self._requests[request.player_id]
        self._remove_from_brackets(request.player_id)
        request.status = status

    def _pair(self, request: MatchRequest, chosen: ScoredCandidate, now: float) -> MatchPairing:
        opponent_request = chosen.request
        self._take(request, RequestStatus.MATCHED)
        self._take(opponent_request, RequestStatus.MATCHED)
        self.record_match(request.player_id, opponent_request.player_id, now)
        self.record_match(opponent_request.player_id, request.player_id, now)

        return MatchPairing(
            id=f"match_{uuid.uuid4().hex[:12]}",
            request=request,
            opponent_request=opponent_request,
            score=chosen.score,
            created_at=now,
        )

    async def process(self) -> MatchmakingTickResult:
        """
        Run one matchmaking tick over every pending request.

        A failure on one request is logged and does not stop the others.
        """
        result = MatchmakingTickResult()

        async with self.lock:
            now = self.clock()
            for request in self.pending_requests():
                # Already consumed as someone else's opponent this tick
                if self._requests.get(request.player_id) is not request:
                    continue
                try:
                    chosen = self.select_opponent(request, now)
                    if chosen:
                        result.pairings.append(self._pair(request, chosen, now))
                    elif request.age(now) > request.criteria.max_wait_time:
                        self._take(request, RequestStatus.EXPIRED)
                        result.expired.append(request)
                except Exception as e:
                    result.failures += 1
                    logger.error(f"Error processing match request {request.id}: {e}", exc_info=True)

        for pairing in result.pairings:
            logger.info(f"Match created: {pairing.player.name} vs {pairing.opponent.name} "
                        f"(score {pairing.score:.1f})")
            await self.events.emit(MATCH_CREATED, pairing)

        for request in result.expired:
            logger.warning(f"Match request expired: {request.player.name} [{request.id}]")
            await self.events.emit(MATCH_EXPIRED, request)

        return result

    def stats(self) -> dict:
        return {
            'queued_matches': len(self._requests),
            'level_brackets': len(self._brackets),
            'occupied_brackets': sum(1 for b in self._brackets.values() if b.members),
            'total_matches': sum(len(h) for h in self._history.values()),
        }
