"""
Snapshot persistence for the arena engine.

The engine keeps its working state in memory; this service mirrors profiles,
ratings, match requests, battles and tournament brackets to the database so
that ratings and profiles survive a restart. Writes are best-effort: a failed
write is logged and never propagates into the game flow.
"""

import json
import logging
from dataclasses import asdict
from typing import List

from sqlalchemy import select

from arena.database.models import (
    BattleRecord, MatchRequestRecord, PlayerProfileRecord, PlayerRatingRecord, TournamentSnapshot
)
from arena.operations.battle_resolver import Battle
from arena.operations.match_queue import MatchRequest
from arena.operations.rating_store import PlayerRating
from arena.operations.tournament_orchestrator import Tournament
from arena.services.base import BaseService
from arena.services.player_directory import PlayerProfile

logger = logging.getLogger(__name__)


def _bracket_json(tournament: Tournament) -> str:
    return json.dumps([
        [{
            'id': match.id,
            'slot_a': match.slot_a,
            'slot_b': match.slot_b,
            'status': match.status.value,
            'winner': match.winner,
            'battle_id': match.battle_id,
        } for match in bracket_round]
        for bracket_round in tournament.rounds
    ])


class SnapshotStore(BaseService):
    """Best-effort upserts of engine state, plus restart loading"""

    async def _merge(self, record):
        async with self.get_session() as session:
            await session.merge(record)

    async def _save(self, record, description: str) -> bool:
        try:
            await self.execute_with_retry(self._merge, record)
            return True
        except Exception as e:
            logger.error(f"Failed to persist {description}: {e}", exc_info=True)
            return False

    async def save_player(self, profile: PlayerProfile) -> bool:
        return await self._save(PlayerProfileRecord(
            player_id=profile.player_id,
            name=profile.name,
            network_id=profile.network_id,
            level=profile.level,
            hp=profile.hp,
            experience=profile.experience,
            gold=profile.gold,
            items=json.dumps(profile.items),
        ), f"player {profile.player_id}")

    async def save_rating(self, rating: PlayerRating) -> bool:
        return await self._save(PlayerRatingRecord(
            player_id=rating.player_id,
            rating=rating.rating,
            wins=rating.wins,
            losses=rating.losses,
        ), f"rating {rating.player_id}")

    async def save_match_request(self, request: MatchRequest) -> bool:
        return await self._save(MatchRequestRecord(
            id=request.id,
            player_id=request.player_id,
            level=request.player.level,
            level_bracket=request.criteria.level_bracket,
            criteria=json.dumps(asdict(request.criteria)),
            status=request.status.value,
            submitted_at=request.submitted_at,
        ), f"match request {request.id}")

    async def save_battle(self, battle: Battle) -> bool:
        return await self._save(BattleRecord(
            id=battle.id,
            kind=battle.kind.value,
            participants=json.dumps(battle.participants),
            opponent=battle.opponent.entity_id if battle.opponent else None,
            ranked=battle.ranked,
            status=battle.status.value,
            winner=battle.winner,
            loser=battle.loser,
            outcome=battle.outcome.value if battle.outcome else None,
            turns=json.dumps([asdict(turn) for turn in battle.turns]),
            rewards=json.dumps(asdict(battle.rewards)),
            context=json.dumps(battle.context),
            started_at=battle.started_at,
            ended_at=battle.ended_at,
        ), f"battle {battle.id}")

    async def save_tournament(self, tournament: Tournament) -> bool:
        return await self._save(TournamentSnapshot(
            id=tournament.id,
            type=tournament.type,
            name=tournament.name,
            status=tournament.status.value,
            entry_fee=tournament.entry_fee,
            max_participants=tournament.max_participants,
            participants=json.dumps(tournament.participants),
            bracket=_bracket_json(tournament),
            champion=tournament.champion,
            prizes=json.dumps([asdict(prize) for prize in tournament.prizes]),
            start_time=tournament.start_time,
            ended_at=tournament.ended_at,
        ), f"tournament {tournament.id}")

    async def load_ratings(self) -> List[PlayerRating]:
        async with self.get_session() as session:
            result = await session.execute(select(PlayerRatingRecord))
            return [
                PlayerRating(player_id=r.player_id, rating=r.rating, wins=r.wins or 0, losses=r.losses or 0)
                for r in result.scalars().all()
            ]

    async def load_players(self) -> List[PlayerProfile]:
        profiles = []
        async with self.get_session() as session:
            result = await session.execute(select(PlayerProfileRecord))
            for record in result.scalars().all():
                try:
                    items = json.loads(record.items or '[]')
                except json.JSONDecodeError:
                    logger.warning(f"Invalid item JSON for player '{record.player_id}', resetting items")
                    items = []
                profiles.append(PlayerProfile(
                    player_id=record.player_id,
                    name=record.name,
                    network_id=record.network_id,
                    level=record.level or 1,
                    hp=record.hp,
                    experience=record.experience or 0,
                    gold=record.gold or 0,
                    items=items,
                ))
        return profiles

    async def load_tournament_snapshots(self, status: str = None) -> List[TournamentSnapshot]:
        """Raw bracket snapshots, for history and inspection"""
        async with self.get_session() as session:
            query = select(TournamentSnapshot)
            if status:
                query = query.where(TournamentSnapshot.status == status)
            result = await session.execute(query)
            return list(result.scalars().all())
