"""Database-backed tests: snapshot store, configuration overrides and restart restore."""

import json

import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from arena.config import ArenaSettings
from arena.database.database import Database
from arena.database.models import AuditLog, BattleRecord
from arena.operations.rating_store import PlayerRating
from arena.operations.tournament_orchestrator import TournamentStatus
from arena.services.announcements import AnnouncementService
from arena.services.arena_engine import ArenaEngine
from arena.services.configuration import ConfigurationService
from arena.services.persistence import SnapshotStore


@pytest_asyncio.fixture
async def db():
    database = Database('sqlite+aiosqlite:///:memory:')
    await database.initialize()
    yield database
    await database.close()


@pytest.fixture
def store(db):
    return SnapshotStore(db.async_session)


class TestSnapshotStore:

    @pytest.mark.asyncio
    async def test_player_round_trip_with_updates(self, store, make_player):
        profile = make_player("alice", level=42, network="net2")
        await store.save_player(profile)
        profile.gold = 75
        profile.items.append({'name': 'Magic Gem', 'rarity': 'Common', 'value': 100})
        await store.save_player(profile)

        loaded = await store.load_players()

        assert len(loaded) == 1
        assert loaded[0].player_id == "net2:alice"
        assert loaded[0].level == 42
        assert loaded[0].gold == 75
        assert loaded[0].items == [{'name': 'Magic Gem', 'rarity': 'Common', 'value': 100}]

    @pytest.mark.asyncio
    async def test_ratings_round_trip(self, store):
        await store.save_rating(PlayerRating("net1:a", 965, wins=1))
        await store.save_rating(PlayerRating("net1:b", 935, losses=1))

        loaded = {r.player_id: r for r in await store.load_ratings()}

        assert loaded["net1:a"].rating == 965
        assert loaded["net1:a"].wins == 1
        assert loaded["net1:b"].losses == 1

    @pytest.mark.asyncio
    async def test_failed_write_is_swallowed(self, make_player):
        def broken_session_factory():
            raise RuntimeError("db gone")

        failing = SnapshotStore(broken_session_factory)

        assert await failing.save_player(make_player("alice")) is False


class TestConfigurationService:

    @pytest.mark.asyncio
    async def test_set_get_and_audit(self, db):
        service = ConfigurationService(db.async_session)
        await service.load_all()

        await service.set('rating.decay', 0.9, user_id=42)
        await service.set('rating.decay', 0.85, user_id=42)

        assert service.get('rating.decay') == 0.85
        assert service.get_by_category('rating') == {'decay': 0.85}

        async with db.get_session() as session:
            audits = (await session.execute(select(AuditLog))).scalars().all()
        assert len(audits) == 2
        details = json.loads(audits[-1].details)
        assert details == {'key': 'rating.decay', 'old_value': 0.9, 'new_value': 0.85}

    @pytest.mark.asyncio
    async def test_unknown_key_rejected(self, db):
        service = ConfigurationService(db.async_session)

        with pytest.raises(KeyError):
            await service.set('rating.unknown', 1, user_id=42)

    @pytest.mark.asyncio
    async def test_settings_from_overrides(self, db):
        service = ConfigurationService(db.async_session)
        await service.set('matchmaking.level_window', 8, user_id=1)
        await service.set('battle.critical_chance', 0.25, user_id=1)

        settings = ArenaSettings.from_config(service)

        assert settings.level_window == 8
        assert settings.critical_chance == 0.25
        assert settings.rating_k_factor == 32

    @pytest.mark.asyncio
    async def test_bad_override_value(self, db):
        service = ConfigurationService(db.async_session)
        await service.set('matchmaking.level_window', 'wide', user_id=1)

        with pytest.raises(ValueError):
            ArenaSettings.from_config(service)


class TestEngineRestore:

    @pytest.mark.asyncio
    async def test_ratings_and_profiles_survive_restart(self, db, settings, rng, clock, make_player):
        settings.critical_chance = 0.0
        settings.item_drop_chance = 0.0
        engine = ArenaEngine(settings, AnnouncementService(sinks=[], clock=clock),
                             snapshot_store=SnapshotStore(db.async_session), rng=rng, clock=clock)
        alice = await engine.register_profile(make_player("alice", network="net1"))
        bob = await engine.register_profile(make_player("bob", network="net2"))
        battle = await engine.start_pvp_battle(alice, bob)
        while engine.resolver.is_active(battle.id):
            await engine.submit_turn(battle.id, alice.player_id)

        restarted = ArenaEngine(settings, AnnouncementService(sinks=[], clock=clock),
                                snapshot_store=SnapshotStore(db.async_session), rng=rng, clock=clock)
        counts = await restarted.restore()

        assert counts == {'ratings': 2, 'players': 2}
        assert restarted.ratings.get_rating(alice.player_id) == 965
        assert restarted.ratings.get_rating(bob.player_id) == 935
        assert restarted.directory.get(alice.player_id).gold == 100

        async with db.get_session() as session:
            record = await session.get(BattleRecord, battle.id)
        assert record.status == 'completed'
        assert record.winner == alice.player_id
        assert len(json.loads(record.turns)) == 4

    @pytest.mark.asyncio
    async def test_tournament_snapshots(self, db, settings, rng, clock, make_player):
        store = SnapshotStore(db.async_session)
        engine = ArenaEngine(settings, AnnouncementService(sinks=[], clock=clock),
                             snapshot_store=store, rng=rng, clock=clock)
        tournament = await engine.schedule_tournament('daily')
        await engine.register_player(tournament.id, "net1:alice")

        scheduled = await store.load_tournament_snapshots(status=TournamentStatus.SCHEDULED.value)

        assert [s.id for s in scheduled] == [tournament.id]
        assert json.loads(scheduled[0].participants) == ["net1:alice"]
        assert await store.load_tournament_snapshots(status='completed') == []


class TestRetry:

    @pytest.mark.asyncio
    async def test_transient_errors_retried(self, monkeypatch):
        monkeypatch.setattr('arena.services.base.RETRY_BASE_DELAY', 0)
        service = SnapshotStore(None)
        calls = []

        async def flaky(value):
            calls.append(value)
            if len(calls) < 3:
                raise OperationalError("INSERT", {}, Exception("database is locked"))
            return value

        assert await service.execute_with_retry(flaky, 'ok') == 'ok'
        assert calls == ['ok', 'ok', 'ok']

    @pytest.mark.asyncio
    async def test_other_errors_not_retried(self):
        service = SnapshotStore(None)
        calls = []

        async def broken():
            calls.append(1)
            raise ValueError("bad row")

        with pytest.raises(ValueError):
            await service.execute_with_retry(broken)
        assert calls == [1]


class TestConfigurationReset:

    @pytest.mark.asyncio
    async def test_reset_removes_override(self, db):
        service = ConfigurationService(db.async_session)
        await service.set('battle.timeout_seconds', 600, user_id=7)

        await service.reset('battle.timeout_seconds', user_id=7)

        assert service.get('battle.timeout_seconds') is None
        history = await service.audit_history()
        assert [entry.action for entry in history] == ['config_reset', 'config_set']
        assert json.loads(history[0].details)['old_value'] == 600
