"""End-to-end tests of the engine wiring: matchmaking -> battle -> ratings, rewards and announcements."""

import pytest

from arena.operations.battle_resolver import BattleKind, BattleOutcome
from arena.operations.tournament_orchestrator import TournamentStatus
from arena.services.announcements import AnnouncementService
from arena.services.arena_engine import ArenaEngine
from arena.utils.exceptions import PlayerNotFound


class RecordingSink:
    def __init__(self):
        self.events = []

    async def send(self, announcement):
        self.events.append(announcement.event)


class BrokenSink:
    async def send(self, announcement):
        raise ConnectionError("channel unavailable")


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def engine(settings, sink, rng, clock):
    settings.critical_chance = 0.0
    settings.item_drop_chance = 0.0
    return ArenaEngine(
        settings,
        announcer=AnnouncementService([sink], clock=clock),
        rng=rng,
        clock=clock,
    )


async def fight(engine, battle, attacker):
    while engine.resolver.is_active(battle.id):
        await engine.submit_turn(battle.id, attacker)


class TestMatchmadeBattles:

    @pytest.mark.asyncio
    async def test_pairing_starts_ranked_battle(self, engine, make_player, sink):
        alice = await engine.register_profile(make_player("alice", network="net1"))
        bob = await engine.register_profile(make_player("bob", network="net2"))
        await engine.enqueue_match(alice)
        await engine.enqueue_match(bob.player_id)

        result = await engine.tick()

        assert len(result.pairings) == 1
        battle = engine.resolver.get_active_battle_for(alice.player_id)
        assert battle is not None
        assert battle.kind == BattleKind.PVP
        assert battle.ranked
        assert battle.context == {'match_id': result.pairings[0].id}
        assert set(battle.participants) == {alice.player_id, bob.player_id}
        assert sink.events[-2:] == ['match_created', 'battle_started']

    @pytest.mark.asyncio
    async def test_completed_battle_settles_ratings_history_and_rewards(self, engine, make_player, sink):
        alice = await engine.register_profile(make_player("alice", network="net1"))
        bob = await engine.register_profile(make_player("bob", network="net2"))
        await engine.enqueue_match(alice)
        await engine.enqueue_match(bob)
        await engine.tick()
        battle = engine.resolver.get_active_battle_for(alice.player_id)

        await fight(engine, battle, alice.player_id)

        assert battle.winner == alice.player_id
        assert battle.outcome == BattleOutcome.KNOCKOUT
        assert engine.ratings.get_rating(alice.player_id) == 965
        assert engine.ratings.get_rating(bob.player_id) == 935
        assert engine.match_queue.get_history(alice.player_id)[-1].result == "win"
        assert engine.match_queue.get_history(bob.player_id)[-1].result == "loss"
        # Level 10 vs level 10: 20 * 5 gold, 20 * 10 exp
        assert alice.gold == 100
        assert alice.experience == 200
        assert bob.gold == 0
        assert engine.rating_updates[-1].winner_change == 16
        assert sink.events[-1] == 'battle_completed'

    @pytest.mark.asyncio
    async def test_unranked_duel_leaves_ratings_alone(self, engine, make_player):
        alice = await engine.register_profile(make_player("alice"))
        bob = await engine.register_profile(make_player("bob"))

        battle = await engine.start_pvp_battle(alice.player_id, bob.player_id, ranked=False)
        await fight(engine, battle, bob.player_id)

        assert battle.winner == bob.player_id
        assert engine.ratings.get(bob.player_id) is None
        assert engine.ratings.get_rating(alice.player_id) == 1000
        assert bob.gold == 100

    @pytest.mark.asyncio
    async def test_leaderboard(self, engine, make_player):
        alice = await engine.register_profile(make_player("alice", network="net1"))
        bob = await engine.register_profile(make_player("bob", network="net2"))
        battle = await engine.start_pvp_battle(alice, bob)
        await fight(engine, battle, alice.player_id)

        assert [r.player_id for r in engine.get_leaderboard()] == [alice.player_id, bob.player_id]
        assert [r.player_id for r in engine.get_leaderboard(network_id="net2")] == [bob.player_id]

    @pytest.mark.asyncio
    async def test_dequeue(self, engine, make_player):
        alice = await engine.register_profile(make_player("alice"))
        await engine.enqueue_match(alice)

        assert await engine.dequeue_match(alice.player_id) is True
        assert await engine.dequeue_match(alice.player_id) is False

    @pytest.mark.asyncio
    async def test_unknown_player_id(self, engine):
        with pytest.raises(PlayerNotFound):
            await engine.enqueue_match("net1:nobody")


class TestPveBattles:

    @pytest.mark.asyncio
    async def test_pve_by_player_id(self, engine, make_player, sink):
        alice = await engine.register_profile(make_player("alice", level=10))

        battle = await engine.start_pve_battle(alice.player_id)

        assert battle.kind == BattleKind.PVE
        assert not battle.ranked
        assert 0 <= battle.monster.level <= 20
        assert 'battle_started' in sink.events

    @pytest.mark.asyncio
    async def test_pve_monster_win_grants_nothing(self, engine, make_player, clock):
        alice = await engine.register_profile(make_player("alice", level=10))
        battle = await engine.start_pve_battle(alice.player_id)

        clock.advance(engine.settings.battle_timeout_seconds + 1)
        await engine.sweep()

        assert battle.winner == battle.opponent.entity_id
        assert battle.outcome == BattleOutcome.FORFEIT
        assert alice.gold == 0
        assert alice.experience == 0
        assert len(engine.ratings) == 0


class TestAnnouncementIsolation:

    @pytest.mark.asyncio
    async def test_failing_sink_does_not_break_operations(self, settings, rng, clock, make_player, sink):
        settings.critical_chance = 0.0
        engine = ArenaEngine(
            settings,
            announcer=AnnouncementService([BrokenSink(), sink], clock=clock),
            rng=rng,
            clock=clock,
        )
        alice = await engine.register_profile(make_player("alice"))
        bob = await engine.register_profile(make_player("bob"))

        battle = await engine.start_pvp_battle(alice, bob)
        await fight(engine, battle, alice.player_id)

        assert battle.winner == alice.player_id
        assert engine.ratings.get_rating(alice.player_id) == 965
        assert sink.events == ['battle_started', 'battle_completed']
        assert [a.event for a in engine.announcer.recent] == ['battle_started', 'battle_completed']


class TestTournamentsThroughEngine:

    @pytest.mark.asyncio
    async def test_tournament_battles_are_ranked_and_rewarded(self, engine, make_player):
        players = [await engine.register_profile(make_player(f"p{i}")) for i in range(4)]
        tournament = await engine.schedule_tournament('daily', {'max_participants': 4, 'entry_fee': 0})
        for player in players:
            await engine.register_player(tournament.id, player.player_id)

        while tournament.status == TournamentStatus.ACTIVE:
            for match in list(tournament.current_matches):
                if match.battle_id and engine.resolver.is_active(match.battle_id):
                    await engine.submit_turn(match.battle_id, match.slot_a)

        champion = engine.directory.get(tournament.champion)
        assert engine.ratings.get(champion.player_id).wins == 2
        assert champion.gold == 200
        assert engine.get_standings(tournament.id)[0] == champion.player_id

    @pytest.mark.asyncio
    async def test_sweep_forfeits_stalled_round(self, engine, make_player, clock):
        players = [await engine.register_profile(make_player(f"p{i}")) for i in range(4)]
        tournament = await engine.schedule_tournament('daily', {'max_participants': 4})
        for player in players:
            await engine.register_player(tournament.id, player.player_id)
        first, second = tournament.rounds[0]

        # slot_b of the first match acts once, then everyone goes idle
        await engine.submit_turn(first.battle_id, first.slot_b)
        clock.advance(engine.settings.battle_timeout_seconds + 1)

        result = await engine.sweep()

        assert len(result['forfeited']) == 2
        assert first.winner == first.slot_b
        assert second.winner == second.slot_a
        assert tournament.current_round == 1
        final = tournament.current_matches[0]
        assert final.players == [first.slot_b, second.slot_a]
        assert engine.resolver.is_active(final.battle_id)

    @pytest.mark.asyncio
    async def test_admin_decided_match_is_never_rated(self, engine, make_player, clock):
        players = [await engine.register_profile(make_player(f"p{i}")) for i in range(4)]
        tournament = await engine.schedule_tournament('daily', {'max_participants': 4})
        for player in players:
            await engine.register_player(tournament.id, player.player_id)
        first = tournament.rounds[0][0]
        battle_id = first.battle_id

        await engine.tournaments.report_match_winner(tournament.id, first.id, first.slot_b)
        clock.advance(engine.settings.battle_timeout_seconds + 1)
        result = await engine.sweep()

        assert battle_id not in [b.id for b in result['forfeited']]
        assert not engine.resolver.is_active(battle_id)
        assert first.winner == first.slot_b
        for player_id in first.players:
            assert engine.ratings.get_rating(player_id) == engine.settings.starting_rating
            assert engine.directory.get(player_id).gold == 0

    @pytest.mark.asyncio
    async def test_sweep_starts_due_tournaments(self, engine, make_player, clock):
        players = [await engine.register_profile(make_player(f"p{i}")) for i in range(4)]
        tournament = await engine.schedule_tournament('daily')
        for player in players:
            await engine.register_player(tournament.id, player.player_id)

        clock.advance(engine.settings.tournament_start_delay_seconds + 1)
        result = await engine.sweep()

        assert result['tournaments'] == [tournament]
        assert tournament.status == TournamentStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_stats(self, engine, make_player):
        alice = await engine.register_profile(make_player("alice"))
        bob = await engine.register_profile(make_player("bob"))
        await engine.start_pvp_battle(alice, bob)
        await engine.schedule_tournament('daily')

        stats = engine.stats()

        assert stats['players'] == 2
        assert stats['active_battles'] == 1
        assert stats['scheduled_tournaments'] == 1
