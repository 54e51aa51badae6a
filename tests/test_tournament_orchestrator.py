"""Tests for tournament scheduling, registration, bracket progression, standings and prizes."""

import math

import pytest

from arena.constants import PrizeTier
from arena.operations.battle_resolver import BattleResolver, BattleStatus
from arena.operations.tournament_orchestrator import (
    BracketMatchStatus, TournamentOrchestrator, TournamentStatus, calculate_prizes, normalize_prize_pool
)
from arena.services.announcements import AnnouncementService
from arena.services.player_directory import PlayerDirectory
from arena.utils.events import EventHub
from arena.utils.exceptions import (
    AlreadyRegistered, BattleAlreadyResolved, InsufficientParticipants, InvalidOptions, InvalidState, RegistrationClosed,
    TournamentNotFound, UnknownTournamentType
)


class RecordingSink:
    def __init__(self):
        self.events = []

    async def send(self, announcement):
        self.events.append(announcement.event)


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def directory(settings):
    return PlayerDirectory(settings)


@pytest.fixture
def resolver(settings, rng, clock):
    settings.critical_chance = 0.0
    return BattleResolver(settings, EventHub(), rng, clock)


@pytest.fixture
def orchestrator(resolver, directory, settings, sink, rng, clock):
    return TournamentOrchestrator(
        resolver, directory, settings,
        announcer=AnnouncementService([sink], clock=clock), rng=rng, clock=clock,
    )


async def add_players(directory, make_player, count):
    players = []
    for i in range(count):
        players.append(await directory.upsert(make_player(f"player{i}", level=10)))
    return [p.player_id for p in players]


async def play_match(resolver, match, winner_id):
    while resolver.is_active(match.battle_id):
        await resolver.submit_turn(match.battle_id, winner_id)


async def play_round(resolver, tournament):
    """Decide every active match of the current round in favour of slot A"""
    for match in list(tournament.current_matches):
        if match.status == BracketMatchStatus.ACTIVE:
            await play_match(resolver, match, match.slot_a)


async def play_out(resolver, tournament):
    while tournament.status == TournamentStatus.ACTIVE:
        await play_round(resolver, tournament)


class TestScheduling:

    @pytest.mark.asyncio
    async def test_schedule_uses_type_defaults(self, orchestrator, clock, sink):
        tournament = await orchestrator.schedule_tournament('daily')

        assert tournament.status == TournamentStatus.SCHEDULED
        assert tournament.max_participants == 16
        assert tournament.entry_fee == 50
        assert tournament.start_time == clock() + 300
        assert tournament.prize_pool == (PrizeTier(0.5), PrizeTier(0.3), PrizeTier(0.2))
        assert sink.events == ['tournament_scheduled']

    @pytest.mark.asyncio
    async def test_schedule_overrides(self, orchestrator, clock):
        tournament = await orchestrator.schedule_tournament('weekly', {
            'max_participants': 8, 'entry_fee': 10, 'delay': 0, 'prize_pool': {0.6: 1, 0.2: 2},
        })

        assert tournament.max_participants == 8
        assert tournament.entry_fee == 10
        assert tournament.start_time == clock()
        assert tournament.prize_pool == (PrizeTier(0.6, 1), PrizeTier(0.2, 2))

    @pytest.mark.asyncio
    async def test_unknown_type(self, orchestrator):
        with pytest.raises(UnknownTournamentType):
            await orchestrator.schedule_tournament('hourly')

    @pytest.mark.asyncio
    async def test_invalid_options(self, orchestrator):
        with pytest.raises(InvalidOptions):
            await orchestrator.schedule_tournament('daily', {'max_participants': 3})
        with pytest.raises(InvalidOptions):
            await orchestrator.schedule_tournament('daily', {'entry_fee': -1})
        with pytest.raises(InvalidOptions):
            await orchestrator.schedule_tournament('daily', {'prize_pool': [(0.7, 1), (0.5, 1)]})


class TestRegistration:

    @pytest.mark.asyncio
    async def test_register_and_duplicate(self, orchestrator):
        tournament = await orchestrator.schedule_tournament('daily')

        await orchestrator.register_player(tournament.id, "net1:alice")
        with pytest.raises(AlreadyRegistered):
            await orchestrator.register_player(tournament.id, "net1:alice")

        assert tournament.participants == ["net1:alice"]

    @pytest.mark.asyncio
    async def test_unknown_tournament(self, orchestrator):
        with pytest.raises(TournamentNotFound):
            await orchestrator.register_player("tournament_missing", "net1:alice")
        with pytest.raises(TournamentNotFound):
            orchestrator.get_standings("tournament_missing")
        with pytest.raises(TournamentNotFound):
            await orchestrator.start_tournament("tournament_missing")

    @pytest.mark.asyncio
    async def test_filling_roster_starts_tournament(self, orchestrator, directory, make_player):
        players = await add_players(directory, make_player, 4)
        tournament = await orchestrator.schedule_tournament('daily', {'max_participants': 4})

        for player_id in players:
            await orchestrator.register_player(tournament.id, player_id)

        assert tournament.status == TournamentStatus.ACTIVE
        assert sorted(tournament.participants) == sorted(players)

    @pytest.mark.asyncio
    async def test_full_roster_below_minimum_stays_scheduled(self, orchestrator, directory, settings, make_player):
        players = await add_players(directory, make_player, 4)
        tournament = await orchestrator.schedule_tournament('daily', {'max_participants': 4})
        settings.min_tournament_participants = 6

        for player_id in players:
            await orchestrator.register_player(tournament.id, player_id)

        assert tournament.status == TournamentStatus.SCHEDULED
        assert tournament.participants == players
        with pytest.raises(InsufficientParticipants):
            await orchestrator.start_tournament(tournament.id)

    @pytest.mark.asyncio
    async def test_registration_closed_once_active(self, orchestrator, directory, make_player):
        players = await add_players(directory, make_player, 5)
        tournament = await orchestrator.schedule_tournament('daily', {'max_participants': 4})
        for player_id in players[:4]:
            await orchestrator.register_player(tournament.id, player_id)

        with pytest.raises(RegistrationClosed):
            await orchestrator.register_player(tournament.id, players[4])
        assert len(tournament.participants) == 4

    @pytest.mark.asyncio
    async def test_insufficient_participants(self, orchestrator, directory, make_player):
        players = await add_players(directory, make_player, 3)
        tournament = await orchestrator.schedule_tournament('daily')
        for player_id in players:
            await orchestrator.register_player(tournament.id, player_id)

        with pytest.raises(InsufficientParticipants):
            await orchestrator.start_tournament(tournament.id)
        assert tournament.status == TournamentStatus.SCHEDULED

    @pytest.mark.asyncio
    async def test_cannot_start_twice(self, orchestrator, directory, make_player):
        players = await add_players(directory, make_player, 4)
        tournament = await orchestrator.schedule_tournament('daily')
        for player_id in players:
            await orchestrator.register_player(tournament.id, player_id)
        await orchestrator.start_tournament(tournament.id)

        with pytest.raises(InvalidState):
            await orchestrator.start_tournament(tournament.id)


class TestBracket:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("count", [4, 5, 6, 7, 8, 9, 16])
    async def test_round_zero_size(self, orchestrator, directory, make_player, count):
        players = await add_players(directory, make_player, count)
        tournament = await orchestrator.schedule_tournament('daily', {'max_participants': count + 1})
        for player_id in players:
            await orchestrator.register_player(tournament.id, player_id)

        await orchestrator.start_tournament(tournament.id)

        round_zero = tournament.rounds[0]
        byes = [m for m in round_zero if m.is_bye]
        assert len(round_zero) == math.ceil(count / 2)
        assert len(byes) == count % 2
        for bye in byes:
            assert bye.status == BracketMatchStatus.BYE
            assert bye.winner == bye.slot_a
            assert bye.battle_id is None
        for match in round_zero:
            if not match.is_bye:
                assert match.status == BracketMatchStatus.ACTIVE
                assert match.battle_id is not None
        seeded = [p for m in round_zero for p in m.players]
        assert sorted(seeded) == sorted(players)

    @pytest.mark.asyncio
    async def test_round_waits_for_every_match(self, orchestrator, directory, resolver, make_player):
        players = await add_players(directory, make_player, 4)
        tournament = await orchestrator.schedule_tournament('daily', {'max_participants': 4})
        for player_id in players:
            await orchestrator.register_player(tournament.id, player_id)

        first = tournament.rounds[0][0]
        await play_match(resolver, first, first.slot_b)

        assert first.status == BracketMatchStatus.COMPLETED
        assert first.winner == first.slot_b
        assert tournament.current_round == 0
        assert len(tournament.rounds) == 1

        second = tournament.rounds[0][1]
        await play_match(resolver, second, second.slot_a)

        assert tournament.current_round == 1
        final = tournament.current_matches
        assert len(final) == 1
        assert final[0].players == [first.slot_b, second.slot_a]

    @pytest.mark.asyncio
    async def test_five_players_bye_progression(self, orchestrator, directory, resolver, make_player):
        players = await add_players(directory, make_player, 5)
        tournament = await orchestrator.schedule_tournament('daily', {'max_participants': 5})
        for player_id in players:
            await orchestrator.register_player(tournament.id, player_id)

        assert tournament.status == TournamentStatus.ACTIVE
        round_zero = tournament.rounds[0]
        assert [m.is_bye for m in round_zero] == [False, False, True]
        bye_player = round_zero[2].slot_a

        await play_round(resolver, tournament)

        # Three winners: one match plus a second bye for the odd one out
        round_one = tournament.rounds[1]
        assert [m.is_bye for m in round_one] == [False, True]
        assert round_one[1].slot_a == bye_player

        await play_round(resolver, tournament)

        final = tournament.rounds[2]
        assert len(final) == 1
        assert bye_player in final[0].players

        await play_round(resolver, tournament)

        assert tournament.status == TournamentStatus.COMPLETED
        assert tournament.champion == final[0].winner

    @pytest.mark.asyncio
    @pytest.mark.parametrize("count", [4, 5, 7, 8, 12])
    async def test_single_champion(self, orchestrator, directory, resolver, make_player, count):
        players = await add_players(directory, make_player, count)
        tournament = await orchestrator.schedule_tournament('daily')
        for player_id in players:
            await orchestrator.register_player(tournament.id, player_id)
        await orchestrator.start_tournament(tournament.id)

        await play_out(resolver, tournament)

        assert tournament.status == TournamentStatus.COMPLETED
        final_round = tournament.rounds[-1]
        assert len(final_round) == 1
        assert tournament.champion == final_round[0].winner
        assert tournament.champion in players
        assert tournament.ended_at is not None

    @pytest.mark.asyncio
    async def test_report_match_winner(self, orchestrator, directory, resolver, make_player):
        players = await add_players(directory, make_player, 4)
        tournament = await orchestrator.schedule_tournament('daily', {'max_participants': 4})
        for player_id in players:
            await orchestrator.register_player(tournament.id, player_id)
        match = tournament.rounds[0][0]

        with pytest.raises(TournamentNotFound):
            await orchestrator.report_match_winner(tournament.id, "match_missing", match.slot_a)
        with pytest.raises(InvalidState):
            await orchestrator.report_match_winner(tournament.id, match.id, "net1:outsider")

        await orchestrator.report_match_winner(tournament.id, match.id, match.slot_b)

        assert match.winner == match.slot_b
        assert match.status == BracketMatchStatus.COMPLETED
        with pytest.raises(InvalidState):
            await orchestrator.report_match_winner(tournament.id, match.id, match.slot_a)

        # The match battle is cancelled and cannot be played out any more
        assert not resolver.is_active(match.battle_id)
        assert resolver.get_battle(match.battle_id).status == BattleStatus.CANCELLED
        with pytest.raises(BattleAlreadyResolved):
            await resolver.submit_turn(match.battle_id, match.slot_a)
        assert match.winner == match.slot_b


class TestStandingsAndPrizes:

    @pytest.mark.asyncio
    async def test_standings_order(self, orchestrator, directory, resolver, make_player):
        players = await add_players(directory, make_player, 4)
        tournament = await orchestrator.schedule_tournament('daily', {'max_participants': 4})
        for player_id in players:
            await orchestrator.register_player(tournament.id, player_id)
        round_zero = list(tournament.rounds[0])

        await play_out(resolver, tournament)

        final = tournament.rounds[1][0]
        standings = orchestrator.get_standings(tournament.id)
        assert standings == [
            tournament.champion,
            final.loser,
            round_zero[0].loser,
            round_zero[1].loser,
        ]

    @pytest.mark.asyncio
    async def test_scheduled_standings_are_registration_order(self, orchestrator):
        tournament = await orchestrator.schedule_tournament('daily')
        await orchestrator.register_player(tournament.id, "net1:b")
        await orchestrator.register_player(tournament.id, "net1:a")

        assert orchestrator.get_standings(tournament.id) == ["net1:b", "net1:a"]

    @pytest.mark.asyncio
    async def test_eight_player_prize_split(self, orchestrator, directory, resolver, make_player, sink):
        """Pool 8 x 100 = 800 split 50/30/20"""
        players = await add_players(directory, make_player, 8)
        tournament = await orchestrator.schedule_tournament('daily', {
            'max_participants': 8, 'entry_fee': 100, 'prize_pool': [(0.5, 1), (0.3, 1), (0.2, 1)],
        })
        for player_id in players:
            await orchestrator.register_player(tournament.id, player_id)

        await play_out(resolver, tournament)

        assert tournament.total_pool == 800
        assert [p.gold for p in tournament.prizes] == [400, 240, 160]
        assert [p.position for p in tournament.prizes] == [1, 2, 3]
        standings = orchestrator.get_standings(tournament.id)
        assert [p.player_id for p in tournament.prizes] == standings[:3]
        assert directory.get(standings[0]).gold == 400
        assert directory.get(standings[1]).gold == 240
        assert directory.get(standings[2]).gold == 160
        assert sink.events.count('tournament_prize') == 3
        assert 'tournament_completed' in sink.events

    def test_prize_tiers_cover_multiple_places(self):
        prizes = calculate_prizes(["a", "b", "c", "d"], normalize_prize_pool([(0.4, 1), (0.2, 2)]), 1000)

        assert [(p.player_id, p.gold) for p in prizes] == [("a", 400), ("b", 200), ("c", 200)]

    def test_unfilled_places_pay_nothing(self):
        prizes = calculate_prizes(["a", "b"], normalize_prize_pool([(0.5, 1), (0.3, 1), (0.2, 1)]), 100)

        assert [p.gold for p in prizes] == [50, 30]


class TestScheduledStart:

    @pytest.mark.asyncio
    async def test_due_tournaments_start_or_cancel(self, orchestrator, directory, clock, make_player, sink):
        players = await add_players(directory, make_player, 4)
        ready = await orchestrator.schedule_tournament('daily')
        short = await orchestrator.schedule_tournament('daily')
        for player_id in players:
            await orchestrator.register_player(ready.id, player_id)
        await orchestrator.register_player(short.id, players[0])

        assert await orchestrator.start_due_tournaments() == []

        clock.advance(301)
        touched = await orchestrator.start_due_tournaments()

        assert {t.id for t in touched} == {ready.id, short.id}
        assert ready.status == TournamentStatus.ACTIVE
        assert short.status == TournamentStatus.CANCELLED
        assert 'tournament_cancelled' in sink.events
        with pytest.raises(RegistrationClosed):
            await orchestrator.register_player(short.id, players[1])

    @pytest.mark.asyncio
    async def test_stats(self, orchestrator, directory, make_player):
        players = await add_players(directory, make_player, 4)
        await orchestrator.schedule_tournament('daily')
        active = await orchestrator.schedule_tournament('daily', {'max_participants': 4})
        for player_id in players:
            await orchestrator.register_player(active.id, player_id)

        stats = orchestrator.stats()

        assert stats['scheduled_tournaments'] == 1
        assert stats['active_tournaments'] == 1
        assert stats['total_participants'] == 4
