"""
Operations Layer - the competitive match engine

Each module owns the state of one component:
- RatingStore: skill ratings and win/loss records
- MatchQueue: pending match requests, level brackets and pairing
- BattleResolver: turn-based PvE and PvP battles
- TournamentOrchestrator: single-elimination brackets and prizes

Components hold their own lock and talk to each other through the EventHub;
the ArenaEngine service wires them together.
"""
