"""
Arena - competitive match engine for a multi-network text RPG.

Matchmaking with ratings, single-elimination tournaments and turn-based
battles, driven from Discord.
"""
