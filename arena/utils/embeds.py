"""
Shared embed builders for the arena cogs and the announcement sink.

Keeps battle, tournament, leaderboard and error formatting consistent across
commands and broadcast channels.
"""

import discord
from typing import Dict, List, Optional

from arena.constants import UIConstants


ANNOUNCEMENT_COLORS = {
    'tournament_scheduled': UIConstants.DEFAULT_EMBED_COLOR,
    'tournament_started': UIConstants.DEFAULT_EMBED_COLOR,
    'tournament_completed': UIConstants.GOLD_RANK_COLOR,
    'tournament_prize': UIConstants.GOLD_RANK_COLOR,
    'tournament_cancelled': UIConstants.ERROR_COLOR,
    'match_expired': UIConstants.ERROR_COLOR,
    'battle_completed': UIConstants.SUCCESS_COLOR,
}


def build_announcement_embed(announcement) -> discord.Embed:
    embed = discord.Embed(
        description=announcement.message,
        color=ANNOUNCEMENT_COLORS.get(announcement.event, UIConstants.DEFAULT_EMBED_COLOR)
    )
    embed.set_footer(text=announcement.event.replace('_', ' ').title())
    return embed


def hp_bar(current: int, maximum: int, width: int = 10) -> str:
    """Text HP bar, e.g. ``███████░░░ 70/100``"""
    filled = round(width * current / maximum) if maximum > 0 else 0
    return f"{'█' * filled}{'░' * (width - filled)} {current}/{maximum}"


def build_battle_embed(battle, turn=None) -> discord.Embed:
    """
    Build the battle status embed shown after starting a battle or taking a turn.

    Args:
        battle: Battle from the resolver
        turn: Optional TurnResult to describe at the top

    Returns:
        Formatted Discord embed
    """
    title = f"{UIConstants.SWORDS_EMOJI} Battle `{battle.id}`"
    color = UIConstants.SUCCESS_COLOR if not battle.is_active else UIConstants.DEFAULT_EMBED_COLOR
    embed = discord.Embed(title=title, color=color)

    if turn is not None:
        if turn.result == "hit":
            text = f"Hit for **{turn.damage}** damage"
            if turn.critical:
                text += " (critical!)"
            if turn.counter_damage:
                text += f"\nCounter-attack for **{turn.counter_damage}** damage"
        else:
            text = "Turn passed"
        embed.add_field(name=f"Turn {turn.turn_number}", value=text, inline=False)

    combatants = list(battle.combatants.values())
    if battle.opponent is not None:
        combatants.append(battle.opponent)
    for combatant in combatants:
        embed.add_field(
            name=f"{combatant.name} (Lv {combatant.level})",
            value=hp_bar(combatant.hp, combatant.max_hp),
            inline=True
        )

    if not battle.is_active and battle.winner is None:
        embed.add_field(name="Result", value="Battle cancelled; no rewards.", inline=False)
    elif not battle.is_active:
        winner = battle.combatant(battle.winner)
        summary = f"{UIConstants.TROPHY_EMOJI} **{winner.name if winner else battle.winner}** wins by {battle.outcome.value}!"
        rewards = battle.rewards
        if rewards.experience or rewards.gold:
            summary += f"\n{UIConstants.GIFT_EMOJI} {rewards.experience} exp, {rewards.gold} gold"
        for item in rewards.items:
            summary += f"\n{UIConstants.GIFT_EMOJI} {item['name']} ({item['rarity']})"
        embed.add_field(name="Result", value=summary, inline=False)

    return embed


def build_leaderboard_embed(ratings: List, names: Dict[str, str], title: str = "Arena Leaderboard") -> discord.Embed:
    embed = discord.Embed(title=f"{UIConstants.TROPHY_EMOJI} {title}", color=UIConstants.GOLD_RANK_COLOR)
    if not ratings:
        embed.description = "No ranked battles have been fought yet."
        return embed

    lines = []
    for position, record in enumerate(ratings, start=1):
        name = names.get(record.player_id, record.player_id)
        lines.append(
            f"**{position}.** {name} - {record.rating} "
            f"({record.wins}W/{record.losses}L, {record.win_rate:.1f}%)"
        )
    embed.description = "\n".join(lines)
    return embed


def build_tournament_embed(tournament, standings: Optional[List[str]] = None,
                           names: Optional[Dict[str, str]] = None) -> discord.Embed:
    names = names or {}
    embed = discord.Embed(
        title=f"{UIConstants.TROPHY_EMOJI} {tournament.name}",
        description=tournament.description,
        color=UIConstants.GOLD_RANK_COLOR if tournament.champion else UIConstants.DEFAULT_EMBED_COLOR
    )
    embed.add_field(name="ID", value=f"`{tournament.id}`", inline=True)
    embed.add_field(name="Status", value=tournament.status.value.title(), inline=True)
    embed.add_field(
        name="Players",
        value=f"{len(tournament.participants)}/{tournament.max_participants}",
        inline=True
    )
    embed.add_field(name="Entry Fee", value=f"{tournament.entry_fee} gold", inline=True)
    embed.add_field(name="Prize Pool", value=f"{tournament.total_pool} gold", inline=True)

    if tournament.rounds:
        embed.add_field(name="Round", value=str(tournament.current_round + 1), inline=True)

    if standings:
        lines = [f"**{i}.** {names.get(pid, pid)}" for i, pid in enumerate(standings[:10], start=1)]
        embed.add_field(name="Standings", value="\n".join(lines), inline=False)

    return embed


def build_tournament_list_embed(tournaments: List) -> discord.Embed:
    embed = discord.Embed(title=f"{UIConstants.TROPHY_EMOJI} Tournaments", color=UIConstants.DEFAULT_EMBED_COLOR)
    if not tournaments:
        embed.description = "No tournaments are scheduled or running."
        return embed
    for tournament in tournaments[:25]:
        embed.add_field(
            name=f"{tournament.name} ({tournament.status.value})",
            value=(
                f"`{tournament.id}`\n"
                f"{len(tournament.participants)}/{tournament.max_participants} players, "
                f"fee {tournament.entry_fee}"
            ),
            inline=False
        )
    return embed


def build_error_embed(error) -> discord.Embed:
    """Render an ArenaError's short user-facing reason"""
    return discord.Embed(
        title="Arena Error",
        description=getattr(error, 'user_message', str(error)),
        color=UIConstants.ERROR_COLOR
    )
