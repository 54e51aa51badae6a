"""
Arena Cog - matchmaking, PvE hunts, duels and turns

Thin adapter from slash commands to the ArenaEngine boundary calls. A Discord
guild plays the role of a network: global player ids are "<guild_id>:<user_id>".
"""

import discord
from discord import app_commands
from discord.ext import commands
from typing import Optional

from arena.config import Config
from arena.operations.battle_resolver import BattleAction
from arena.services.arena_engine import ArenaEngine
from arena.services.player_directory import PlayerProfile
from arena.utils.embeds import build_battle_embed, build_leaderboard_embed
from arena.utils.exceptions import UnknownBattle
from arena.utils.logger import setup_logger

logger = setup_logger(__name__)


def player_id_for(guild: discord.Guild, user: discord.abc.User) -> str:
    return PlayerProfile.make_global_id(guild.id, user.id)


class ArenaCog(commands.Cog):
    """Player-facing arena commands"""

    def __init__(self, bot):
        self.bot = bot
        self.engine: ArenaEngine = bot.engine

    @app_commands.command(name="arena-join", description="Join the arena")
    @app_commands.guild_only()
    async def arena_join(self, interaction: discord.Interaction):
        player_id = player_id_for(interaction.guild, interaction.user)
        profile = self.engine.directory.find(player_id)
        if profile:
            await interaction.response.send_message(
                f"You're already in the arena at level {profile.level}.", ephemeral=True
            )
            return

        profile = await self.engine.register_profile(PlayerProfile(
            player_id=player_id,
            name=interaction.user.display_name,
            network_id=str(interaction.guild.id),
        ))
        logger.info(f"Player joined the arena: {profile.name} ({player_id})")
        await interaction.response.send_message(f"⚔️ Welcome to the arena, **{profile.name}**!")

    @app_commands.command(name="arena-setlevel", description="Set a player's level (Owner only)")
    @app_commands.describe(member="Player to update", level="New level")
    @app_commands.guild_only()
    async def arena_setlevel(self, interaction: discord.Interaction, member: discord.Member, level: int):
        if interaction.user.id != Config.OWNER_DISCORD_ID:
            await interaction.response.send_message(
                "❌ **Access Denied**\nThis command is restricted to the bot owner.",
                ephemeral=True
            )
            return
        profile = self.engine.directory.get(player_id_for(interaction.guild, member))
        profile.level = level
        await self.engine.register_profile(profile)
        await interaction.response.send_message(
            f"✅ {profile.name} is now level {profile.level}.", ephemeral=True
        )

    @app_commands.command(name="arena-queue", description="Look for a PvP opponent")
    @app_commands.describe(
        level_window="How many levels above/below yours to accept (default 5)",
        prefer_cross_network="Prefer opponents from other servers"
    )
    @app_commands.guild_only()
    async def arena_queue(self, interaction: discord.Interaction,
                          level_window: Optional[int] = None, prefer_cross_network: bool = True):
        profile = self.engine.directory.get(player_id_for(interaction.guild, interaction.user))
        criteria = {'prefer_cross_network': prefer_cross_network}
        if level_window is not None:
            window = max(0, level_window)
            criteria['min_level'] = profile.level - window
            criteria['max_level'] = profile.level + window

        request_id = await self.engine.enqueue_match(profile, criteria)
        await interaction.response.send_message(
            f"🎯 Searching for an opponent... (request `{request_id}`)", ephemeral=True
        )

    @app_commands.command(name="arena-leave", description="Stop looking for a PvP opponent")
    @app_commands.guild_only()
    async def arena_leave(self, interaction: discord.Interaction):
        removed = await self.engine.dequeue_match(player_id_for(interaction.guild, interaction.user))
        message = "Left the matchmaking queue." if removed else "You're not in the matchmaking queue."
        await interaction.response.send_message(message, ephemeral=True)

    @app_commands.command(name="arena-hunt", description="Fight a monster")
    @app_commands.describe(level="Monster level to look for (default: your level)")
    @app_commands.guild_only()
    async def arena_hunt(self, interaction: discord.Interaction, level: Optional[int] = None):
        profile = self.engine.directory.get(player_id_for(interaction.guild, interaction.user))
        battle = await self.engine.start_pve_battle(profile, level)
        await interaction.response.send_message(embed=build_battle_embed(battle))

    @app_commands.command(name="arena-duel", description="Challenge another player to a duel")
    @app_commands.describe(member="Opponent", ranked="Whether the duel changes ratings")
    @app_commands.guild_only()
    async def arena_duel(self, interaction: discord.Interaction, member: discord.Member, ranked: bool = True):
        challenger = self.engine.directory.get(player_id_for(interaction.guild, interaction.user))
        opponent = self.engine.directory.get(player_id_for(interaction.guild, member))
        battle = await self.engine.start_pvp_battle(challenger, opponent, ranked=ranked)
        await interaction.response.send_message(embed=build_battle_embed(battle))

    @app_commands.command(name="arena-attack", description="Attack in your current battle")
    @app_commands.describe(battle_id="Battle to act in (default: your latest battle)")
    @app_commands.guild_only()
    async def arena_attack(self, interaction: discord.Interaction, battle_id: Optional[str] = None):
        player_id = player_id_for(interaction.guild, interaction.user)
        if battle_id is None:
            battle = self.engine.resolver.get_active_battle_for(player_id)
            if battle is None:
                raise UnknownBattle("(none)")
            battle_id = battle.id

        turn = await self.engine.submit_turn(battle_id, player_id, BattleAction())
        battle = self.engine.resolver.get_battle(battle_id)
        await interaction.response.send_message(embed=build_battle_embed(battle, turn))

    @app_commands.command(name="arena-leaderboard", description="Show the top rated players")
    @app_commands.describe(this_server="Only show players from this server")
    @app_commands.guild_only()
    async def arena_leaderboard(self, interaction: discord.Interaction, this_server: bool = False):
        network_id = str(interaction.guild.id) if this_server else None
        ratings = self.engine.get_leaderboard(limit=10, network_id=network_id)
        names = {}
        for record in ratings:
            profile = self.engine.directory.find(record.player_id)
            if profile:
                names[record.player_id] = profile.name
        await interaction.response.send_message(embed=build_leaderboard_embed(ratings, names))


async def setup(bot):
    await bot.add_cog(ArenaCog(bot))
