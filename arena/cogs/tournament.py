import discord
from discord import app_commands
from discord.ext import commands
from typing import List

from arena.config import Config
from arena.constants import TOURNAMENT_TYPES
from arena.cogs.arena import player_id_for
from arena.operations.tournament_orchestrator import TournamentStatus
from arena.services.arena_engine import ArenaEngine
from arena.utils.embeds import build_tournament_embed, build_tournament_list_embed
from arena.utils.logger import setup_logger

logger = setup_logger(__name__)


class TournamentCog(commands.Cog):
    def __init__(self, bot):
        self.bot = bot
        self.engine: ArenaEngine = bot.engine

    def _names(self, player_ids: List[str]) -> dict:
        names = {}
        for player_id in player_ids:
            profile = self.engine.directory.find(player_id)
            if profile:
                names[player_id] = profile.name
        return names

    @app_commands.command(name="tournament-schedule", description="Schedule a tournament (Owner only)")
    @app_commands.describe(tournament_type="Tournament type", delay_minutes="Minutes until it starts")
    @app_commands.choices(tournament_type=[
        app_commands.Choice(name=t.name, value=key) for key, t in TOURNAMENT_TYPES.items()
    ])
    async def tournament_schedule(self, interaction: discord.Interaction, tournament_type: str,
                                  delay_minutes: int = None):
        if interaction.user.id != Config.OWNER_DISCORD_ID:
            await interaction.response.send_message(
                "❌ **Access Denied**\nThis command is restricted to the bot owner.",
                ephemeral=True
            )
            return

        options = {}
        if delay_minutes is not None:
            options['delay'] = max(0, delay_minutes) * 60
        tournament = await self.engine.schedule_tournament(tournament_type, options)
        await interaction.response.send_message(embed=build_tournament_embed(tournament))

    @app_commands.command(name="tournament-join", description="Register for a scheduled tournament")
    @app_commands.describe(tournament_id="Tournament ID from /tournament-list")
    @app_commands.guild_only()
    async def tournament_join(self, interaction: discord.Interaction, tournament_id: str):
        player_id = player_id_for(interaction.guild, interaction.user)
        self.engine.directory.get(player_id)
        tournament = await self.engine.register_player(tournament_id, player_id)
        await interaction.response.send_message(
            f"📝 Registered for **{tournament.name}** "
            f"({len(tournament.participants)}/{tournament.max_participants})",
            ephemeral=True
        )

    @app_commands.command(name="tournament-start", description="Start a tournament now (Owner only)")
    @app_commands.describe(tournament_id="Tournament ID")
    async def tournament_start(self, interaction: discord.Interaction, tournament_id: str):
        if interaction.user.id != Config.OWNER_DISCORD_ID:
            await interaction.response.send_message(
                "❌ **Access Denied**\nThis command is restricted to the bot owner.",
                ephemeral=True
            )
            return

        tournament = await self.engine.start_tournament(tournament_id)
        standings = self.engine.get_standings(tournament.id)
        await interaction.response.send_message(
            embed=build_tournament_embed(tournament, standings, self._names(standings))
        )

    @app_commands.command(name="tournament-standings", description="Show a tournament's standings")
    @app_commands.describe(tournament_id="Tournament ID")
    async def tournament_standings(self, interaction: discord.Interaction, tournament_id: str):
        tournament = self.engine.tournaments.get_tournament(tournament_id)
        standings = self.engine.get_standings(tournament_id)
        await interaction.response.send_message(
            embed=build_tournament_embed(tournament, standings, self._names(standings))
        )

    @app_commands.command(name="tournament-list", description="List scheduled and running tournaments")
    async def tournament_list(self, interaction: discord.Interaction):
        tournaments = (
            self.engine.tournaments.list_tournaments(TournamentStatus.SCHEDULED)
            + self.engine.tournaments.list_tournaments(TournamentStatus.ACTIVE)
        )
        await interaction.response.send_message(embed=build_tournament_list_embed(tournaments))


async def setup(bot):
    await bot.add_cog(TournamentCog(bot))
