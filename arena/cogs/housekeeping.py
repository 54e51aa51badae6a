"""
Housekeeping Cog - Periodic drivers

- matchmaking tick every ``matchmaking_interval_seconds``
- idle battle forfeits and due tournament starts every 30 seconds
- automatic tournament scheduling at 00:00 UTC (daily; weekly on Sundays;
  monthly on the 1st)

Tournament rounds are not driven from here; they advance on battle completion.
"""

import json
from dataclasses import replace

import discord
from discord import app_commands
from discord.ext import commands, tasks
from datetime import datetime, time, timezone

from arena.config import RESTART_ONLY_KEYS, SETTING_KEYS, Config
from arena.services.arena_engine import ArenaEngine
from arena.utils.logger import setup_logger

logger = setup_logger(__name__)

SWEEP_INTERVAL_SECONDS = 30
MIDNIGHT_UTC = time(hour=0, minute=0, tzinfo=timezone.utc)


def tournament_types_due(day: datetime):
    """Tournament types the auto-scheduler creates on ``day``"""
    due = ['daily']
    if day.weekday() == 6:
        due.append('weekly')
    if day.day == 1:
        due.append('monthly')
    return due


class HousekeepingCog(commands.Cog):
    """Background arena tasks"""

    def __init__(self, bot):
        self.bot = bot
        self.engine: ArenaEngine = bot.engine
        self.logger = logger

    @commands.Cog.listener()
    async def on_ready(self):
        """Start background tasks once the bot is ready"""
        if not self.matchmaking_tick.is_running():
            self.matchmaking_tick.change_interval(seconds=self.engine.settings.matchmaking_interval_seconds)
            self.matchmaking_tick.start()
        if not self.sweep.is_running():
            self.sweep.start()
        if self.engine.settings.auto_schedule_tournaments and not self.auto_schedule.is_running():
            self.auto_schedule.start()
        self.logger.info("HousekeepingCog: Background tasks started")

    def cog_unload(self):
        """Stop background tasks when cog is unloaded"""
        self.matchmaking_tick.cancel()
        self.sweep.cancel()
        self.auto_schedule.cancel()
        self.logger.info("HousekeepingCog: Background tasks stopped")

    @tasks.loop(seconds=Config.MATCHMAKING_INTERVAL_SECONDS)
    async def matchmaking_tick(self):
        try:
            result = await self.engine.tick()
            if result.pairings or result.expired:
                self.logger.debug(f"Matchmaking tick: {len(result.pairings)} pairings, "
                                  f"{len(result.expired)} expired")
        except Exception as e:
            self.logger.error(f"Error in matchmaking tick: {e}", exc_info=True)

    @tasks.loop(seconds=SWEEP_INTERVAL_SECONDS)
    async def sweep(self):
        try:
            await self.engine.sweep()
        except Exception as e:
            self.logger.error(f"Error in arena sweep: {e}", exc_info=True)

    @tasks.loop(time=MIDNIGHT_UTC)
    async def auto_schedule(self):
        """Schedule the day's automatic tournaments"""
        for tournament_type in tournament_types_due(datetime.now(timezone.utc)):
            try:
                await self.engine.schedule_tournament(tournament_type)
            except Exception as e:
                self.logger.error(f"Failed to auto-schedule {tournament_type} tournament: {e}", exc_info=True)

    @matchmaking_tick.before_loop
    @sweep.before_loop
    @auto_schedule.before_loop
    async def before_background_task(self):
        """Wait for bot to be ready before starting background tasks"""
        await self.bot.wait_until_ready()

    @app_commands.command(
        name="admin-arena-stats",
        description="Show arena engine statistics (Owner only)"
    )
    async def admin_arena_stats(self, interaction: discord.Interaction):
        if interaction.user.id != Config.OWNER_DISCORD_ID:
            await interaction.response.send_message(
                "❌ **Access Denied**\nThis command is restricted to the bot owner.",
                ephemeral=True
            )
            return

        embed = discord.Embed(
            title="📊 Arena Statistics",
            color=discord.Color.blue(),
            timestamp=datetime.now(timezone.utc)
        )
        for key, value in self.engine.stats().items():
            embed.add_field(name=key.replace('_', ' ').title(), value=str(value), inline=True)
        await interaction.response.send_message(embed=embed, ephemeral=True)

    @app_commands.command(
        name="admin-arena-config",
        description="Override an arena setting, e.g. rating.decay 0.9 (Owner only)"
    )
    @app_commands.describe(key="Dotted setting key", value="New value (JSON), or 'reset' to restore the default")
    async def admin_arena_config(self, interaction: discord.Interaction, key: str, value: str):
        if interaction.user.id != Config.OWNER_DISCORD_ID:
            await interaction.response.send_message(
                "❌ **Access Denied**\nThis command is restricted to the bot owner.",
                ephemeral=True
            )
            return
        if key not in SETTING_KEYS:
            await interaction.response.send_message(
                f"❌ Unknown setting `{key}`. Known: {', '.join(f'`{k}`' for k in SETTING_KEYS)}",
                ephemeral=True
            )
            return

        if value.lower() == 'reset':
            await self.bot.config_service.reset(key, interaction.user.id)
            await interaction.response.send_message(
                f"✅ `{key}` reset; the default applies after the next restart.", ephemeral=True
            )
            return

        try:
            parsed = json.loads(value)
        except json.JSONDecodeError:
            parsed = value
        try:
            # Validate against a copy before persisting
            replace(self.engine.settings).apply_override(key, parsed)
        except ValueError as e:
            await interaction.response.send_message(f"❌ {e}", ephemeral=True)
            return

        await self.bot.config_service.set(key, parsed, interaction.user.id)
        if key in RESTART_ONLY_KEYS:
            self.logger.info(f"Arena setting {key} stored as {parsed!r} by {interaction.user}; applies on restart")
            await interaction.response.send_message(
                f"✅ `{key}` = `{parsed!r}` stored; it applies after the next restart.", ephemeral=True
            )
            return
        self.engine.settings.apply_override(key, parsed)
        if key == 'matchmaking.interval_seconds':
            self.matchmaking_tick.change_interval(seconds=self.engine.settings.matchmaking_interval_seconds)
        self.logger.info(f"Arena setting {key} set to {parsed!r} by {interaction.user}")
        await interaction.response.send_message(f"✅ `{key}` = `{parsed!r}`", ephemeral=True)


async def setup(bot):
    await bot.add_cog(HousekeepingCog(bot))
