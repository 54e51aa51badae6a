import asyncio
import logging
from typing import Optional

import discord
from discord.ext import commands
from discord import app_commands

from arena.config import ArenaSettings, Config
from arena.database.database import Database
from arena.services.announcements import AnnouncementService, DiscordSink, LoggingSink
from arena.services.arena_engine import ArenaEngine
from arena.services.configuration import ConfigurationService
from arena.services.persistence import SnapshotStore
from arena.utils.embeds import build_error_embed
from arena.utils.exceptions import ArenaError
from arena.utils.logger import setup_logger

class ArenaBot(commands.Bot):
    def __init__(self):
        intents = discord.Intents.default()

        super().__init__(
            command_prefix=Config.COMMAND_PREFIX,
            intents=intents,
            help_command=None
        )

        # Attach app command error handler
        self.tree.on_error = self.on_app_command_error

        self.db: Optional[Database] = None
        self.config_service: Optional[ConfigurationService] = None
        self.engine: Optional[ArenaEngine] = None
        self.logger = setup_logger(__name__)

    async def setup_hook(self):
        """Called when the bot is starting up"""
        self.logger.info("Setting up Arena Bot...")

        self.db = Database()
        await self.db.initialize()

        # Runtime overrides for the engine tunables
        self.config_service = ConfigurationService(self.db.async_session)
        await self.config_service.load_all()
        settings = ArenaSettings.from_config(self.config_service)
        self.logger.info("Configuration service initialized")

        announcer = AnnouncementService([
            LoggingSink(),
            DiscordSink(self, Config.get_announcement_channel_ids()),
        ])
        self.engine = ArenaEngine(
            settings=settings,
            announcer=announcer,
            snapshot_store=SnapshotStore(self.db.async_session),
        )
        await self.engine.restore()

        await self.load_cogs()
        await self._sync_commands()

        self.logger.info("Arena Bot setup complete!")

    async def load_cogs(self):
        """Load all cogs"""
        cogs_to_load = [
            'arena.cogs.arena',
            'arena.cogs.tournament',
            'arena.cogs.housekeeping',
        ]

        for cog in cogs_to_load:
            try:
                await self.load_extension(cog)
                self.logger.info(f"Loaded cog: {cog}")
            except Exception as e:
                self.logger.error(f"Failed to load cog {cog}: {e}", exc_info=True)

    async def _sync_guild(self, guild_id: int) -> int:
        guild = discord.Object(id=guild_id)
        self.tree.copy_global_to(guild=guild)
        try:
            synced = await self.tree.sync(guild=guild)
        except discord.errors.Forbidden:
            self.logger.error(f"Missing 'applications.commands' scope in guild {guild_id}; commands not synced")
            return 0
        except discord.errors.HTTPException as e:
            self.logger.error(f"Syncing guild {guild_id} failed ({e.status}): {e.text}")
            return 0
        self.logger.info(f"Synced {len(synced)} command(s) to guild {guild_id}")
        return len(synced)

    async def _sync_commands(self):
        """Sync slash commands to every network guild, or globally when none is configured"""
        if not self.tree.get_commands():
            self.logger.warning("No application commands registered; check the cog loading errors above")
            return

        try:
            guild_ids = Config.get_guild_ids()
            if guild_ids:
                total = 0
                for guild_id in guild_ids:
                    total += await self._sync_guild(guild_id)
                self.logger.info(f"Command sync complete: {total} command(s) across {len(guild_ids)} network guild(s)")
            else:
                synced = await self.tree.sync()
                self.logger.info(f"Synced {len(synced)} command(s) globally (may take up to an hour to appear)")
        except Exception as e:
            self.logger.error(f"Failed to sync commands: {e}", exc_info=True)

    async def on_ready(self):
        self.logger.info(f"Connected as {self.user}; serving {len(self.guilds)} network guild(s)")

        await self.change_presence(
            activity=discord.Game(name="Arena | /arena-queue")
        )

    async def on_app_command_error(self, interaction: discord.Interaction, error: app_commands.AppCommandError):
        """Global error handler for slash commands"""
        command_name = interaction.command.name if interaction.command else 'Unknown'
        original = getattr(error, 'original', error)

        if isinstance(original, ArenaError):
            # Rejected arena operation: show its specific reason
            self.logger.info(f"Command '{command_name}' rejected for {interaction.user}: {original.message}")
            error_embed = build_error_embed(original)
        else:
            if isinstance(error, app_commands.CheckFailure):
                self.logger.info(f"Permission denied for command '{command_name}' by user {interaction.user}")
                error_message = "❌ Permission Denied"
            elif isinstance(error, app_commands.CommandOnCooldown):
                error_message = f"❌ Command is on cooldown. Try again in {error.retry_after:.2f} seconds."
            else:
                self.logger.error(f"Error in app command '{command_name}': {error}", exc_info=True)
                error_message = "❌ An unexpected error occurred while processing your command."
            error_embed = discord.Embed(title=error_message, color=discord.Color.red())

        try:
            if interaction.response.is_done():
                await interaction.followup.send(embed=error_embed, ephemeral=True)
            else:
                await interaction.response.send_message(embed=error_embed, ephemeral=True)
        except Exception as e:
            self.logger.error(f"Failed to send error response: {e}")

    async def close(self):
        self.logger.info("Shutting down Arena Bot, closing the snapshot database")

        if self.db:
            await self.db.close()

        await super().close()


async def main():
    """Validate configuration and run the bot until it disconnects"""
    Config.validate()

    async with ArenaBot() as bot:
        try:
            await bot.start(Config.DISCORD_TOKEN)
        except discord.LoginFailure:
            logging.getLogger(__name__).error("Discord rejected DISCORD_TOKEN")
            raise


def run():
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
