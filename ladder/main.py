import asyncio
import logging
from typing import Optional

import discord
from discord.ext import commands
from discord import app_commands

from ladder.config import Config, LadderSettings
from ladder.database.database import Database
from ladder.operations.challenge_operations import ChallengeOperations
from ladder.operations.player_operations import PlayerOperations
from ladder.services.lock_manager import PlayerLockManager
from ladder.services.notifications import (
    NotificationDispatcher, LoggingNotificationSink, RedisNotificationSink, DiscordNotificationSink
)
from ladder.utils.clock import Clock
from ladder.utils.embeds import LadderEmbeds
from ladder.utils.exceptions import LadderError
from ladder.utils.logger import setup_logger
from ladder.utils.redis_utils import RedisUtils

class LadderBot(commands.Bot):
    def __init__(self):
        intents = discord.Intents.default()
        intents.guilds = True
        intents.members = True

        super().__init__(
            command_prefix=Config.COMMAND_PREFIX,
            intents=intents,
            help_command=None
        )

        # Attach app command error handler
        self.tree.on_error = self.on_app_command_error

        self.db: Optional[Database] = None
        self.redis_client = None
        self.notifier: Optional[NotificationDispatcher] = None
        self.challenge_ops: Optional[ChallengeOperations] = None
        self.player_ops: Optional[PlayerOperations] = None
        self.logger = setup_logger(__name__)

    async def setup_hook(self):
        """Called when the bot is starting up"""
        self.logger.info("Setting up Ladder Bot...")

        # Initialize database
        self.db = Database()
        await self.db.initialize()

        # Notifications: log always, Redis when configured, Discord channel + DMs
        settings = LadderSettings.from_config()
        self.notifier = NotificationDispatcher(
            [LoggingNotificationSink()], timeout=settings.notification_timeout
        )
        self.redis_client = await RedisUtils.create_redis_client()
        if self.redis_client:
            self.notifier.add_sink(RedisNotificationSink(self.redis_client))
        self.notifier.add_sink(DiscordNotificationSink(self, Config.LADDER_CHANNEL_ID or None))
        self.logger.info(f"Notification sinks: {[sink.name for sink in self.notifier.sinks]}")

        # Both operation sets share one clock, lock manager and notifier
        clock = Clock()
        locks = PlayerLockManager()
        self.challenge_ops = ChallengeOperations(
            self.db, settings=settings, clock=clock, notifier=self.notifier, locks=locks
        )
        self.player_ops = PlayerOperations(
            self.db, clock=clock, notifier=self.notifier, locks=locks,
            conflict_retries=settings.conflict_retries
        )

        integrity = await self.player_ops.verify_rank_integrity()
        if integrity['integrity_check']:
            self.logger.info(f"Rank integrity verified for {integrity['player_count']} players")

        # Load cogs
        await self.load_cogs()

        # Sync slash commands
        await self._sync_commands()

        self.logger.info("Ladder Bot setup complete!")

    async def load_cogs(self):
        """Load all cogs"""
        cogs_to_load = [
            'ladder.cogs.ladder',
        ]

        for cog in cogs_to_load:
            try:
                await self.load_extension(cog)
                self.logger.info(f"Loaded cog: {cog}")
            except Exception as e:
                self.logger.error(f"Failed to load cog {cog}: {e}", exc_info=True)

    async def _sync_commands(self):
        """Push slash commands to the configured guilds, or globally when none are set"""
        if not self.tree.get_commands():
            self.logger.warning("No ladder commands registered; skipping sync")
            return

        guild_ids = Config.get_guild_ids()
        if not guild_ids:
            # Global propagation can take up to an hour
            try:
                synced = await self.tree.sync()
                self.logger.info(f"Synced {len(synced)} ladder command(s) globally")
            except discord.HTTPException as e:
                self.logger.error(f"Global command sync failed: {e}", exc_info=True)
            return

        for guild_id in guild_ids:
            guild = discord.Object(id=guild_id)
            self.tree.copy_global_to(guild=guild)
            try:
                synced = await self.tree.sync(guild=guild)
            except discord.Forbidden:
                self.logger.error(f"Missing 'applications.commands' scope in guild {guild_id}; ladder commands unavailable there")
            except discord.HTTPException as e:
                self.logger.error(f"Command sync to guild {guild_id} failed ({e.status}): {e.text}")
            else:
                self.logger.info(f"Synced {[cmd.name for cmd in synced]} to guild {guild_id}")

    async def on_ready(self):
        """Called when the bot is ready"""
        self.logger.info(f'{self.user} has connected to Discord!')
        self.logger.info(f'Bot is in {len(self.guilds)} guilds')

        await self.change_presence(
            activity=discord.Game(name="Ladder | /ladder-standings")
        )

    async def on_app_command_error(self, interaction: discord.Interaction, error: app_commands.AppCommandError):
        """Last-resort handler for slash command failures the cog did not render itself"""
        command_name = interaction.command.name if interaction.command else 'Unknown'
        original = getattr(error, 'original', error)

        if isinstance(original, LadderError):
            self.logger.warning(f"/{command_name} by {interaction.user} failed: {original}")
            embed = LadderEmbeds.error_embed(original)
        elif isinstance(error, app_commands.CommandOnCooldown):
            embed = discord.Embed(
                description=f"❌ Slow down! Try again in {error.retry_after:.1f} seconds.",
                color=discord.Color.red()
            )
        elif isinstance(error, app_commands.CheckFailure):
            self.logger.info(f"/{command_name} denied for {interaction.user}")
            embed = discord.Embed(description="❌ You can't use this command.", color=discord.Color.red())
        else:
            self.logger.error(f"Unhandled error in /{command_name}: {error}", exc_info=original)
            embed = discord.Embed(
                description="❌ Something went wrong updating the ladder. Nothing was changed; please try again.",
                color=discord.Color.red()
            )

        try:
            if interaction.response.is_done():
                await interaction.followup.send(embed=embed, ephemeral=True)
            else:
                await interaction.response.send_message(embed=embed, ephemeral=True)
        except discord.HTTPException as e:
            self.logger.error(f"Could not report /{command_name} failure to {interaction.user}: {e}")

    async def close(self):
        """Cleanup when bot is shutting down"""
        self.logger.info("Shutting down Ladder Bot...")

        if self.notifier:
            await self.notifier.drain()
            self.logger.info(f"Notification stats: {self.notifier.stats}")

        if self.redis_client:
            await self.redis_client.aclose()
            self.redis_client = None

        if self.db:
            await self.db.close()
            self.db = None

        await super().close()

async def main():
    """Validate configuration and run the bot until it disconnects"""
    Config.validate()

    bot = LadderBot()
    try:
        await bot.start(Config.DISCORD_TOKEN)
    finally:
        await bot.close()

def run():
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logging.getLogger('ladder').info("Interrupted; ladder bot stopped")

if __name__ == "__main__":
    run()
