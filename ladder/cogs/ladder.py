"""
Ladder slash commands.

Thin Discord surface over ChallengeOperations and PlayerOperations. Commands
resolve Discord members to their linked ladder players, call one operation and
render the result. LadderErrors are shown to the caller as ephemeral error
embeds; anything else goes to the bot's global app command error handler.
"""

import discord
from datetime import timezone
from discord.ext import commands
from discord import app_commands
from typing import Optional
import logging

from ladder.config import Config
from ladder.database.models import Player
from ladder.utils.embeds import LadderEmbeds
from ladder.utils.exceptions import LadderError, NotFoundError, PolicyViolation

logger = logging.getLogger(__name__)


class NotOnLadderError(NotFoundError):
    def __init__(self, display_name: str):
        super().__init__(
            f"Discord member {display_name} has no ladder player",
            f"{display_name} has not joined the ladder. Use `/ladder-join` first."
        )


class LadderCog(commands.Cog):
    """Challenge ladder commands"""

    def __init__(self, bot):
        self.bot = bot
        self.challenge_ops = bot.challenge_ops
        self.player_ops = bot.player_ops
        self.logger = logger

    async def _linked_player(self, member: discord.abc.User) -> Player:
        player = await self.player_ops.get_player_by_discord_id(member.id)
        if player is None:
            raise NotOnLadderError(member.display_name)
        return player

    async def _send(self, interaction: discord.Interaction, embed: discord.Embed, ephemeral: bool = False):
        if interaction.response.is_done():
            await interaction.followup.send(embed=embed, ephemeral=ephemeral)
        else:
            await interaction.response.send_message(embed=embed, ephemeral=ephemeral)

    async def _send_error(self, interaction: discord.Interaction, error: LadderError):
        command = interaction.command.name if interaction.command else 'Unknown'
        self.logger.info(f"/{command} by {interaction.user} rejected: {error}")
        await self._send(interaction, LadderEmbeds.error_embed(error), ephemeral=True)

    @app_commands.command(name="ladder-join", description="Join the ladder at the bottom rank")
    @app_commands.describe(username="Name to show on the ladder (defaults to your display name)")
    async def join(self, interaction: discord.Interaction, username: Optional[str] = None):
        try:
            player = await self.player_ops.register_player(
                username or interaction.user.display_name,
                discord_id=interaction.user.id
            )
        except LadderError as e:
            await self._send_error(interaction, e)
            return

        await self._send(interaction, LadderEmbeds.success_embed(
            "Welcome to the Ladder",
            f"You joined as **{player.username}** at rank #{player.rank}."
        ))

    @app_commands.command(name="ladder-username", description="Change your ladder username")
    @app_commands.describe(new_username="Your new ladder name")
    async def username(self, interaction: discord.Interaction, new_username: str):
        try:
            player = await self._linked_player(interaction.user)
            player = await self.player_ops.change_username(player.id, new_username)
        except LadderError as e:
            await self._send_error(interaction, e)
            return

        await self._send(interaction, LadderEmbeds.success_embed(
            "Username Updated", f"You are now **{player.username}**."
        ), ephemeral=True)

    @app_commands.command(name="ladder-challenge", description="Challenge a higher-ranked player")
    @app_commands.describe(opponent="The player you want to challenge")
    async def challenge(self, interaction: discord.Interaction, opponent: discord.Member):
        try:
            challenger = await self._linked_player(interaction.user)
            challengee = await self._linked_player(opponent)
            # The bot owner may run challenges outside the business-day window
            challenge = await self.challenge_ops.issue_challenge(
                challenger.id,
                challengee.id,
                allow_anytime=interaction.user.id == Config.OWNER_DISCORD_ID
            )
        except LadderError as e:
            await self._send_error(interaction, e)
            return

        expires = self.challenge_ops.expires_at(challenge)
        await self._send(interaction, LadderEmbeds.success_embed(
            "Challenge Issued",
            f"Challenge `#{challenge.id}`: **{challenge.challenger.username}** vs "
            f"**{challenge.challengee.username}**.\n"
            f"Play it before {discord.utils.format_dt(expires.replace(tzinfo=timezone.utc), 'f')}."
        ))

    @app_commands.command(name="ladder-revoke", description="Withdraw a challenge you issued")
    @app_commands.describe(opponent="The player you challenged")
    async def revoke(self, interaction: discord.Interaction, opponent: discord.Member):
        try:
            challenger = await self._linked_player(interaction.user)
            challengee = await self._linked_player(opponent)
            challenge = await self.challenge_ops.revoke_challenge(challenger.id, challengee.id)
        except LadderError as e:
            await self._send_error(interaction, e)
            return

        await self._send(interaction, LadderEmbeds.success_embed(
            "Challenge Revoked",
            f"Your challenge `#{challenge.id}` to **{challenge.challengee.username}** was withdrawn."
        ), ephemeral=True)

    @app_commands.command(name="ladder-resolve", description="Report the final score of a challenge")
    @app_commands.describe(
        challenge_id="Challenge number",
        challenger_score="Games won by the challenger",
        challengee_score="Games won by the challenged player"
    )
    async def resolve(
        self,
        interaction: discord.Interaction,
        challenge_id: int,
        challenger_score: app_commands.Range[int, 0],
        challengee_score: app_commands.Range[int, 0]
    ):
        try:
            await self._require_participant(interaction, challenge_id)
            outcome = await self.challenge_ops.resolve_challenge(challenge_id, challenger_score, challengee_score)
        except LadderError as e:
            await self._send_error(interaction, e)
            return

        description = f"**{outcome.winner.username}** defeated **{outcome.loser.username}**."
        if outcome.swapped:
            description += f"\n{outcome.winner.username} moves up to rank #{outcome.winner.rank}."
        await self._send(interaction, LadderEmbeds.success_embed("Challenge Resolved", description))

    @app_commands.command(name="ladder-forfeit", description="Forfeit a challenge issued to you")
    @app_commands.describe(challenge_id="Challenge number")
    async def forfeit(self, interaction: discord.Interaction, challenge_id: int):
        try:
            await self._require_participant(interaction, challenge_id, challengee_only=True)
            outcome = await self.challenge_ops.forfeit_challenge(challenge_id)
        except LadderError as e:
            await self._send_error(interaction, e)
            return

        await self._send(interaction, LadderEmbeds.success_embed(
            "Challenge Forfeited",
            f"**{outcome.loser.username}** forfeited to **{outcome.winner.username}**."
        ))

    async def _require_participant(
        self,
        interaction: discord.Interaction,
        challenge_id: int,
        challengee_only: bool = False
    ):
        """
        Only the two players (or the bot owner) may report on a challenge.

        A forfeit hands the win to the challenger, so only the challenged
        player may concede it.
        """
        if interaction.user.id == Config.OWNER_DISCORD_ID:
            return

        player = await self._linked_player(interaction.user)
        challenge = await self.challenge_ops.get_challenge(challenge_id)
        if challengee_only:
            if player.id != challenge.challengee_id:
                raise PolicyViolation(
                    f"{player.username} is not the challengee of challenge {challenge_id}",
                    "Only the challenged player can forfeit a challenge."
                )
        elif not challenge.involves(player.id):
            raise PolicyViolation(
                f"{player.username} is not part of challenge {challenge_id}",
                "You can only report challenges you are part of."
            )

    @app_commands.command(name="ladder-challenges", description="Show open and recent challenges")
    @app_commands.describe(member="Player to look up (defaults to you)")
    async def challenges(self, interaction: discord.Interaction, member: Optional[discord.Member] = None):
        try:
            player = await self._linked_player(member or interaction.user)
            challenges = await self.challenge_ops.get_challenges_for_player(player.id)
        except LadderError as e:
            await self._send_error(interaction, e)
            return

        await self._send(interaction, LadderEmbeds.challenges_embed(player.username, challenges), ephemeral=True)

    @app_commands.command(name="ladder-record", description="Show a player's win/loss record")
    @app_commands.describe(member="Player to look up (defaults to you)")
    async def record(self, interaction: discord.Interaction, member: Optional[discord.Member] = None):
        try:
            player = await self._linked_player(member or interaction.user)
            record = await self.challenge_ops.get_record(player.id)
        except LadderError as e:
            await self._send_error(interaction, e)
            return

        await self._send(interaction, LadderEmbeds.record_embed(player.username, record))

    @app_commands.command(name="ladder-standings", description="Show the ladder grouped by tier")
    async def standings(self, interaction: discord.Interaction):
        try:
            tiers = await self.player_ops.standings_by_tier()
        except LadderError as e:
            await self._send_error(interaction, e)
            return

        await self._send(interaction, LadderEmbeds.standings_embed(tiers))

    @app_commands.command(name="ladder-expired", description="List expired challenges awaiting a forfeit")
    async def expired(self, interaction: discord.Interaction):
        try:
            expired = await self.challenge_ops.list_expired_challenges()
        except LadderError as e:
            await self._send_error(interaction, e)
            return

        embed = LadderEmbeds.expired_embed(expired)
        await self._send(interaction, embed, ephemeral=True)


async def setup(bot):
    await bot.add_cog(LadderCog(bot))
