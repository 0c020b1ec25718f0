"""
Shared embed utilities for the ladder bot.

Provides the embeds used both by slash command responses and by the Discord
notification sink, so a ladder event looks the same wherever it is shown.
"""

import discord
from typing import Any, Dict, Iterable, List, Optional

from ladder.constants import UIConstants
from ladder.utils.exceptions import (
    LadderError, ValidationError, PolicyViolation, NotFoundError, ExpiredError, ConflictError
)


def _name(player: Optional[Dict[str, Any]]) -> str:
    if not player:
        return "Unknown"
    return player.get('username') or "Unknown"


def _rank(player: Optional[Dict[str, Any]]) -> str:
    if not player or player.get('rank') is None:
        return ""
    return f" (#{player['rank']})"


class LadderEmbeds:
    """Embed factory for ladder events and command responses."""

    @staticmethod
    def event_embed(event_name: str, payload: Dict[str, Any]) -> discord.Embed:
        """Build the broadcast embed for a ladder event payload."""
        challenger = payload.get('challenger')
        challengee = payload.get('challengee')

        if event_name == 'challenge:issued':
            title = f"{UIConstants.SWORDS_EMOJI} Challenge Issued"
            description = (
                f"**{_name(challenger)}**{_rank(challenger)} has challenged "
                f"**{_name(challengee)}**{_rank(challengee)}!"
            )
            color = UIConstants.DEFAULT_EMBED_COLOR
        elif event_name == 'challenge:revoked':
            title = "Challenge Revoked"
            description = f"**{_name(challenger)}** revoked their challenge to **{_name(challengee)}**."
            color = UIConstants.NEUTRAL_COLOR
        elif event_name == 'challenge:resolved':
            winner, loser = payload.get('winner'), payload.get('loser')
            scores = [payload.get('challenger_score'), payload.get('challengee_score')]
            description = f"**{_name(winner)}** defeated **{_name(loser)}**"
            if None not in scores:
                description += f" {max(scores)}-{min(scores)}"
            description += "."
            title = f"{UIConstants.TROPHY_EMOJI} Challenge Resolved"
            color = UIConstants.SUCCESS_COLOR
        elif event_name == 'challenge:forfeited':
            title = "Challenge Forfeited"
            description = f"**{_name(challengee)}** forfeited to **{_name(challenger)}**."
            color = UIConstants.WARNING_COLOR
        elif event_name == 'player:new':
            player = payload.get('player')
            title = "New Challenger"
            description = f"**{_name(player)}** joined the ladder at rank #{player.get('rank') if player else '?'}."
            color = UIConstants.DEFAULT_EMBED_COLOR
        elif event_name == 'player:change:username':
            title = "Username Changed"
            description = f"**{payload.get('old_username')}** is now known as **{_name(payload.get('player'))}**."
            color = UIConstants.NEUTRAL_COLOR
        else:
            title = event_name
            description = None
            color = UIConstants.NEUTRAL_COLOR

        embed = discord.Embed(title=title, description=description, color=color)
        if payload.get('swapped'):
            embed.add_field(name="Ladder Update", value="Ranks have been swapped.", inline=False)
        if payload.get('challenge_id') is not None:
            embed.set_footer(text=f"Challenge #{payload['challenge_id']}")
        return embed

    @staticmethod
    def participant_discord_ids(payload: Dict[str, Any]) -> List[int]:
        """Discord ids of every linked player named in a payload, without duplicates."""
        ids = []
        for key in ('challenger', 'challengee', 'winner', 'loser', 'player'):
            player = payload.get(key)
            discord_id = player.get('discord_id') if player else None
            if discord_id and discord_id not in ids:
                ids.append(discord_id)
        return ids

    @staticmethod
    def standings_embed(tiers: Dict[int, List[Any]]) -> discord.Embed:
        """Ladder standings grouped by tier, one field per tier."""
        embed = discord.Embed(
            title=f"{UIConstants.TROPHY_EMOJI} Ladder Standings",
            color=UIConstants.GOLD_RANK_COLOR
        )
        if not tiers:
            embed.description = "Nobody has joined the ladder yet. Use `/ladder-join` to be the first!"
            return embed

        for tier in sorted(tiers)[:UIConstants.MAX_EMBED_FIELDS]:
            lines = [f"#{player.rank} {player.username}" for player in tiers[tier]]
            embed.add_field(name=f"Tier {tier}", value="\n".join(lines), inline=False)

        if len(tiers) > UIConstants.MAX_EMBED_FIELDS:
            embed.set_footer(text=f"Showing the top {UIConstants.MAX_EMBED_FIELDS} tiers")
        return embed

    @staticmethod
    def challenges_embed(username: str, challenges) -> discord.Embed:
        """Incoming, outgoing and recent resolved challenges for one player."""
        embed = discord.Embed(
            title=f"{UIConstants.SWORDS_EMOJI} Challenges: {username}",
            color=UIConstants.DEFAULT_EMBED_COLOR
        )
        embed.add_field(
            name="Incoming",
            value=LadderEmbeds._challenge_lines(challenges.incoming) or "None",
            inline=False
        )
        embed.add_field(
            name="Outgoing",
            value=LadderEmbeds._challenge_lines(challenges.outgoing) or "None",
            inline=False
        )
        recent = challenges.resolved[:UIConstants.RECENT_RESULTS_LIMIT]
        embed.add_field(
            name="Recent Results",
            value=LadderEmbeds._challenge_lines(recent, with_winner=True) or "None",
            inline=False
        )
        return embed

    @staticmethod
    def _challenge_lines(challenges: Iterable[Any], with_winner: bool = False) -> str:
        lines = []
        for challenge in challenges:
            line = f"`#{challenge.id}` {challenge.challenger.username} vs {challenge.challengee.username}"
            if with_winner and challenge.winner_id is not None:
                winner = challenge.challenger if challenge.winner_id == challenge.challenger_id else challenge.challengee
                line += f" - won by **{winner.username}**"
                if challenge.challenger_score is not None:
                    line += f" ({challenge.challenger_score}-{challenge.challengee_score})"
                else:
                    line += " (forfeit)"
            lines.append(line)
        return "\n".join(lines)

    @staticmethod
    def expired_embed(challenges: List[Any]) -> discord.Embed:
        """Open challenges past their window; each challengee must forfeit"""
        embed = discord.Embed(
            title="Expired Challenges",
            color=UIConstants.WARNING_COLOR
        )
        if not challenges:
            embed.description = "No expired challenges."
            return embed

        lines = [
            f"{line} - **{challenge.challengee.username}** must forfeit"
            for line, challenge in zip(LadderEmbeds._challenge_lines(challenges).split("\n"), challenges)
        ]
        embed.description = "\n".join(lines)
        return embed

    @staticmethod
    def record_embed(username: str, record) -> discord.Embed:
        embed = discord.Embed(
            title=f"Record: {username}",
            color=UIConstants.DEFAULT_EMBED_COLOR
        )
        embed.add_field(name="Wins", value=str(record.wins), inline=True)
        embed.add_field(name="Losses", value=str(record.losses), inline=True)
        return embed

    @staticmethod
    def error_embed(error: LadderError) -> discord.Embed:
        """Render a ladder error with its user-facing message."""
        if isinstance(error, ValidationError):
            title = "Invalid Request"
        elif isinstance(error, PolicyViolation):
            title = "Not Allowed"
        elif isinstance(error, NotFoundError):
            title = "Not Found"
        elif isinstance(error, ExpiredError):
            title = "Challenge Expired"
        elif isinstance(error, ConflictError):
            title = "Please Retry"
        else:
            title = "Ladder Error"

        return discord.Embed(
            title=f"❌ {title}",
            description=error.user_message,
            color=UIConstants.ERROR_COLOR
        )

    @staticmethod
    def success_embed(title: str, description: str) -> discord.Embed:
        return discord.Embed(
            title=f"✅ {title}",
            description=description,
            color=UIConstants.SUCCESS_COLOR
        )
