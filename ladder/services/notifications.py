"""
Ladder event notifications.

Lifecycle operations hand a finished event to the NotificationDispatcher after
their transaction has committed. The dispatcher fans the event out to every
configured sink as background tasks: delivery is best-effort, bounded by a
timeout, and a failing sink is logged and counted but never reaches the
operation that produced the event.

Events:
- challenge:issued, challenge:revoked, challenge:resolved, challenge:forfeited
- player:new, player:change:username
"""

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional, Set

import discord

from ladder.utils.embeds import LadderEmbeds

logger = logging.getLogger(__name__)

CHALLENGE_ISSUED = 'challenge:issued'
CHALLENGE_REVOKED = 'challenge:revoked'
CHALLENGE_RESOLVED = 'challenge:resolved'
CHALLENGE_FORFEITED = 'challenge:forfeited'
PLAYER_NEW = 'player:new'
PLAYER_CHANGE_USERNAME = 'player:change:username'


class NotificationSink:
    """One-way delivery of a ladder event to some outside audience."""

    name = 'sink'

    async def notify(self, event_name: str, payload: Dict[str, Any]) -> None:
        raise NotImplementedError


class LoggingNotificationSink(NotificationSink):
    """Writes every event to the log. Always configured."""

    name = 'log'

    async def notify(self, event_name: str, payload: Dict[str, Any]) -> None:
        logger.info(f"[{event_name}] {json.dumps(payload, default=str, sort_keys=True)}")


class RedisNotificationSink(NotificationSink):
    """Publishes events as JSON on `<prefix>:<event>` pub/sub channels."""

    name = 'redis'

    def __init__(self, client, channel_prefix: str = 'ladder'):
        self.client = client
        self.channel_prefix = channel_prefix

    def channel_for(self, event_name: str) -> str:
        return f"{self.channel_prefix}:{event_name}"

    async def notify(self, event_name: str, payload: Dict[str, Any]) -> None:
        message = json.dumps({'event': event_name, 'data': payload}, default=str)
        await self.client.publish(self.channel_for(event_name), message)


class DiscordNotificationSink(NotificationSink):
    """
    Broadcasts events to the ladder channel and sends each linked player a
    direct message, the bot's equivalent of a personal email notice.
    """

    name = 'discord'

    def __init__(self, bot, channel_id: Optional[int] = None):
        self.bot = bot
        self.channel_id = channel_id

    async def notify(self, event_name: str, payload: Dict[str, Any]) -> None:
        embed = LadderEmbeds.event_embed(event_name, payload)

        if self.channel_id:
            channel = self.bot.get_channel(self.channel_id) or await self.bot.fetch_channel(self.channel_id)
            await channel.send(embed=embed)

        for discord_id in LadderEmbeds.participant_discord_ids(payload):
            try:
                user = self.bot.get_user(discord_id) or await self.bot.fetch_user(discord_id)
                await user.send(embed=embed)
            except (discord.Forbidden, discord.NotFound) as e:
                # Player has DMs closed or left Discord; the broadcast still went out
                logger.info(f"Could not DM {discord_id} about {event_name}: {e}")


class NotificationDispatcher:
    """Fans ladder events out to sinks with per-delivery timeout and bookkeeping."""

    def __init__(self, sinks: Optional[List[NotificationSink]] = None, timeout: float = 5.0):
        self.sinks: List[NotificationSink] = list(sinks or [])
        self.timeout = timeout
        self.stats = {'dispatched': 0, 'delivered': 0, 'failed': 0}
        self._pending: Set[asyncio.Task] = set()

    def add_sink(self, sink: NotificationSink):
        self.sinks.append(sink)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def dispatch(self, event_name: str, payload: Dict[str, Any]) -> None:
        """Schedule delivery of one event to every sink and return immediately."""
        self.stats['dispatched'] += 1
        loop = asyncio.get_running_loop()
        for sink in self.sinks:
            task = loop.create_task(self._deliver(sink, event_name, payload))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def _deliver(self, sink: NotificationSink, event_name: str, payload: Dict[str, Any]):
        try:
            await asyncio.wait_for(sink.notify(event_name, payload), timeout=self.timeout)
            self.stats['delivered'] += 1
        except asyncio.TimeoutError:
            self.stats['failed'] += 1
            logger.error(f"Notification sink '{sink.name}' timed out delivering {event_name}")
        except Exception as e:
            # Background delivery must not affect the operation that produced the event
            self.stats['failed'] += 1
            logger.error(f"Notification sink '{sink.name}' failed delivering {event_name}: {e}", exc_info=True)

    async def drain(self):
        """Wait for all scheduled deliveries to finish (shutdown and tests)."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
