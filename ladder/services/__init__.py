"""
Services package for the ladder bot.

Shared infrastructure used by the operations layer: transactional base
service, per-player locking and event notification.
"""

from .base import BaseService
from .lock_manager import PlayerLockManager
from .notifications import (
    NotificationDispatcher, NotificationSink, LoggingNotificationSink,
    RedisNotificationSink, DiscordNotificationSink
)

__all__ = [
    'BaseService', 'PlayerLockManager', 'NotificationDispatcher', 'NotificationSink',
    'LoggingNotificationSink', 'RedisNotificationSink', 'DiscordNotificationSink'
]
