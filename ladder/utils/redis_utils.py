"""
Redis connection helpers for the ladder's live event channel.

Redis is optional: without a usable URL the bot runs with the logging and
Discord sinks only. Production URLs must use TLS (`rediss://`) and carry
credentials; DEBUG mode accepts local plain-text servers.
"""

import logging
from typing import Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from ladder.config import Config

logger = logging.getLogger(__name__)

LOCAL_DEV_URL = 'redis://localhost:6379'


class RedisUtils:
    """Resolve and vet the Redis URL, and open a checked client."""

    @staticmethod
    def is_secure_url(redis_url: Optional[str], debug: Optional[bool] = None) -> bool:
        """
        Whether a URL may be used for publishing ladder events.

        Args:
            redis_url: Candidate URL
            debug: Override for Config.DEBUG
        """
        if not redis_url:
            return False

        debug = Config.DEBUG if debug is None else debug
        if debug:
            if not redis_url.startswith(('redis://localhost', 'redis://127.0.0.1', 'rediss://')):
                logger.warning(f"Accepting non-local plain-text Redis in DEBUG mode: {redis_url}")
            return True

        if not redis_url.startswith('rediss://'):
            logger.error("Refusing Redis without TLS outside DEBUG mode (use rediss://)")
            return False
        if '@' not in redis_url:
            logger.error("Refusing Redis without credentials outside DEBUG mode")
            return False
        return True

    @staticmethod
    def resolve_url() -> Optional[str]:
        """Configured URL if it passes the checks, the local server in DEBUG, else None"""
        if Config.REDIS_URL:
            return Config.REDIS_URL if RedisUtils.is_secure_url(Config.REDIS_URL) else None

        if Config.DEBUG:
            logger.warning(f"REDIS_URL not set; DEBUG mode falls back to {LOCAL_DEV_URL}")
            return LOCAL_DEV_URL

        logger.info("REDIS_URL not set; live ladder events will not be published")
        return None

    @staticmethod
    async def create_redis_client() -> Optional[redis.Redis]:
        """Connected client, or None when Redis is disabled or unreachable"""
        redis_url = RedisUtils.resolve_url()
        if not redis_url:
            return None

        client = redis.from_url(redis_url)
        try:
            await client.ping()
        except (RedisError, OSError) as e:
            logger.error(f"Redis unreachable, live ladder events disabled: {e}")
            await client.aclose()
            return None

        logger.info("Connected to Redis for live ladder events")
        return client
