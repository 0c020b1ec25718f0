"""
Per-player mutual exclusion for ladder operations.

An operation holds the locks of every player it touches for its whole
validate-and-commit phase. Locks are always taken in ascending player id
order, so two operations sharing players can never deadlock.
"""

import asyncio
from collections import defaultdict
from contextlib import asynccontextmanager
import logging

logger = logging.getLogger(__name__)

class PlayerLockManager:
    """In-memory per-player locks.

    Note: This implementation keeps one asyncio.Lock per player id seen and
    only coordinates operations inside a single process. Running several bot
    instances against one database relies on the optimistic version check
    on Player rows instead.
    """

    def __init__(self):
        self._locks = defaultdict(asyncio.Lock)
        self._registry_lock = asyncio.Lock()  # Serializes rank allocation for new players

    @asynccontextmanager
    async def hold(self, *player_ids):
        """Hold the locks for all given players (None ids are ignored)."""
        ordered = sorted({player_id for player_id in player_ids if player_id is not None})
        acquired = []
        try:
            for player_id in ordered:
                lock = self._locks[player_id]
                await lock.acquire()
                acquired.append(lock)
            logger.debug(f"Holding player locks {ordered}")
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()

    @asynccontextmanager
    async def hold_registry(self):
        async with self._registry_lock:
            yield

    def is_locked(self, player_id: int) -> bool:
        lock = self._locks.get(player_id)
        return lock is not None and lock.locked()
