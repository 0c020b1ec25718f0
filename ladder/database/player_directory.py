"""
Player data access for the ladder.

Every method takes the caller's AsyncSession so several reads and writes can
share one transaction. Lookups return None for unknown players; mapping that
to a domain error is the caller's job.
"""

from datetime import datetime
from typing import List, Optional
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from ladder.database.models import Player
from ladder.utils.exceptions import PlayerNotFoundError
from ladder.utils.logger import setup_logger

logger = setup_logger(__name__)


class PlayerDirectory:
    """Read/write access to player records with rank-indexed queries"""

    async def get(self, session: AsyncSession, player_id: int) -> Optional[Player]:
        """Get a player by id, refreshing ranks already held in the session"""
        result = await session.execute(
            select(Player)
            .where(Player.id == player_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_by_username(self, session: AsyncSession, username: str) -> Optional[Player]:
        result = await session.execute(
            select(Player).where(func.lower(Player.username) == username.lower())
        )
        return result.scalar_one_or_none()

    async def get_by_discord_id(self, session: AsyncSession, discord_id: int) -> Optional[Player]:
        result = await session.execute(
            select(Player).where(Player.discord_id == discord_id)
        )
        return result.scalar_one_or_none()

    async def lowest_rank(self, session: AsyncSession) -> int:
        """Numerically largest (worst) rank on the ladder, 0 when empty"""
        result = await session.execute(select(func.max(Player.rank)))
        return result.scalar() or 0

    async def list_ranked(self, session: AsyncSession) -> List[Player]:
        """All players ordered from best to worst rank"""
        result = await session.execute(
            select(Player).order_by(Player.rank.asc())
        )
        return list(result.scalars().all())

    async def create(
        self,
        session: AsyncSession,
        username: str,
        rank: int,
        discord_id: Optional[int] = None,
        registered_at: Optional[datetime] = None
    ) -> Player:
        player = Player(username=username, rank=rank, discord_id=discord_id)
        if registered_at is not None:
            player.registered_at = registered_at
        session.add(player)
        await session.flush()
        return player

    async def set_rank(self, session: AsyncSession, player_id: int, rank: int) -> int:
        """
        Set a player's rank and flush immediately.

        Returns:
            The rank the player held before the update

        Raises:
            StaleDataError: If another transaction updated the player concurrently
            PlayerNotFoundError: If the player does not exist
        """
        player = await session.get(Player, player_id)
        if player is None:
            raise PlayerNotFoundError(player_id)

        old_rank = player.rank
        player.rank = rank
        await session.flush()
        logger.debug(f"Player {player_id} rank {old_rank} -> {rank}")
        return old_rank

    async def set_last_game(self, session: AsyncSession, player_id: int, played_at: datetime) -> None:
        player = await session.get(Player, player_id)
        if player is None:
            raise PlayerNotFoundError(player_id)

        player.last_game = played_at
        await session.flush()

    async def set_username(self, session: AsyncSession, player_id: int, username: str) -> Player:
        player = await session.get(Player, player_id)
        if player is None:
            raise PlayerNotFoundError(player_id)

        player.username = username
        await session.flush()
        return player
