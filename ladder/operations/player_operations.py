"""
Player Operations Module

Registration and profile management for ladder players.

Key functionality:
- register_player(): join the ladder at the bottom (rank N+1)
- change_username(): rename with the same validation as registration
- standings listing, grouped by tier for display
- verify_rank_integrity(): audit that ranks form the permutation 1..N
"""

from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ladder.constants import LadderConstants
from ladder.database.models import Player
from ladder.database.player_directory import PlayerDirectory
from ladder.operations.ranking_service import RankingService
from ladder.services.base import BaseService
from ladder.services.lock_manager import PlayerLockManager
from ladder.services.notifications import NotificationDispatcher, PLAYER_NEW, PLAYER_CHANGE_USERNAME
from ladder.utils.clock import Clock
from ladder.utils.exceptions import (
    InvalidUsernameError, UsernameTakenError, AlreadyRegisteredError, PlayerNotFoundError
)
from ladder.utils.logger import setup_logger

logger = setup_logger(__name__)


class PlayerOperations(BaseService):
    """
    Business logic operations for ladder players.

    Shares its lock manager and notifier with ChallengeOperations so a rename
    never interleaves with a challenge touching the same player.
    """

    def __init__(
        self,
        db,
        clock: Optional[Clock] = None,
        notifier: Optional[NotificationDispatcher] = None,
        locks: Optional[PlayerLockManager] = None,
        directory: Optional[PlayerDirectory] = None,
        conflict_retries: int = 3
    ):
        super().__init__(db)
        self.clock = clock or Clock()
        self.notifier = notifier or NotificationDispatcher()
        self.locks = locks or PlayerLockManager()
        self.directory = directory or PlayerDirectory()
        self.conflict_retries = conflict_retries

    @staticmethod
    def _clean_username(username: Optional[str]) -> str:
        """
        Trim and validate a username.

        Raises:
            InvalidUsernameError: If the name is empty or too long
        """
        if not isinstance(username, str) or not username.strip():
            raise InvalidUsernameError("A username is required.")

        cleaned = username.strip()
        if len(cleaned) > LadderConstants.MAX_USERNAME_LENGTH:
            raise InvalidUsernameError(
                f"Usernames can be at most {LadderConstants.MAX_USERNAME_LENGTH} characters."
            )
        return cleaned

    async def register_player(self, username: str, discord_id: Optional[int] = None) -> Player:
        """
        Add a player at the bottom of the ladder.

        Args:
            username: Display name, unique ignoring case
            discord_id: Discord account to link, if any

        Returns:
            The new player, ranked one below the current lowest

        Raises:
            InvalidUsernameError: If the username is empty or too long
            UsernameTakenError: If another player already uses the name
            AlreadyRegisteredError: If the Discord account is already linked
        """
        cleaned = self._clean_username(username)

        async def _work(session: AsyncSession) -> Player:
            if discord_id is not None:
                existing = await self.directory.get_by_discord_id(session, discord_id)
                if existing:
                    raise AlreadyRegisteredError(existing.username)

            if await self.directory.get_by_username(session, cleaned):
                raise UsernameTakenError(cleaned)

            rank = await self.directory.lowest_rank(session) + 1
            player = await self.directory.create(
                session, cleaned, rank, discord_id=discord_id, registered_at=self.clock.now()
            )
            logger.info(f"Registered player {player.username} (id={player.id}) at rank #{rank}")
            return player

        async def register():
            async with self.locks.hold_registry():
                return await self.run_atomic('register_player', _work)

        async def _run():
            player = await self.execute_with_retry(register, self.conflict_retries)
            self.notifier.dispatch(PLAYER_NEW, {'player': player.to_payload()})
            return player

        return await self.run_shielded('register_player', _run())

    async def change_username(self, player_id: int, new_username: str) -> Player:
        """
        Rename a player.

        Raises:
            InvalidUsernameError, UsernameTakenError, PlayerNotFoundError
        """
        cleaned = self._clean_username(new_username)

        async def _work(session: AsyncSession):
            player = await self.directory.get(session, player_id)
            if player is None:
                raise PlayerNotFoundError(player_id)

            taken_by = await self.directory.get_by_username(session, cleaned)
            if taken_by is not None and taken_by.id != player_id:
                raise UsernameTakenError(cleaned)

            old_username = player.username
            await self.directory.set_username(session, player_id, cleaned)
            logger.info(f"Player {player_id} renamed from {old_username} to {cleaned}")
            return player, old_username

        async def rename():
            async with self.locks.hold(player_id):
                return await self.run_atomic('change_username', _work)

        async def _run():
            player, old_username = await self.execute_with_retry(rename, self.conflict_retries)
            self.notifier.dispatch(
                PLAYER_CHANGE_USERNAME,
                {'player': player.to_payload(), 'old_username': old_username}
            )
            return player

        return await self.run_shielded('change_username', _run())

    async def get_player(self, player_id: int) -> Player:
        async def _work(session: AsyncSession) -> Player:
            player = await self.directory.get(session, player_id)
            if player is None:
                raise PlayerNotFoundError(player_id)
            return player

        return await self.run_readonly('get_player', _work)

    async def get_player_by_discord_id(self, discord_id: int) -> Optional[Player]:
        """Linked player for a Discord account, or None if they have not joined"""
        async def _work(session: AsyncSession):
            return await self.directory.get_by_discord_id(session, discord_id)

        return await self.run_readonly('get_player_by_discord_id', _work)

    async def list_standings(self) -> List[Player]:
        async def _work(session: AsyncSession):
            return await self.directory.list_ranked(session)

        return await self.run_readonly('list_standings', _work)

    async def standings_by_tier(self) -> Dict[int, List[Player]]:
        return RankingService.group_by_tier(await self.list_standings())

    async def verify_rank_integrity(self) -> Dict[str, Any]:
        """
        Check that ranks are exactly 1..N with no gaps or duplicates.

        Returns:
            Dict with player_count, missing_ranks, duplicate_ranks,
            invalid_ranks and integrity_check (True when all are empty)
        """
        players = await self.list_standings()
        ranks = [player.rank for player in players]
        expected = set(range(1, len(players) + 1))

        seen = set()
        duplicates = set()
        for rank in ranks:
            if rank in seen:
                duplicates.add(rank)
            seen.add(rank)

        report = {
            'player_count': len(players),
            'missing_ranks': sorted(expected - seen),
            'duplicate_ranks': sorted(duplicates),
            'invalid_ranks': sorted(rank for rank in seen if rank < LadderConstants.TOP_RANK),
        }
        report['integrity_check'] = not (
            report['missing_ranks'] or report['duplicate_ranks'] or report['invalid_ranks']
        )

        if not report['integrity_check']:
            logger.error(f"Rank integrity check failed: {report}")
        return report
