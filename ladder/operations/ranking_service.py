"""
Ranking Service - tier math and the rank swap protocol

Tiers are bands of consecutive ranks whose size grows by one each tier:
tier 1 holds rank 1, tier 2 holds ranks 2-3, tier 3 holds ranks 4-6, and so
on. Tier t ends at the triangular number T(t) = t(t+1)/2.

Swapping two players' ranks has to respect the unique constraint on
Player.rank, so the winner is parked on a sentinel rank while the loser takes
its place. The caller runs the swap inside its transaction while holding both
players' locks, so nobody else ever sees the sentinel.
"""

import math
from collections import defaultdict
from typing import Dict, Iterable, List
from sqlalchemy.ext.asyncio import AsyncSession

from ladder.constants import LadderConstants
from ladder.database.models import Player
from ladder.database.player_directory import PlayerDirectory
from ladder.utils.exceptions import InvalidRankError, InvalidTierError
from ladder.utils.logger import setup_logger

logger = setup_logger(__name__)


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


class RankingService:
    """Tier/rank math and the atomic rank swap."""

    def __init__(self, directory: PlayerDirectory):
        self.directory = directory

    @staticmethod
    def triangular(k: int) -> int:
        return k * (k + 1) // 2

    @staticmethod
    def tier_of(rank: int) -> int:
        """
        Tier containing the given rank.

        Raises:
            InvalidRankError: If rank is not an integer >= 1
        """
        if not _is_int(rank) or rank < 1:
            raise InvalidRankError(rank)

        tier = (math.isqrt(8 * rank + 1) - 1) // 2
        if RankingService.triangular(tier) < rank:
            tier += 1
        return tier

    @staticmethod
    def ranks_of(tier: int) -> range:
        """
        The ranks in a tier, ascending. Exactly `tier` of them.

        Raises:
            InvalidTierError: If tier is not an integer >= 1
        """
        if not _is_int(tier) or tier < 1:
            raise InvalidTierError(tier)

        first = RankingService.triangular(tier - 1) + 1
        return range(first, RankingService.triangular(tier) + 1)

    @staticmethod
    def players_in_tier(players: Iterable[Player], tier: int) -> List[Player]:
        ranks = RankingService.ranks_of(tier)
        return sorted((p for p in players if p.rank in ranks), key=lambda p: p.rank)

    @staticmethod
    def group_by_tier(players: Iterable[Player]) -> Dict[int, List[Player]]:
        """Group players by tier, each tier sorted best rank first. Parked players are skipped."""
        tiers = defaultdict(list)
        for player in sorted(players, key=lambda p: p.rank):
            if player.rank >= LadderConstants.TOP_RANK:
                tiers[RankingService.tier_of(player.rank)].append(player)
        return dict(tiers)

    @staticmethod
    def tier_gap(rank_a: int, rank_b: int) -> int:
        return abs(RankingService.tier_of(rank_a) - RankingService.tier_of(rank_b))

    async def swap_if_needed(self, session: AsyncSession, winner: Player, loser: Player) -> bool:
        """
        Give the winner the loser's rank if the winner was ranked below.

        Runs in three flushed steps through LadderConstants.TEMP_RANK so no
        two players ever hold the same rank in storage:
        winner -> sentinel, loser -> winner's rank, winner -> loser's rank.

        Returns:
            True if ranks were exchanged, False if the winner already stood higher
        """
        if winner.rank < loser.rank:
            logger.debug(f"Swapping rankings is not required ({winner.username} #{winner.rank} beat #{loser.rank})")
            return False

        logger.info(f"Swapping rankings between {winner.username} (#{winner.rank}) and {loser.username} (#{loser.rank})")
        winner_old_rank = await self.directory.set_rank(session, winner.id, LadderConstants.TEMP_RANK)
        loser_old_rank = await self.directory.set_rank(session, loser.id, winner_old_rank)
        await self.directory.set_rank(session, winner.id, loser_old_rank)
        logger.info("Swapping rankings completed successfully.")
        return True
