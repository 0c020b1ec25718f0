"""
Challenge data access for the ladder.

Open challenges have no winner; resolved challenges carry a winner and, unless
forfeited, both scores. Queries that take two players ignore direction unless
their name says otherwise.
"""

from datetime import datetime
from typing import List, Optional
from sqlalchemy import select, delete, and_, or_, func
from sqlalchemy.ext.asyncio import AsyncSession

from ladder.database.models import Challenge, make_pair_key
from ladder.utils.logger import setup_logger

logger = setup_logger(__name__)


class ChallengeStore:
    """Persistence of challenge records with the predicates the engine needs"""

    async def create(
        self,
        session: AsyncSession,
        challenger_id: int,
        challengee_id: int,
        created_at: datetime
    ) -> Challenge:
        challenge = Challenge(
            challenger_id=challenger_id,
            challengee_id=challengee_id,
            pair_key=make_pair_key(challenger_id, challengee_id),
            created_at=created_at,
            updated_at=created_at
        )
        session.add(challenge)
        await session.flush()

        # Reload so challenger/challengee are populated for the caller
        return await self.get(session, challenge.id)

    async def get(self, session: AsyncSession, challenge_id: int) -> Optional[Challenge]:
        result = await session.execute(
            select(Challenge)
            .where(Challenge.id == challenge_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def delete_open(self, session: AsyncSession, challenger_id: int, challengee_id: int) -> int:
        """
        Delete the open challenge(s) issued by challenger to challengee.

        Returns:
            Number of deleted rows
        """
        result = await session.execute(
            delete(Challenge)
            .where(
                and_(
                    Challenge.challenger_id == challenger_id,
                    Challenge.challengee_id == challengee_id,
                    Challenge.winner_id.is_(None)
                )
            )
            .execution_options(synchronize_session='fetch')
        )
        return result.rowcount

    async def find_open_between(self, session: AsyncSession, player_a_id: int, player_b_id: int) -> List[Challenge]:
        """Open challenges between two players in either direction"""
        result = await session.execute(
            select(Challenge).where(
                and_(
                    Challenge.pair_key == make_pair_key(player_a_id, player_b_id),
                    Challenge.winner_id.is_(None)
                )
            )
        )
        return list(result.scalars().all())

    async def find_open_for_pair(self, session: AsyncSession, challenger_id: int, challengee_id: int) -> List[Challenge]:
        """Open challenges issued by challenger to challengee (direction matters)"""
        result = await session.execute(
            select(Challenge)
            .where(
                and_(
                    Challenge.challenger_id == challenger_id,
                    Challenge.challengee_id == challengee_id,
                    Challenge.winner_id.is_(None)
                )
            )
            .order_by(Challenge.created_at.asc())
        )
        return list(result.scalars().all())

    async def find_open_by_challenger(self, session: AsyncSession, player_id: int) -> List[Challenge]:
        result = await session.execute(
            select(Challenge)
            .where(and_(Challenge.challenger_id == player_id, Challenge.winner_id.is_(None)))
            .order_by(Challenge.created_at.asc())
        )
        return list(result.scalars().all())

    async def find_open_by_challengee(self, session: AsyncSession, player_id: int) -> List[Challenge]:
        result = await session.execute(
            select(Challenge)
            .where(and_(Challenge.challengee_id == player_id, Challenge.winner_id.is_(None)))
            .order_by(Challenge.created_at.asc())
        )
        return list(result.scalars().all())

    async def count_open(self, session: AsyncSession, player_id: int) -> tuple:
        """
        Count open challenges for a player.

        Returns:
            Tuple of (incoming, outgoing)
        """
        outgoing = await session.execute(
            select(func.count(Challenge.id))
            .where(and_(Challenge.challenger_id == player_id, Challenge.winner_id.is_(None)))
        )
        incoming = await session.execute(
            select(func.count(Challenge.id))
            .where(and_(Challenge.challengee_id == player_id, Challenge.winner_id.is_(None)))
        )
        return incoming.scalar() or 0, outgoing.scalar() or 0

    async def find_resolved_between(self, session: AsyncSession, player_a_id: int, player_b_id: int) -> List[Challenge]:
        """Resolved challenges between two players, most recently updated first"""
        result = await session.execute(
            select(Challenge)
            .where(
                and_(
                    Challenge.pair_key == make_pair_key(player_a_id, player_b_id),
                    Challenge.winner_id.isnot(None)
                )
            )
            .order_by(Challenge.updated_at.desc())
        )
        return list(result.scalars().all())

    async def find_resolved_for_player(self, session: AsyncSession, player_id: int) -> List[Challenge]:
        result = await session.execute(
            select(Challenge)
            .where(
                and_(
                    or_(Challenge.challenger_id == player_id, Challenge.challengee_id == player_id),
                    Challenge.winner_id.isnot(None)
                )
            )
            .order_by(Challenge.updated_at.desc())
        )
        return list(result.scalars().all())

    async def find_open(self, session: AsyncSession) -> List[Challenge]:
        result = await session.execute(
            select(Challenge)
            .where(Challenge.winner_id.is_(None))
            .order_by(Challenge.created_at.asc())
        )
        return list(result.scalars().all())

    async def resolve(
        self,
        session: AsyncSession,
        challenge: Challenge,
        winner_id: int,
        resolved_at: datetime,
        challenger_score: Optional[int] = None,
        challengee_score: Optional[int] = None
    ) -> Challenge:
        """Record the winner (and scores, if played) and stamp the resolution time"""
        challenge.winner_id = winner_id
        challenge.challenger_score = challenger_score
        challenge.challengee_score = challengee_score
        challenge.updated_at = resolved_at
        await session.flush()

        logger.debug(f"Challenge {challenge.id} resolved with winner {winner_id}")
        return challenge
