from sqlalchemy import (
    Column, Integer, String, DateTime, BigInteger, ForeignKey, Index, CheckConstraint, text
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func
from enum import Enum
from typing import Optional

Base = declarative_base()


class ChallengeState(Enum):
    """Derived challenge state. EXPIRED is an OPEN challenge past its window."""
    OPEN = "open"
    EXPIRED = "expired"
    RESOLVED = "resolved"


def make_pair_key(player_a_id: int, player_b_id: int) -> str:
    """Canonical key for an unordered pair of players"""
    low, high = sorted((player_a_id, player_b_id))
    return f"{low}:{high}"


class Player(Base):
    __tablename__ = 'players'

    id = Column(Integer, primary_key=True)
    username = Column(String(100), nullable=False, unique=True)
    discord_id = Column(BigInteger, unique=True, nullable=True, index=True)

    # Ladder standing: 1 is best. Unique so two players can never share a rank;
    # the swap protocol parks one player on a sentinel value mid-exchange.
    rank = Column(Integer, nullable=False, unique=True)
    last_game = Column(DateTime, nullable=True)

    # Metadata
    registered_at = Column(DateTime, default=func.now())
    version = Column(Integer, nullable=False, default=1)

    __mapper_args__ = {'version_id_col': version}

    __table_args__ = (
        CheckConstraint('rank >= 1 OR rank = -1', name='ck_player_rank_valid'),
    )

    def to_payload(self) -> dict:
        """Public view of the player used in notification payloads"""
        return {
            'id': self.id,
            'username': self.username,
            'rank': self.rank,
            'discord_id': self.discord_id,
        }

    def __repr__(self):
        return f"<Player(id={self.id}, username='{self.username}', rank={self.rank})>"


class Challenge(Base):
    __tablename__ = 'challenges'

    id = Column(Integer, primary_key=True)
    challenger_id = Column(Integer, ForeignKey('players.id'), nullable=False, index=True)
    challengee_id = Column(Integer, ForeignKey('players.id'), nullable=False, index=True)
    pair_key = Column(String(50), nullable=False)

    # Timestamps (set by the store from the engine clock)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)

    # Result: winner_id NULL means the challenge is still open
    winner_id = Column(Integer, ForeignKey('players.id'), nullable=True)
    challenger_score = Column(Integer, nullable=True)
    challengee_score = Column(Integer, nullable=True)

    # Relationships
    challenger = relationship("Player", foreign_keys=[challenger_id], lazy='joined', innerjoin=True)
    challengee = relationship("Player", foreign_keys=[challengee_id], lazy='joined', innerjoin=True)

    __table_args__ = (
        CheckConstraint('challenger_id != challengee_id', name='ck_challenge_distinct_players'),
        CheckConstraint('challenger_score IS NULL OR challenger_score >= 0', name='ck_challenger_score_positive'),
        CheckConstraint('challengee_score IS NULL OR challengee_score >= 0', name='ck_challengee_score_positive'),
        # At most one open challenge per unordered pair
        Index(
            'uq_challenges_open_pair', 'pair_key', unique=True,
            sqlite_where=text('winner_id IS NULL'),
            postgresql_where=text('winner_id IS NULL'),
        ),
        Index('idx_challenges_pair_updated', 'pair_key', 'updated_at'),
    )

    @property
    def is_resolved(self) -> bool:
        return self.winner_id is not None

    @property
    def loser_id(self) -> Optional[int]:
        if self.winner_id is None:
            return None
        return self.challengee_id if self.winner_id == self.challenger_id else self.challenger_id

    def involves(self, player_id: int) -> bool:
        return player_id in (self.challenger_id, self.challengee_id)

    def __repr__(self):
        return (
            f"<Challenge(id={self.id}, challenger={self.challenger_id}, "
            f"challengee={self.challengee_id}, winner={self.winner_id})>"
        )
