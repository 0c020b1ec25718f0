"""
Challenge Operations - the ladder's challenge lifecycle engine

A challenge goes OPEN -> RESOLVED (winner recorded, ranks possibly swapped) or
OPEN -> revoked (record deleted). An open challenge older than the allowed
number of business days is EXPIRED: it can no longer be revoked or resolved
with a score, only forfeited by the challengee.

Every mutating operation:
- validates its arguments before touching the database
- holds the locks of both players for its whole validate-and-commit phase
- runs validation and writes in a single transaction
- is retried on ConflictError and shielded from caller cancellation
- dispatches its notification only after the transaction has committed
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ladder.config import LadderSettings
from ladder.database.challenge_store import ChallengeStore
from ladder.database.models import Challenge, ChallengeState, Player
from ladder.database.player_directory import PlayerDirectory
from ladder.operations.ranking_service import RankingService
from ladder.services.base import BaseService
from ladder.services.lock_manager import PlayerLockManager
from ladder.services.notifications import (
    NotificationDispatcher, CHALLENGE_ISSUED, CHALLENGE_REVOKED, CHALLENGE_RESOLVED, CHALLENGE_FORFEITED
)
from ladder.utils.clock import Clock
from ladder.utils.exceptions import (
    MissingParticipantError, MissingChallengeError, InvalidScoreError, TiedScoreError,
    SelfChallengeError, ChallengeWindowClosedError, InvalidDirectionError, TierGapTooLargeError,
    DuplicateChallengeError, ChallengeQuotaExceededError, ReissueCooldownError, ChallengeClosedError,
    PlayerNotFoundError, ChallengeNotFoundError, ChallengeExpiredError
)
from ladder.utils.logger import setup_logger

logger = setup_logger(__name__)


@dataclass
class ChallengeOutcome:
    """Result of resolving or forfeiting a challenge"""
    challenge: Challenge
    winner: Player
    loser: Player
    swapped: bool


@dataclass
class PlayerChallenges:
    """A player's challenges: resolved (newest first), open outgoing and open incoming"""
    resolved: List[Challenge] = field(default_factory=list)
    outgoing: List[Challenge] = field(default_factory=list)
    incoming: List[Challenge] = field(default_factory=list)


@dataclass
class PlayerRecord:
    wins: int = 0
    losses: int = 0


def _is_score(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


class ChallengeOperations(BaseService):
    """Issue, revoke, resolve and forfeit ladder challenges"""

    def __init__(
        self,
        db,
        settings: Optional[LadderSettings] = None,
        clock: Optional[Clock] = None,
        notifier: Optional[NotificationDispatcher] = None,
        locks: Optional[PlayerLockManager] = None,
        directory: Optional[PlayerDirectory] = None,
        store: Optional[ChallengeStore] = None,
        ranking: Optional[RankingService] = None
    ):
        super().__init__(db)
        self.settings = settings or LadderSettings()
        self.clock = clock or Clock()
        self.notifier = notifier or NotificationDispatcher(timeout=self.settings.notification_timeout)
        self.locks = locks or PlayerLockManager()
        self.directory = directory or PlayerDirectory()
        self.store = store or ChallengeStore()
        self.ranking = ranking or RankingService(self.directory)

    # ------------------------------------------------------------------
    # Time policy
    # ------------------------------------------------------------------

    def expires_at(self, challenge: Challenge) -> datetime:
        """Moment after which an open challenge can only be forfeited"""
        return self.clock.add_business_days(challenge.created_at, self.settings.allowed_challenge_days)

    def is_expired(self, challenge: Challenge, now: Optional[datetime] = None) -> bool:
        if challenge.is_resolved:
            return False
        return self.expires_at(challenge) < (now or self.clock.now())

    def challenge_state(self, challenge: Challenge) -> ChallengeState:
        if challenge.is_resolved:
            return ChallengeState.RESOLVED
        if self.is_expired(challenge):
            return ChallengeState.EXPIRED
        return ChallengeState.OPEN

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def issue_challenge(
        self,
        challenger_id: Optional[int],
        challengee_id: Optional[int],
        allow_anytime: bool = False
    ) -> Challenge:
        """
        Issue a challenge from challenger to challengee.

        Checks run in a fixed order and the first failure is raised:
        participants, business day, existence, direction, tier gap, duplicate,
        quotas (challenger then challengee), reissue cooldown.

        Args:
            challenger_id: Player issuing the challenge (the lower-ranked one)
            challengee_id: Player being challenged
            allow_anytime: Skip the business-day restriction for this call

        Returns:
            The new open challenge with both players loaded

        Raises:
            ValidationError, PolicyViolation, NotFoundError: If a check fails
            ConflictError: If concurrent updates persisted through every retry
        """
        if challenger_id is None or challengee_id is None:
            raise MissingParticipantError()
        if challenger_id == challengee_id:
            raise SelfChallengeError()
        if not (self.settings.allow_challenges_on_weekends or allow_anytime):
            if not self.clock.is_business_day(self.clock.now()):
                raise ChallengeWindowClosedError()

        async def _work(session: AsyncSession) -> Challenge:
            challenger = await self._require_player(session, challenger_id)
            challengee = await self._require_player(session, challengee_id)

            # Lower number is the better standing; challenges only go upward
            if challenger.rank < challengee.rank:
                raise InvalidDirectionError(challenger.rank, challengee.rank)

            challenger_tier = self.ranking.tier_of(challenger.rank)
            challengee_tier = self.ranking.tier_of(challengee.rank)
            if abs(challenger_tier - challengee_tier) > 1:
                raise TierGapTooLargeError(challenger_tier, challengee_tier)

            if await self.store.find_open_between(session, challenger_id, challengee_id):
                raise DuplicateChallengeError()

            for player in (challenger, challengee):
                await self._check_quota(session, player)

            now = self.clock.now()
            await self._check_cooldown(session, challenger_id, challengee_id, now)

            challenge = await self.store.create(session, challenger_id, challengee_id, created_at=now)
            logger.info(
                f"Challenge {challenge.id} issued: {challenger.username} (#{challenger.rank}) -> "
                f"{challengee.username} (#{challengee.rank})"
            )
            return challenge

        async def issue():
            async with self.locks.hold(challenger_id, challengee_id):
                return await self.run_atomic('issue_challenge', _work)

        return await self._perform(
            'issue_challenge', issue, lambda challenge: (CHALLENGE_ISSUED, self._pair_payload(challenge))
        )

    async def revoke_challenge(self, challenger_id: Optional[int], challengee_id: Optional[int]) -> Challenge:
        """
        Withdraw an open, unexpired challenge issued by challenger to challengee.

        Returns:
            The deleted challenge record (detached from any session)

        Raises:
            MissingParticipantError: If either id is missing
            ChallengeNotFoundError: If no open challenge exists for the pair
            ChallengeExpiredError: If the challenge is past its window
        """
        if challenger_id is None or challengee_id is None:
            raise MissingParticipantError()

        async def _work(session: AsyncSession) -> Challenge:
            open_challenges = await self.store.find_open_for_pair(session, challenger_id, challengee_id)
            if not open_challenges:
                raise ChallengeNotFoundError()

            challenge = open_challenges[0]
            if self.is_expired(challenge):
                raise ChallengeExpiredError(challenge.challengee.username)

            await self.store.delete_open(session, challenger_id, challengee_id)
            logger.info(
                f"Challenge {challenge.id} revoked: {challenge.challenger.username} -> "
                f"{challenge.challengee.username}"
            )
            return challenge

        async def revoke():
            async with self.locks.hold(challenger_id, challengee_id):
                return await self.run_atomic('revoke_challenge', _work)

        return await self._perform(
            'revoke_challenge', revoke, lambda challenge: (CHALLENGE_REVOKED, self._pair_payload(challenge))
        )

    async def resolve_challenge(
        self,
        challenge_id: Optional[int],
        challenger_score: Optional[int],
        challengee_score: Optional[int]
    ) -> ChallengeOutcome:
        """
        Record the final score of an open challenge.

        The player with the higher score wins. If the winner was ranked below
        the loser, their ranks are swapped in the same transaction.

        Raises:
            MissingChallengeError: If challenge_id is missing
            InvalidScoreError: If a score is missing, negative or not an integer,
                or fewer than two games were played
            TiedScoreError: If both scores are equal
            ChallengeNotFoundError: If the challenge does not exist
            ChallengeClosedError: If the challenge is already resolved
            ChallengeExpiredError: If the challenge is past its window
        """
        if challenge_id is None:
            raise MissingChallengeError()
        self._validate_scores(challenger_score, challengee_score)

        async def _work(session: AsyncSession) -> ChallengeOutcome:
            challenge = await self._require_open_challenge(session, challenge_id)
            if self.is_expired(challenge):
                raise ChallengeExpiredError(challenge.challengee.username)

            if challenger_score > challengee_score:
                winner_id, loser_id = challenge.challenger_id, challenge.challengee_id
            else:
                winner_id, loser_id = challenge.challengee_id, challenge.challenger_id

            outcome = await self._apply_result(
                session, challenge, winner_id, loser_id,
                challenger_score=challenger_score, challengee_score=challengee_score
            )
            logger.info(
                f"Challenge {challenge.id} resolved {challenger_score}-{challengee_score}: "
                f"{outcome.winner.username} beat {outcome.loser.username} (swapped={outcome.swapped})"
            )
            return outcome

        return await self._perform(
            'resolve_challenge',
            self._locked_by_challenge(challenge_id, 'resolve_challenge', _work),
            lambda outcome: (CHALLENGE_RESOLVED, self._result_payload(outcome))
        )

    async def forfeit_challenge(self, challenge_id: Optional[int]) -> ChallengeOutcome:
        """
        Forfeit an open challenge on behalf of the challengee.

        The challenger is declared winner. Expired challenges may be
        forfeited; that is how they are cleared from the ladder.

        Raises:
            MissingChallengeError: If challenge_id is missing
            ChallengeNotFoundError: If the challenge does not exist
            ChallengeClosedError: If the challenge is already resolved
        """
        if challenge_id is None:
            raise MissingChallengeError()

        async def _work(session: AsyncSession) -> ChallengeOutcome:
            challenge = await self._require_open_challenge(session, challenge_id)
            outcome = await self._apply_result(
                session, challenge, challenge.challenger_id, challenge.challengee_id
            )
            logger.info(
                f"Challenge {challenge.id} forfeited by {outcome.loser.username} "
                f"to {outcome.winner.username} (swapped={outcome.swapped})"
            )
            return outcome

        return await self._perform(
            'forfeit_challenge',
            self._locked_by_challenge(challenge_id, 'forfeit_challenge', _work),
            lambda outcome: (CHALLENGE_FORFEITED, self._forfeit_payload(outcome))
        )

    # ------------------------------------------------------------------
    # Read models
    # ------------------------------------------------------------------

    async def get_challenge(self, challenge_id: Optional[int]) -> Challenge:
        if challenge_id is None:
            raise MissingChallengeError()

        async def _work(session: AsyncSession) -> Challenge:
            challenge = await self.store.get(session, challenge_id)
            if challenge is None:
                raise ChallengeNotFoundError(challenge_id)
            return challenge

        return await self.run_readonly('get_challenge', _work)

    async def get_challenges_for_player(self, player_id: int) -> PlayerChallenges:
        """Resolved challenges (newest first) plus open outgoing and incoming ones"""
        async def _work(session: AsyncSession) -> PlayerChallenges:
            await self._require_player(session, player_id)
            return PlayerChallenges(
                resolved=await self.store.find_resolved_for_player(session, player_id),
                outgoing=await self.store.find_open_by_challenger(session, player_id),
                incoming=await self.store.find_open_by_challengee(session, player_id)
            )

        return await self.run_readonly('get_challenges_for_player', _work)

    async def get_record(self, player_id: int) -> PlayerRecord:
        async def _work(session: AsyncSession) -> PlayerRecord:
            await self._require_player(session, player_id)
            record = PlayerRecord()
            for challenge in await self.store.find_resolved_for_player(session, player_id):
                if challenge.winner_id == player_id:
                    record.wins += 1
                else:
                    record.losses += 1
            return record

        return await self.run_readonly('get_record', _work)

    async def list_expired_challenges(self) -> List[Challenge]:
        """Open challenges past their window, oldest first. These await a forfeit."""
        async def _work(session: AsyncSession) -> List[Challenge]:
            now = self.clock.now()
            return [c for c in await self.store.find_open(session) if self.is_expired(c, now)]

        return await self.run_readonly('list_expired_challenges', _work)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _perform(
        self,
        operation: str,
        attempt: Callable[[], Awaitable[Any]],
        event: Callable[[Any], tuple]
    ) -> Any:
        """
        Run a mutating attempt with conflict retries, then dispatch its event.

        The whole sequence is shielded: a cancelled caller stops waiting, but
        the transaction still commits or rolls back as a unit and a committed
        change is still announced.
        """
        async def _run():
            result = await self.execute_with_retry(attempt, self.settings.conflict_retries)
            event_name, payload = event(result)
            self.notifier.dispatch(event_name, payload)
            return result

        return await self.run_shielded(operation, _run())

    def _locked_by_challenge(
        self,
        challenge_id: int,
        operation: str,
        work: Callable[[AsyncSession], Awaitable[Any]]
    ) -> Callable[[], Awaitable[Any]]:
        """Attempt that locks a challenge's players before running work in a transaction"""
        async def attempt():
            challenge = await self.get_challenge(challenge_id)
            async with self.locks.hold(challenge.challenger_id, challenge.challengee_id):
                return await self.run_atomic(operation, work)

        attempt.__name__ = operation
        return attempt

    async def _require_player(self, session: AsyncSession, player_id: int) -> Player:
        player = await self.directory.get(session, player_id)
        if player is None:
            raise PlayerNotFoundError(player_id)
        return player

    async def _require_open_challenge(self, session: AsyncSession, challenge_id: int) -> Challenge:
        challenge = await self.store.get(session, challenge_id)
        if challenge is None:
            raise ChallengeNotFoundError(challenge_id)
        if challenge.is_resolved:
            raise ChallengeClosedError(challenge_id)
        return challenge

    async def _check_quota(self, session: AsyncSession, player: Player):
        incoming, outgoing = await self.store.count_open(session, player.id)
        if incoming >= self.settings.allowed_incoming:
            raise ChallengeQuotaExceededError(player.username, 'incoming', self.settings.allowed_incoming)
        if outgoing >= self.settings.allowed_outgoing:
            raise ChallengeQuotaExceededError(player.username, 'outgoing', self.settings.allowed_outgoing)

    async def _check_cooldown(self, session: AsyncSession, challenger_id: int, challengee_id: int, now: datetime):
        resolved = await self.store.find_resolved_between(session, challenger_id, challengee_id)
        if not resolved:
            return

        hours = self.settings.reissue_cooldown_hours
        if self.clock.add_hours(resolved[0].updated_at, hours) >= now:
            raise ReissueCooldownError(hours)

    @staticmethod
    def _validate_scores(challenger_score, challengee_score):
        if not (_is_score(challenger_score) and _is_score(challengee_score)):
            raise InvalidScoreError(challenger_score, challengee_score)
        if challenger_score + challengee_score < 2:
            raise InvalidScoreError(challenger_score, challengee_score)
        if challenger_score == challengee_score:
            raise TiedScoreError(challenger_score)

    async def _apply_result(
        self,
        session: AsyncSession,
        challenge: Challenge,
        winner_id: int,
        loser_id: int,
        challenger_score: Optional[int] = None,
        challengee_score: Optional[int] = None
    ) -> ChallengeOutcome:
        """Record the winner, stamp both players' last game and swap ranks if needed"""
        winner = await self._require_player(session, winner_id)
        loser = await self._require_player(session, loser_id)

        resolved_at = self.clock.now()
        await self.store.resolve(
            session, challenge, winner_id, resolved_at,
            challenger_score=challenger_score, challengee_score=challengee_score
        )
        await self.directory.set_last_game(session, winner_id, resolved_at)
        await self.directory.set_last_game(session, loser_id, resolved_at)

        swapped = await self.ranking.swap_if_needed(session, winner, loser)
        return ChallengeOutcome(challenge=challenge, winner=winner, loser=loser, swapped=swapped)

    # ------------------------------------------------------------------
    # Payloads
    # ------------------------------------------------------------------

    @staticmethod
    def _pair_payload(challenge: Challenge) -> Dict[str, Any]:
        return {
            'challenge_id': challenge.id,
            'challenger': challenge.challenger.to_payload(),
            'challengee': challenge.challengee.to_payload(),
        }

    @staticmethod
    def _result_payload(outcome: ChallengeOutcome) -> Dict[str, Any]:
        return {
            'challenge_id': outcome.challenge.id,
            'winner': outcome.winner.to_payload(),
            'loser': outcome.loser.to_payload(),
            'challenger_score': outcome.challenge.challenger_score,
            'challengee_score': outcome.challenge.challengee_score,
            'swapped': outcome.swapped,
        }

    @staticmethod
    def _forfeit_payload(outcome: ChallengeOutcome) -> Dict[str, Any]:
        return {
            'challenge_id': outcome.challenge.id,
            'challenger': outcome.winner.to_payload(),
            'challengee': outcome.loser.to_payload(),
            'swapped': outcome.swapped,
        }
