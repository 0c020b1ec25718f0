"""
Exceptions for the ladder engine with user-friendly error messages.

Every error raised by the operations layer derives from LadderError. The
category classes (ValidationError, PolicyViolation, NotFoundError,
ExpiredError, ConflictError, DependencyError) let callers map failures to a
response without knowing every concrete rule.
"""

from typing import Optional


class LadderError(Exception):
    """Base exception for ladder-related errors."""
    def __init__(self, message: str, user_message: str = None):
        super().__init__(message)
        self.user_message = user_message or message


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------

class ValidationError(LadderError):
    """Malformed or missing input."""


class PolicyViolation(LadderError):
    """A ladder rule rejected the request."""


class NotFoundError(LadderError):
    """A referenced player or challenge does not exist."""


class ExpiredError(LadderError):
    """The challenge is past its allowed window."""


class ConflictError(LadderError):
    """A concurrent mutation was detected; the whole operation may be retried."""
    def __init__(self, operation: str, details: str = None):
        super().__init__(
            f"Concurrent update detected during {operation}: {details}",
            "❌ The ladder changed while processing your request. Please try again."
        )
        self.operation = operation


class DependencyError(LadderError):
    """The store or another collaborator failed."""
    def __init__(self, operation: str, details: str = None):
        super().__init__(
            f"Dependency failure during {operation}: {details}",
            "❌ Database error occurred. Please try again later."
        )
        self.operation = operation


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

class MissingParticipantError(ValidationError):
    def __init__(self):
        super().__init__("Two players are required for a challenge.")


class MissingChallengeError(ValidationError):
    def __init__(self):
        super().__init__("This is not a valid challenge.")


class InvalidScoreError(ValidationError):
    def __init__(self, challenger_score, challengee_score):
        super().__init__(
            f"Invalid scores {challenger_score!r}-{challengee_score!r}",
            "You must give valid scores for both players."
        )


class TiedScoreError(ValidationError):
    def __init__(self, score: int):
        super().__init__(
            f"Tied score {score}-{score}",
            "The final score cannot be equal."
        )


class InvalidRankError(ValidationError):
    def __init__(self, rank):
        super().__init__(f"Invalid rank {rank!r}: ranks start at 1")


class InvalidTierError(ValidationError):
    def __init__(self, tier):
        super().__init__(f"Invalid tier {tier!r}: tiers start at 1")


class InvalidUsernameError(ValidationError):
    def __init__(self, reason: str):
        super().__init__(f"Invalid username: {reason}", f"❌ {reason}")


# ---------------------------------------------------------------------------
# Policy
# ---------------------------------------------------------------------------

class SelfChallengeError(PolicyViolation):
    def __init__(self):
        super().__init__("Players cannot challenge themselves.")


class ChallengeWindowClosedError(PolicyViolation):
    def __init__(self):
        super().__init__("You can only issue challenges on business days.")


class InvalidDirectionError(PolicyViolation):
    def __init__(self, challenger_rank: int, challengee_rank: int):
        super().__init__(
            f"Challenger rank {challenger_rank} is above challengee rank {challengee_rank}",
            "You cannot challenge a player below your rank."
        )


class TierGapTooLargeError(PolicyViolation):
    def __init__(self, challenger_tier: int, challengee_tier: int):
        super().__init__(
            f"Tier gap between {challenger_tier} and {challengee_tier} exceeds 1",
            "You cannot challenge a player beyond 1 tier."
        )


class DuplicateChallengeError(PolicyViolation):
    def __init__(self):
        super().__init__("A challenge already exists between these players.")


class ChallengeQuotaExceededError(PolicyViolation):
    def __init__(self, username: str, side: str, limit: int):
        noun = 'challenge' if limit == 1 else 'challenges'
        super().__init__(f"{username} cannot have more than {limit} {side} {noun}.")
        self.username = username
        self.side = side
        self.limit = limit


class ReissueCooldownError(PolicyViolation):
    def __init__(self, hours: float):
        super().__init__(
            f"You must wait at least {hours:g} hours before re-challenging the same player."
        )
        self.hours = hours


class ChallengeClosedError(PolicyViolation):
    def __init__(self, challenge_id: int):
        super().__init__(
            f"Challenge {challenge_id} is already resolved",
            "This challenge has already been resolved."
        )


class UsernameTakenError(PolicyViolation):
    def __init__(self, username: str):
        super().__init__(f"The username {username} is already taken.")


class AlreadyRegisteredError(PolicyViolation):
    def __init__(self, username: str):
        super().__init__(
            f"Discord account already registered as {username}",
            f"You are already on the ladder as {username}."
        )


# ---------------------------------------------------------------------------
# Not found / expired
# ---------------------------------------------------------------------------

class PlayerNotFoundError(NotFoundError):
    def __init__(self, player_id):
        super().__init__(
            f"Player {player_id} not found",
            "No player was found for that id."
        )
        self.player_id = player_id


class ChallengeNotFoundError(NotFoundError):
    def __init__(self, challenge_id: Optional[int] = None):
        super().__init__(
            f"Challenge {challenge_id} not found" if challenge_id is not None else "Challenge not found",
            "Could not find the challenge."
        )
        self.challenge_id = challenge_id


class ChallengeExpiredError(ExpiredError):
    def __init__(self, challengee_username: str):
        super().__init__(f"This challenge has expired. {challengee_username} must forfeit.")
        self.challengee_username = challengee_username
