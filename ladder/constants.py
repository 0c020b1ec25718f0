"""
Bot-wide constants for the Ladder Discord Bot.

This module contains the magic numbers used throughout the codebase to keep
them in one place.
"""

class LadderConstants:
    """Constants related to ranks and tiers."""

    # Rank a player holds while parked mid-swap. Never a valid rank.
    TEMP_RANK = -1

    # Best possible standing
    TOP_RANK = 1

    # Username limits (matches Player.username column)
    MAX_USERNAME_LENGTH = 100

class UIConstants:
    """Constants for Discord UI elements."""

    # Embed colors
    DEFAULT_EMBED_COLOR = 0x3498db  # Blue
    GOLD_RANK_COLOR = 0xffd700     # Gold for standings
    ERROR_COLOR = 0xe74c3c         # Red for errors
    SUCCESS_COLOR = 0x2ecc71       # Green for success
    WARNING_COLOR = 0xe67e22       # Orange for forfeits
    NEUTRAL_COLOR = 0x95a5a6       # Grey for revocations and housekeeping

    # Emoji for UI elements
    TROPHY_EMOJI = "🏆"
    SWORDS_EMOJI = "⚔️"

    # Discord allows at most 25 fields per embed
    MAX_EMBED_FIELDS = 25

    # Resolved challenges listed in /ladder-challenges
    RECENT_RESULTS_LIMIT = 10
