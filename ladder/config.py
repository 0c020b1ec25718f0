import os
from dataclasses import dataclass
from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str = 'False') -> bool:
    return os.getenv(name, default).lower() in ('true', '1', 'yes')


class Config:
    """Bot configuration settings"""

    # Discord settings
    DISCORD_TOKEN = os.getenv('DISCORD_TOKEN')
    DISCORD_GUILD_ID = int(os.getenv('DISCORD_GUILD_ID', 0))
    DISCORD_GUILD_IDS = os.getenv('DISCORD_GUILD_IDS', '')  # Comma-separated for multi-guild support
    OWNER_DISCORD_ID = int(os.getenv('OWNER_DISCORD_ID', 0))
    LADDER_CHANNEL_ID = int(os.getenv('LADDER_CHANNEL_ID', 0))  # Channel for live ladder broadcasts

    # Database settings
    DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///ladder.db')
    DATABASE_TIMEOUT_SECONDS = float(os.getenv('DATABASE_TIMEOUT_SECONDS', 10))

    # Pub/sub settings
    REDIS_URL = os.getenv('REDIS_URL')

    # Bot settings
    COMMAND_PREFIX = os.getenv('COMMAND_PREFIX', '!')
    DEBUG = os.getenv('DEBUG', 'False').lower() == 'true'
    LOG_DIR = os.getenv('LOG_DIR', 'logs')

    # Ladder policy
    ALLOW_CHALLENGES_ON_WEEKENDS = _env_bool('ALLOW_CHALLENGES_ON_WEEKENDS') or _env_bool('CHALLENGE_ANYTIME')
    ALLOWED_OUTGOING = int(os.getenv('ALLOWED_OUTGOING', 1))
    ALLOWED_INCOMING = int(os.getenv('ALLOWED_INCOMING', 1))
    ALLOWED_CHALLENGE_DAYS = int(os.getenv('ALLOWED_CHALLENGE_DAYS', 4))  # Business days until expiry
    REISSUE_COOLDOWN_HOURS = float(
        os.getenv('REISSUE_COOLDOWN_HOURS', os.getenv('CHALLENGE_BACK_DELAY_HOURS', 4))
    )

    # Engine behaviour
    CONFLICT_RETRIES = int(os.getenv('CONFLICT_RETRIES', 3))
    NOTIFICATION_TIMEOUT_SECONDS = float(os.getenv('NOTIFICATION_TIMEOUT_SECONDS', 5))

    @classmethod
    def get_guild_ids(cls):
        """Get list of guild IDs for command syncing"""
        if cls.DISCORD_GUILD_IDS:
            try:
                return [int(guild_id.strip()) for guild_id in cls.DISCORD_GUILD_IDS.split(',') if guild_id.strip()]
            except ValueError:
                raise ValueError("DISCORD_GUILD_IDS must be comma-separated integers")
        elif cls.DISCORD_GUILD_ID:
            return [cls.DISCORD_GUILD_ID]
        else:
            # Global sync
            return []

    @classmethod
    def validate(cls):
        """Validate that required configuration is present"""
        if not cls.DISCORD_TOKEN:
            raise ValueError("DISCORD_TOKEN is required")
        if not cls.DISCORD_GUILD_ID and not cls.DISCORD_GUILD_IDS:
            raise ValueError("Either DISCORD_GUILD_ID or DISCORD_GUILD_IDS is required")
        if cls.ALLOWED_OUTGOING < 1 or cls.ALLOWED_INCOMING < 1:
            raise ValueError("ALLOWED_OUTGOING and ALLOWED_INCOMING must be at least 1")
        if cls.ALLOWED_CHALLENGE_DAYS < 0 or cls.REISSUE_COOLDOWN_HOURS < 0:
            raise ValueError("ALLOWED_CHALLENGE_DAYS and REISSUE_COOLDOWN_HOURS cannot be negative")


@dataclass(frozen=True)
class LadderSettings:
    """
    Policy knobs handed to the challenge engine at construction.

    Snapshotting them here keeps the engine free of process-wide state, so
    each bot instance (or test) can run with its own limits.
    """
    allow_challenges_on_weekends: bool = False
    allowed_outgoing: int = 1
    allowed_incoming: int = 1
    allowed_challenge_days: int = 4
    reissue_cooldown_hours: float = 4
    conflict_retries: int = 3
    notification_timeout: float = 5.0

    @classmethod
    def from_config(cls) -> 'LadderSettings':
        """Build settings from the environment-backed Config"""
        return cls(
            allow_challenges_on_weekends=Config.ALLOW_CHALLENGES_ON_WEEKENDS,
            allowed_outgoing=Config.ALLOWED_OUTGOING,
            allowed_incoming=Config.ALLOWED_INCOMING,
            allowed_challenge_days=Config.ALLOWED_CHALLENGE_DAYS,
            reissue_cooldown_hours=Config.REISSUE_COOLDOWN_HOURS,
            conflict_retries=Config.CONFLICT_RETRIES,
            notification_timeout=Config.NOTIFICATION_TIMEOUT_SECONDS,
        )
