"""
Clock and business-day arithmetic for ladder policies.

All timestamps are naive UTC datetimes, matching what the database columns
store. A business day is Monday through Friday.
"""

from datetime import datetime, timedelta, timezone


class Clock:
    """Time source used by the challenge engine. Subclass and override now() to control time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc).replace(tzinfo=None)

    @staticmethod
    def is_business_day(moment: datetime) -> bool:
        return moment.weekday() < 5

    @staticmethod
    def add_business_days(start: datetime, days: int) -> datetime:
        """
        Advance `start` by `days` business days, keeping the time of day.

        Weekend days are skipped while counting, so Friday + 1 is Monday and
        Saturday + 1 is also Monday.

        Raises:
            ValueError: If days is negative
        """
        if days < 0:
            raise ValueError(f"Cannot add a negative number of business days: {days}")

        result = start
        remaining = days
        while remaining > 0:
            result += timedelta(days=1)
            if result.weekday() < 5:
                remaining -= 1
        return result

    @staticmethod
    def add_hours(start: datetime, hours: float) -> datetime:
        return start + timedelta(hours=hours)
