"""
Injectable clock so TTLs (checkout expiry, guest carts, seat holds) are testable.
"""

from datetime import datetime, timezone
from typing import Optional


class Clock:
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; everything is stored in UTC.
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


_clock = Clock()


def get_clock() -> Clock:
    return _clock
