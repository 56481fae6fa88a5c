"""Injectable current-time source."""

from collections.abc import Callable
from datetime import datetime, timezone

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Return the current instant as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def fixed_clock(instant: datetime) -> Clock:
    """Return a clock that always reports ``instant``."""
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    return lambda: instant
