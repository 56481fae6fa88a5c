"""Test session timeline: expected completion and retrieval-due dates.

Long-term kits run 91 days with retrieval due at day 80; real-estate short
kits run 4 days with retrieval due at day 2. Arithmetic is whole UTC
calendar days on aware UTC datetimes.
"""

from datetime import datetime, timedelta
from typing import NamedTuple

from clearpath.db.types import ensure_utc
from clearpath.models.enums import KitType

# kit type -> (duration days, retrieval due days)
_TIMELINE_DAYS: dict[KitType, tuple[int, int]] = {
    KitType.LONG_TERM: (91, 80),
    KitType.REAL_ESTATE_SHORT: (4, 2),
}


class Timeline(NamedTuple):
    expected_completion_date: datetime
    retrieval_due_at: datetime


def _days_for(kit_type: KitType | str) -> tuple[int, int]:
    # KitType() raises ValueError for unknown kit types
    return _TIMELINE_DAYS[KitType(kit_type)]


def expected_completion_date(kit_type: KitType | str, activated_at: datetime) -> datetime:
    """Return the date the kit's exposure period ends."""
    duration_days, _ = _days_for(kit_type)
    return ensure_utc(activated_at) + timedelta(days=duration_days)


def retrieval_due_at(kit_type: KitType | str, activated_at: datetime) -> datetime:
    """Return the date by which the kit should be picked up."""
    _, due_days = _days_for(kit_type)
    return ensure_utc(activated_at) + timedelta(days=due_days)


def compute_timeline(kit_type: KitType | str, activated_at: datetime) -> Timeline:
    return Timeline(
        expected_completion_date=expected_completion_date(kit_type, activated_at),
        retrieval_due_at=retrieval_due_at(kit_type, activated_at),
    )


def days_since_activation(activated_at: datetime, now: datetime) -> int:
    """Whole days elapsed since activation (floored)."""
    return (ensure_utc(now) - ensure_utc(activated_at)).days


def is_retrieval_overdue(
    retrieval_due: datetime, retrieved_at: datetime | None, now: datetime
) -> bool:
    """True if the retrieval date has passed and the kit was not yet retrieved."""
    if retrieved_at is not None:
        return False
    return ensure_utc(now) > ensure_utc(retrieval_due)
