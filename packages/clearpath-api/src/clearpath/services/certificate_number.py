"""Certificate number generation.

Format: ``<PREFIX>-YYYYMMDD-NNNN``, e.g. ``CP-20260226-0001``, where the date
is the UTC generation day and NNNN is the day's sequence, starting at 1.

Allocation reads the day's highest number and proposes the next one. The
read is racy on its own; callers insert under the UNIQUE constraint on
``certificate_number`` and retry with a fresh proposal on collision.
"""

import re
from datetime import datetime
from typing import NamedTuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from clearpath.db.types import ensure_utc
from clearpath.errors import ConflictError
from clearpath.models.certificate import Certificate

DEFAULT_PREFIX = "CP"
MAX_DAILY_SEQUENCE = 9999

_NUMBER_PATTERN = re.compile(r"^(?P<prefix>[A-Z]+)-(?P<date>\d{8})-(?P<sequence>\d{4})$")


class CertificateNumber(NamedTuple):
    prefix: str
    date: str
    sequence: int


def format_certificate_date(moment: datetime) -> str:
    return ensure_utc(moment).strftime("%Y%m%d")


def day_prefix(moment: datetime, prefix: str = DEFAULT_PREFIX) -> str:
    """The ``PREFIX-YYYYMMDD-`` segment shared by all numbers issued that day."""
    return f"{prefix}-{format_certificate_date(moment)}-"


def format_certificate_number(prefix: str, date: str, sequence: int) -> str:
    return f"{prefix}-{date}-{sequence:04d}"


def parse_certificate_number(number: str) -> CertificateNumber | None:
    """Split a certificate number into its parts, or None if malformed."""
    match = _NUMBER_PATTERN.match(number)
    if match is None:
        return None
    return CertificateNumber(
        prefix=match.group("prefix"),
        date=match.group("date"),
        sequence=int(match.group("sequence")),
    )


def is_valid_certificate_number(number: str, prefix: str = DEFAULT_PREFIX) -> bool:
    parsed = parse_certificate_number(number)
    return parsed is not None and parsed.prefix == prefix


async def latest_certificate_number(db: AsyncSession, prefix_for_day: str) -> str | None:
    """Highest certificate number starting with ``prefix_for_day``, if any."""
    stmt = (
        select(Certificate.certificate_number)
        .where(Certificate.certificate_number.startswith(prefix_for_day, autoescape=True))
        .order_by(Certificate.certificate_number.desc())
        .limit(1)
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def next_certificate_number(
    db: AsyncSession, moment: datetime, prefix: str = DEFAULT_PREFIX
) -> str:
    """Propose the next sequential number for the UTC day of ``moment``."""
    date = format_certificate_date(moment)
    last = await latest_certificate_number(db, day_prefix(moment, prefix))

    sequence = 1
    if last is not None:
        parsed = parse_certificate_number(last)
        sequence = (parsed.sequence if parsed else 0) + 1

    if sequence > MAX_DAILY_SEQUENCE:
        raise ConflictError(
            "Daily certificate sequence exhausted", date=date, prefix=prefix
        )
    return format_certificate_number(prefix, date, sequence)
