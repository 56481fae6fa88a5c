"""Certificate validity windows and public verification URLs."""

import calendar
from datetime import datetime, timedelta

from clearpath.db.types import ensure_utc
from clearpath.models.enums import CertStatus, CertType

RESIDENTIAL_VALIDITY_YEARS = 2
REAL_ESTATE_VALIDITY_DAYS = 90
EXPIRING_SOON_DAYS = 30


def add_years(moment: datetime, years: int) -> datetime:
    """Same calendar day ``years`` later; 29 February falls back to the 28th."""
    year = moment.year + years
    day = min(moment.day, calendar.monthrange(year, moment.month)[1])
    return moment.replace(year=year, day=day)


def calculate_valid_until(cert_type: CertType | str, valid_from: datetime) -> datetime:
    valid_from = ensure_utc(valid_from)
    if CertType(cert_type) == CertType.RESIDENTIAL:
        return add_years(valid_from, RESIDENTIAL_VALIDITY_YEARS)
    return valid_from + timedelta(days=REAL_ESTATE_VALIDITY_DAYS)


def is_certificate_valid(
    status: CertStatus | str, valid_until: datetime, now: datetime
) -> bool:
    if CertStatus(status) != CertStatus.VALID:
        return False
    return ensure_utc(now) <= ensure_utc(valid_until)


def days_until_expiry(valid_until: datetime, now: datetime) -> int:
    """Whole days remaining (negative once expired)."""
    return (ensure_utc(valid_until) - ensure_utc(now)).days


def is_expiring_soon(valid_until: datetime, now: datetime) -> bool:
    remaining = days_until_expiry(valid_until, now)
    return 0 < remaining <= EXPIRING_SOON_DAYS


def validity_period_description(cert_type: CertType | str) -> str:
    if CertType(cert_type) == CertType.RESIDENTIAL:
        return f"{RESIDENTIAL_VALIDITY_YEARS} years"
    return f"{REAL_ESTATE_VALIDITY_DAYS} days"


def build_verification_url(base_url: str, certificate_id: str) -> str:
    return f"{base_url.rstrip('/')}/verify/{certificate_id}"
