"""SQLAlchemy ORM models."""

from clearpath.models.base import Base
from clearpath.models.certificate import Certificate
from clearpath.models.enums import CertStatus, CertType, KitType, RiskZone, SessionStatus
from clearpath.models.home import Home
from clearpath.models.result import Result
from clearpath.models.test_session import TestSession

__all__ = [
    "Base",
    "Home",
    "TestSession",
    "Result",
    "Certificate",
    "KitType",
    "SessionStatus",
    "RiskZone",
    "CertType",
    "CertStatus",
]
