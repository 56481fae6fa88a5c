"""Enumerations shared by the ORM models, schemas and services."""

from enum import Enum


class KitType(str, Enum):
    LONG_TERM = "long_term"
    REAL_ESTATE_SHORT = "real_estate_short"


class SessionStatus(str, Enum):
    ORDERED = "ordered"
    ACTIVE = "active"
    RETRIEVAL_DUE = "retrieval_due"
    MAILED = "mailed"
    RESULTS_PENDING = "results_pending"
    COMPLETE = "complete"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class RiskZone(str, Enum):
    """Radon risk bands, ordered from lowest to highest."""

    BELOW_GUIDELINE = "below_guideline"
    CAUTION = "caution"
    ACTION_REQUIRED = "action_required"
    URGENT_ACTION = "urgent_action"


class CertType(str, Enum):
    RESIDENTIAL = "residential"
    REAL_ESTATE = "real_estate"


class CertStatus(str, Enum):
    VALID = "valid"
    EXPIRED = "expired"
    SUPERSEDED = "superseded"
