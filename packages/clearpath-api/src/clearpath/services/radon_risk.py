"""Radon risk classification against the Health Canada guideline.

Bands (Bq/m³): below 200 no action; 200-599 caution; 600-799 remediation
recommended; 800 and above urgent remediation. Measurements outside
0-10,000 are rejected, never clamped.
"""

from dataclasses import dataclass

from clearpath.errors import ValidationError
from clearpath.models.enums import RiskZone

THRESHOLD_GUIDELINE = 200
THRESHOLD_CAUTION = 600
THRESHOLD_ACTION = 800

MIN_RADON_VALUE = 0
MAX_RADON_VALUE = 10000

GUIDELINE_REFERENCE = "Health Canada guideline: 200 Bq/m³"


@dataclass(frozen=True)
class RiskLevelDetails:
    zone: RiskZone
    title: str
    description: str
    action_required: str
    timeframe: str | None
    guideline_reference: str = GUIDELINE_REFERENCE


_DETAILS: dict[RiskZone, RiskLevelDetails] = {
    RiskZone.BELOW_GUIDELINE: RiskLevelDetails(
        zone=RiskZone.BELOW_GUIDELINE,
        title="Below Guideline",
        description=(
            "Your radon level is below the Health Canada guideline of 200 Bq/m³. "
            "No immediate action is required."
        ),
        action_required="No action required at this time",
        timeframe=None,
    ),
    RiskZone.CAUTION: RiskLevelDetails(
        zone=RiskZone.CAUTION,
        title="Caution Zone",
        description=(
            "Your radon level is above the Health Canada guideline. "
            "Remediation should be considered to reduce exposure."
        ),
        action_required="Consider remediation to reduce radon levels",
        timeframe="Recommended within 2 years",
    ),
    RiskZone.ACTION_REQUIRED: RiskLevelDetails(
        zone=RiskZone.ACTION_REQUIRED,
        title="Action Required",
        description=(
            "Your radon level is significantly elevated. "
            "Remediation is strongly recommended to protect your health."
        ),
        action_required="Remediation strongly recommended",
        timeframe="Within 2 years",
    ),
    RiskZone.URGENT_ACTION: RiskLevelDetails(
        zone=RiskZone.URGENT_ACTION,
        title="Urgent Action Required",
        description=(
            "Your radon level is very high. "
            "Immediate remediation is necessary to reduce health risks."
        ),
        action_required="Immediate remediation required",
        timeframe="Within 1 year",
    ),
}


def is_valid_concentration(value_bqm3: float) -> bool:
    """Return True if the measurement lies within the accepted range."""
    return MIN_RADON_VALUE <= value_bqm3 <= MAX_RADON_VALUE


def classify_concentration(value_bqm3: float) -> RiskZone:
    """Map a radon concentration to its risk zone."""
    if value_bqm3 < THRESHOLD_GUIDELINE:
        return RiskZone.BELOW_GUIDELINE
    if value_bqm3 < THRESHOLD_CAUTION:
        return RiskZone.CAUTION
    if value_bqm3 < THRESHOLD_ACTION:
        return RiskZone.ACTION_REQUIRED
    return RiskZone.URGENT_ACTION


def validated_zone(value_bqm3: float) -> RiskZone:
    """Reject out-of-range values, then classify."""
    if not is_valid_concentration(value_bqm3):
        raise ValidationError(
            f"Radon value must be between {MIN_RADON_VALUE} and {MAX_RADON_VALUE:,} Bq/m³",
            value_bqm3=value_bqm3,
        )
    return classify_concentration(value_bqm3)


def risk_level_details(zone: RiskZone) -> RiskLevelDetails:
    return _DETAILS[zone]


def radon_value_message(value_bqm3: float) -> str:
    """Human-readable one-line interpretation of a measurement."""
    details = risk_level_details(classify_concentration(value_bqm3))
    return f"{details.title}: {value_bqm3:g} Bq/m³ - {details.action_required}"


def reduction_needed(value_bqm3: float) -> int:
    """Percentage reduction needed to reach the guideline, 0 if already at or below it."""
    if value_bqm3 <= THRESHOLD_GUIDELINE:
        return 0
    return round((value_bqm3 - THRESHOLD_GUIDELINE) / value_bqm3 * 100)
