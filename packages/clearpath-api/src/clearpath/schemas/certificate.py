"""Schemas for certificate issuance and public verification."""

from datetime import datetime

from pydantic import BaseModel, Field

from clearpath.models.enums import CertStatus, CertType, RiskZone


class CertificateCreate(BaseModel):
    """Request body for issuing a certificate. ``valid_from`` defaults to now."""

    result_id: str = Field(min_length=1, max_length=36)
    cert_type: CertType
    valid_from: datetime | None = None


class CertificateSupersede(BaseModel):
    reason: str | None = Field(default=None, max_length=500)


class CertificateResponse(BaseModel):
    id: str
    result_id: str
    home_id: str
    certificate_number: str
    cert_type: CertType
    status: CertStatus
    verification_url: str
    valid_from: datetime
    valid_until: datetime
    generated_at: datetime
    superseded_at: datetime | None
    superseded_reason: str | None

    model_config = {"from_attributes": True}


class CertificateVerificationResponse(BaseModel):
    """Public view: no owner identity, street address or internal ids."""

    certificate_number: str
    cert_type: CertType
    status: CertStatus
    valid_from: datetime
    valid_until: datetime
    is_valid: bool
    days_until_expiry: int
    generated_at: datetime
    city: str
    province: str
    value_bqm3: float
    zone: RiskZone

    model_config = {"from_attributes": True}
