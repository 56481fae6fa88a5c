"""Schemas for lab result endpoints."""

from datetime import datetime

from pydantic import BaseModel, Field

from clearpath.models.enums import RiskZone


class ResultCreate(BaseModel):
    """Request body for submitting a lab measurement.

    The range check on ``value_bqm3`` is left to the service layer so that
    the response carries the domain validation error.
    """

    test_session_id: str = Field(min_length=1, max_length=36)
    value_bqm3: float
    recorded_at: datetime
    lab_reference: str | None = Field(default=None, max_length=100)
    entered_by: str | None = Field(default=None, max_length=36)


class ResultUpdate(BaseModel):
    value_bqm3: float | None = None
    lab_reference: str | None = Field(default=None, max_length=100)
    recorded_at: datetime | None = None


class ResultResponse(BaseModel):
    id: str
    test_session_id: str
    value_bqm3: float
    zone: RiskZone
    lab_reference: str | None
    entered_by: str | None
    is_immutable: bool
    recorded_at: datetime
    created_at: datetime

    model_config = {"from_attributes": True}
