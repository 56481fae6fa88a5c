"""Schemas for home registration endpoints."""

from datetime import datetime

from pydantic import BaseModel, Field


class HomeCreate(BaseModel):
    """Request body for registering a home."""

    user_id: str = Field(min_length=1, max_length=36)
    address_line1: str = Field(min_length=1, max_length=255)
    address_line2: str | None = Field(default=None, max_length=255)
    city: str = Field(min_length=1, max_length=100)
    province: str = Field(min_length=2, max_length=2)
    postal_code: str = Field(min_length=3, max_length=10)


class HomeResponse(BaseModel):
    id: str
    user_id: str
    address_line1: str
    address_line2: str | None
    city: str
    province: str
    postal_code: str
    created_at: datetime

    model_config = {"from_attributes": True}
