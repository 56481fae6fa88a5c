"""Result model: the single lab measurement concluding a test session."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Float, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from clearpath.db.types import UTCDateTime, str_enum
from clearpath.models.base import Base
from clearpath.models.enums import RiskZone


class Result(Base):
    __tablename__ = "results"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    # UNIQUE: at most one result per session, enforced by the database
    test_session_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("test_sessions.id"), nullable=False, unique=True
    )
    value_bqm3: Mapped[float] = mapped_column(Float, nullable=False)
    zone: Mapped[RiskZone] = mapped_column(str_enum(RiskZone), nullable=False)
    lab_reference: Mapped[str | None] = mapped_column(String(100), nullable=True)
    entered_by: Mapped[str | None] = mapped_column(String(36), nullable=True)
    is_immutable: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    recorded_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
