"""Certificate model — publicly verifiable proof of a completed test."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from clearpath.db.types import UTCDateTime, str_enum
from clearpath.models.base import Base
from clearpath.models.enums import CertStatus, CertType


class Certificate(Base):
    __tablename__ = "certificates"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    # UNIQUE: at most one certificate per result
    result_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("results.id"), nullable=False, unique=True
    )
    home_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("homes.id"), nullable=False
    )
    certificate_number: Mapped[str] = mapped_column(
        String(32), nullable=False, unique=True
    )
    cert_type: Mapped[CertType] = mapped_column(str_enum(CertType), nullable=False)
    status: Mapped[CertStatus] = mapped_column(
        str_enum(CertStatus), nullable=False, default=CertStatus.VALID
    )
    verification_url: Mapped[str] = mapped_column(String(512), nullable=False)
    valid_from: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    valid_until: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    generated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    superseded_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    superseded_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    __table_args__ = (
        Index("ix_certificates_home_id", "home_id"),
        Index("ix_certificates_status", "status"),
    )
