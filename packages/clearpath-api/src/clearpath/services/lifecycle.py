"""Result and certificate lifecycle coordination.

Enforces the Session -> Result -> Certificate chain:

- recording a result completes its session (through the state machine);
- a result can be edited or deleted only while no certificate vouches for it;
- issuing a certificate locks its result in the same flush.

Each public operation is one unit of work inside the caller's transaction.
Nothing is committed here; a raised error leaves the caller to roll back.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from clearpath.clock import Clock, utc_now
from clearpath.config import Settings, get_settings
from clearpath.db.types import ensure_utc
from clearpath.errors import ConflictError, NotFoundError, RaceLostError, ValidationError
from clearpath.models.certificate import Certificate
from clearpath.models.enums import CertStatus, CertType, KitType, RiskZone, SessionStatus
from clearpath.models.home import Home
from clearpath.models.result import Result
from clearpath.services.certificate_number import next_certificate_number
from clearpath.services.certificate_validity import (
    build_verification_url,
    calculate_valid_until,
    days_until_expiry,
    is_certificate_valid,
)
from clearpath.services.notifications import (
    CERTIFICATE_ISSUED,
    CERTIFICATE_SUPERSEDED,
    RESULT_RECORDED,
    DomainEvent,
)
from clearpath.services.radon_risk import validated_zone
from clearpath.services.session_state import apply_transition, get_test_session

logger = logging.getLogger(__name__)

RESULT_ALLOWED_STATUSES = frozenset(
    {SessionStatus.MAILED, SessionStatus.RESULTS_PENDING, SessionStatus.COMPLETE}
)

KIT_CERT_TYPES: dict[KitType, CertType] = {
    KitType.LONG_TERM: CertType.RESIDENTIAL,
    KitType.REAL_ESTATE_SHORT: CertType.REAL_ESTATE,
}

RESULT_UPDATABLE_FIELDS = frozenset({"value_bqm3", "lab_reference", "recorded_at"})


@dataclass
class ResultOutcome:
    result: Result
    session_status: SessionStatus
    events: list[DomainEvent] = field(default_factory=list)


@dataclass
class CertificateOutcome:
    certificate: Certificate
    events: list[DomainEvent] = field(default_factory=list)


@dataclass(frozen=True)
class CertificateVerification:
    """Reduced, identity-free view of a certificate for public verification."""

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


# ── Lookups ──────────────────────────────────────────────────────────


async def get_result(db: AsyncSession, result_id: str, *, for_update: bool = False) -> Result:
    stmt = select(Result).where(Result.id == result_id)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    result = (await db.execute(stmt)).scalar_one_or_none()
    if result is None:
        raise NotFoundError("Result", result_id)
    return result


async def find_result_for_session(db: AsyncSession, session_id: str) -> Result | None:
    stmt = select(Result).where(Result.test_session_id == session_id)
    return (await db.execute(stmt)).scalar_one_or_none()


async def get_result_for_session(db: AsyncSession, session_id: str) -> Result:
    result = await find_result_for_session(db, session_id)
    if result is None:
        raise NotFoundError("Result for test session", session_id)
    return result


async def find_certificate_for_result(db: AsyncSession, result_id: str) -> Certificate | None:
    stmt = select(Certificate).where(Certificate.result_id == result_id)
    return (await db.execute(stmt)).scalar_one_or_none()


async def get_certificate(db: AsyncSession, certificate_id: str) -> Certificate:
    certificate = await db.get(Certificate, certificate_id)
    if certificate is None:
        raise NotFoundError("Certificate", certificate_id)
    return certificate


# ── Results ──────────────────────────────────────────────────────────


async def record_result(
    db: AsyncSession,
    *,
    test_session_id: str,
    value_bqm3: float,
    recorded_at: datetime,
    lab_reference: str | None = None,
    entered_by: str | None = None,
    clock: Clock = utc_now,
) -> ResultOutcome:
    """Record the lab measurement for a session and complete the session.

    A ``mailed`` session is walked through ``results_pending`` to
    ``complete``; an already complete session is left as is.
    """
    zone = validated_zone(value_bqm3)

    session = await get_test_session(db, test_session_id, for_update=True)
    if session.status not in RESULT_ALLOWED_STATUSES:
        raise ConflictError(
            "Test session must be in 'mailed', 'results_pending', or 'complete' status "
            f"to record a result. Current status: {session.status.value}",
            session_id=test_session_id,
            status=session.status.value,
            allowed=sorted(s.value for s in RESULT_ALLOWED_STATUSES),
        )

    if await find_result_for_session(db, test_session_id) is not None:
        raise ConflictError(
            "A result already exists for this test session", session_id=test_session_id
        )

    result = Result(
        test_session_id=test_session_id,
        value_bqm3=value_bqm3,
        zone=zone,
        lab_reference=lab_reference,
        entered_by=entered_by,
        is_immutable=False,
        recorded_at=ensure_utc(recorded_at),
        created_at=clock(),
    )
    try:
        async with db.begin_nested():
            db.add(result)
    except IntegrityError as exc:
        raise ConflictError(
            "A result already exists for this test session", session_id=test_session_id
        ) from exc

    events: list[DomainEvent] = []
    if session.status == SessionStatus.MAILED:
        outcome = await apply_transition(db, session, SessionStatus.RESULTS_PENDING, clock=clock)
        events.extend(outcome.events)
    if session.status == SessionStatus.RESULTS_PENDING:
        outcome = await apply_transition(db, session, SessionStatus.COMPLETE, clock=clock)
        events.extend(outcome.events)

    events.append(
        DomainEvent(
            event_type=RESULT_RECORDED,
            subject_id=result.id,
            occurred_at=clock(),
            data={
                "test_session_id": test_session_id,
                "home_id": session.home_id,
                "value_bqm3": value_bqm3,
                "zone": zone.value,
            },
        )
    )
    logger.info(
        "Recorded result %s for session %s: %s Bq/m3 (%s)",
        result.id,
        test_session_id,
        value_bqm3,
        zone.value,
    )
    return ResultOutcome(result=result, session_status=session.status, events=events)


async def update_result(db: AsyncSession, result_id: str, changes: dict) -> Result:
    """Apply ``changes`` to a mutable result, recomputing the zone if the value moves."""
    unknown = set(changes) - RESULT_UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"Unsupported result fields: {sorted(unknown)}")

    result = await get_result(db, result_id, for_update=True)
    if result.is_immutable:
        raise ConflictError(
            "Cannot update result: a certificate has been generated for this result, "
            "making it immutable",
            result_id=result_id,
        )

    # value and recorded_at are required columns; an explicit null leaves them as is
    values = {
        name: value
        for name, value in changes.items()
        if value is not None or name == "lab_reference"
    }
    if "value_bqm3" in values:
        values["zone"] = validated_zone(values["value_bqm3"])
    if values.get("recorded_at") is not None:
        values["recorded_at"] = ensure_utc(values["recorded_at"])
    if not values:
        return result

    # Guarded on is_immutable so a concurrent certificate issue wins
    stmt = (
        update(Result)
        .where(Result.id == result_id)
        .where(Result.is_immutable.is_(False))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if (await db.execute(stmt)).rowcount == 0:
        raise ConflictError(
            "Cannot update result: it was locked by a certificate", result_id=result_id
        )
    await db.refresh(result)
    return result


async def delete_result(db: AsyncSession, result_id: str) -> None:
    """Delete a result that no certificate references."""
    result = await get_result(db, result_id, for_update=True)
    if await find_certificate_for_result(db, result_id) is not None:
        raise ConflictError(
            "Cannot delete result: a certificate exists for this result. "
            "Delete the certificate first.",
            result_id=result_id,
        )
    if result.is_immutable:
        raise ConflictError("Cannot delete an immutable result", result_id=result_id)

    stmt = (
        delete(Result)
        .where(Result.id == result_id)
        .where(Result.is_immutable.is_(False))
        .execution_options(synchronize_session=False)
    )
    if (await db.execute(stmt)).rowcount == 0:
        raise ConflictError(
            "Cannot delete result: it was locked by a certificate", result_id=result_id
        )
    db.expunge(result)
    logger.info("Deleted result %s", result_id)


# ── Certificates ─────────────────────────────────────────────────────


async def generate_certificate(
    db: AsyncSession,
    *,
    result_id: str,
    cert_type: CertType | str,
    valid_from: datetime | None = None,
    clock: Clock = utc_now,
    settings: Settings | None = None,
) -> CertificateOutcome:
    """Issue the certificate for a result and lock the result.

    The certificate row and the result's ``is_immutable`` flag are written in
    one SAVEPOINT. A number collision with a concurrent issuer rolls back only
    that SAVEPOINT and retries with the next number.
    """
    settings = settings or get_settings()
    cert_type = CertType(cert_type)

    result = await get_result(db, result_id, for_update=True)
    if await find_certificate_for_result(db, result_id) is not None:
        raise ConflictError(
            "A certificate already exists for this result", result_id=result_id
        )

    session = await get_test_session(db, result.test_session_id)
    expected = KIT_CERT_TYPES[session.kit_type]
    if cert_type != expected:
        raise ValidationError(
            f"Certificate type '{cert_type.value}' does not match kit type "
            f"'{session.kit_type.value}' (expected '{expected.value}')",
            cert_type=cert_type.value,
            kit_type=session.kit_type.value,
        )

    home_id = session.home_id
    value_bqm3 = result.value_bqm3
    zone = result.zone

    now = clock()
    start = ensure_utc(valid_from) if valid_from is not None else now
    valid_until = calculate_valid_until(cert_type, start)
    certificate_id = str(uuid.uuid4())
    max_attempts = settings.certificate_number_max_attempts

    certificate = None
    for attempt in range(1, max_attempts + 1):
        number = await next_certificate_number(
            db, now, prefix=settings.certificate_number_prefix
        )
        candidate = Certificate(
            id=certificate_id,
            result_id=result_id,
            home_id=home_id,
            certificate_number=number,
            cert_type=cert_type,
            status=CertStatus.VALID,
            verification_url=build_verification_url(settings.public_url, certificate_id),
            valid_from=start,
            valid_until=valid_until,
            generated_at=now,
            superseded_at=None,
            superseded_reason=None,
        )
        try:
            async with db.begin_nested():
                db.add(candidate)
                result.is_immutable = True
        except IntegrityError:
            if await find_certificate_for_result(db, result_id) is not None:
                raise ConflictError(
                    "A certificate already exists for this result", result_id=result_id
                )
            logger.warning(
                "Certificate number %s already taken (attempt %d/%d)",
                number,
                attempt,
                max_attempts,
            )
            continue
        certificate = candidate
        break

    if certificate is None:
        raise RaceLostError(
            "Could not allocate a certificate number; retry the request",
            result_id=result_id,
            attempts=max_attempts,
        )

    await db.refresh(result)
    logger.info(
        "Issued certificate %s (%s) for result %s",
        certificate.certificate_number,
        cert_type.value,
        result_id,
    )
    event = DomainEvent(
        event_type=CERTIFICATE_ISSUED,
        subject_id=certificate.id,
        occurred_at=now,
        data={
            "certificate_number": certificate.certificate_number,
            "home_id": home_id,
            "result_id": result_id,
            "cert_type": cert_type.value,
            "value_bqm3": value_bqm3,
            "zone": zone.value,
            "valid_from": start.isoformat(),
            "valid_until": valid_until.isoformat(),
            "verification_url": certificate.verification_url,
        },
    )
    return CertificateOutcome(certificate=certificate, events=[event])


async def supersede_certificate(
    db: AsyncSession,
    certificate_id: str,
    *,
    reason: str | None = None,
    clock: Clock = utc_now,
) -> CertificateOutcome:
    """Mark a certificate superseded. Its result stays locked."""
    certificate = await get_certificate(db, certificate_id)
    if certificate.status == CertStatus.SUPERSEDED:
        raise ConflictError(
            "Certificate is already superseded", certificate_id=certificate_id
        )

    now = clock()
    certificate.status = CertStatus.SUPERSEDED
    certificate.superseded_at = now
    certificate.superseded_reason = reason
    await db.flush()

    logger.info("Superseded certificate %s", certificate.certificate_number)
    event = DomainEvent(
        event_type=CERTIFICATE_SUPERSEDED,
        subject_id=certificate.id,
        occurred_at=now,
        data={
            "certificate_number": certificate.certificate_number,
            "home_id": certificate.home_id,
            "reason": reason,
        },
    )
    return CertificateOutcome(certificate=certificate, events=[event])


async def verify_certificate(
    db: AsyncSession, certificate_id: str, *, clock: Clock = utc_now
) -> CertificateVerification:
    """Public, identity-free certificate lookup."""
    stmt = (
        select(Certificate, Result, Home)
        .join(Result, Result.id == Certificate.result_id)
        .join(Home, Home.id == Certificate.home_id)
        .where(Certificate.id == certificate_id)
    )
    row = (await db.execute(stmt)).one_or_none()
    if row is None:
        raise NotFoundError("Certificate", certificate_id)

    certificate, result, home = row
    now = clock()
    return CertificateVerification(
        certificate_number=certificate.certificate_number,
        cert_type=certificate.cert_type,
        status=certificate.status,
        valid_from=certificate.valid_from,
        valid_until=certificate.valid_until,
        is_valid=is_certificate_valid(certificate.status, certificate.valid_until, now),
        days_until_expiry=days_until_expiry(certificate.valid_until, now),
        generated_at=certificate.generated_at,
        city=home.city,
        province=home.province,
        value_bqm3=result.value_bqm3,
        zone=result.zone,
    )


async def expire_lapsed_certificates(db: AsyncSession, *, clock: Clock = utc_now) -> int:
    """Flip ``valid`` certificates past their end date to ``expired``. Returns the count."""
    now = clock()
    stmt = (
        select(Certificate)
        .where(Certificate.status == CertStatus.VALID)
        .where(Certificate.valid_until < now)
    )
    lapsed = list((await db.execute(stmt)).scalars().all())

    for certificate in lapsed:
        certificate.status = CertStatus.EXPIRED

    if lapsed:
        await db.flush()
        logger.info("Expired %d certificate(s)", len(lapsed))
    return len(lapsed)
