"""Certificate issuance, supersede and public verification endpoints."""

from dataclasses import asdict

from fastapi import APIRouter, BackgroundTasks, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from clearpath.clock import Clock
from clearpath.config import Settings
from clearpath.dependencies import get_app_settings, get_clock, get_db, get_notifier
from clearpath.schemas.certificate import (
    CertificateCreate,
    CertificateResponse,
    CertificateSupersede,
    CertificateVerificationResponse,
)
from clearpath.services import lifecycle
from clearpath.services.concurrency import retry_once_on_race
from clearpath.services.notifications import Notifier, dispatch_events

router = APIRouter(prefix="/v1/certificates", tags=["certificates"])


@router.post("", response_model=CertificateResponse, status_code=status.HTTP_201_CREATED)
async def create_certificate(
    body: CertificateCreate,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    settings: Settings = Depends(get_app_settings),
    notifier: Notifier = Depends(get_notifier),
) -> CertificateResponse:
    """Issue the certificate for a result. The result becomes immutable."""
    outcome = await retry_once_on_race(
        db,
        lambda: lifecycle.generate_certificate(
            db,
            result_id=body.result_id,
            cert_type=body.cert_type,
            valid_from=body.valid_from,
            clock=clock,
            settings=settings,
        ),
    )
    await db.commit()
    background_tasks.add_task(dispatch_events, notifier, outcome.events)
    return CertificateResponse.model_validate(outcome.certificate)


@router.get("/{certificate_id}", response_model=CertificateResponse)
async def get_certificate(
    certificate_id: str, db: AsyncSession = Depends(get_db)
) -> CertificateResponse:
    certificate = await lifecycle.get_certificate(db, certificate_id)
    return CertificateResponse.model_validate(certificate)


@router.post("/{certificate_id}/supersede", response_model=CertificateResponse)
async def supersede_certificate(
    certificate_id: str,
    body: CertificateSupersede,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    notifier: Notifier = Depends(get_notifier),
) -> CertificateResponse:
    outcome = await lifecycle.supersede_certificate(
        db, certificate_id, reason=body.reason, clock=clock
    )
    await db.commit()
    background_tasks.add_task(dispatch_events, notifier, outcome.events)
    return CertificateResponse.model_validate(outcome.certificate)


@router.get("/{certificate_id}/verify", response_model=CertificateVerificationResponse)
async def verify_certificate(
    certificate_id: str,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> CertificateVerificationResponse:
    """Public verification: no caller identity required."""
    verification = await lifecycle.verify_certificate(db, certificate_id, clock=clock)
    return CertificateVerificationResponse(**asdict(verification))
