"""Admin endpoints for scheduled maintenance sweeps."""

from fastapi import APIRouter, BackgroundTasks, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from clearpath.clock import Clock
from clearpath.dependencies import get_clock, get_db, get_notifier
from clearpath.services.lifecycle import expire_lapsed_certificates
from clearpath.services.notifications import Notifier, dispatch_events
from clearpath.services.session_state import advance_due_sessions

router = APIRouter(prefix="/v1/admin", tags=["admin"])


class SweepResponse(BaseModel):
    """Counts of records moved by a sweep."""

    sessions_advanced: int
    certificates_expired: int


@router.post("/sweeps", response_model=SweepResponse)
async def run_sweeps(
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    notifier: Notifier = Depends(get_notifier),
) -> SweepResponse:
    """Advance overdue sessions and expire lapsed certificates.

    Meant to be called by an external scheduler (cron); the service itself
    never runs time-based transitions on its own.
    """
    outcomes = await advance_due_sessions(db, clock=clock)
    expired = await expire_lapsed_certificates(db, clock=clock)

    await db.commit()

    events = [event for outcome in outcomes for event in outcome.events]
    if events:
        background_tasks.add_task(dispatch_events, notifier, events)

    return SweepResponse(sessions_advanced=len(outcomes), certificates_expired=expired)
