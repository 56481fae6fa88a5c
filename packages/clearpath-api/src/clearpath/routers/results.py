"""Lab result endpoints."""

from fastapi import APIRouter, BackgroundTasks, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from clearpath.clock import Clock
from clearpath.dependencies import get_clock, get_db, get_notifier
from clearpath.schemas.result import ResultCreate, ResultResponse, ResultUpdate
from clearpath.services import lifecycle
from clearpath.services.concurrency import retry_once_on_race
from clearpath.services.notifications import Notifier, dispatch_events

router = APIRouter(prefix="/v1/results", tags=["results"])


@router.post("", response_model=ResultResponse, status_code=status.HTTP_201_CREATED)
async def create_result(
    body: ResultCreate,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    notifier: Notifier = Depends(get_notifier),
) -> ResultResponse:
    """Record a lab result; the owning session is completed automatically."""
    outcome = await retry_once_on_race(
        db, lambda: lifecycle.record_result(db, clock=clock, **body.model_dump())
    )
    await db.commit()
    background_tasks.add_task(dispatch_events, notifier, outcome.events)
    return ResultResponse.model_validate(outcome.result)


@router.get("/by-session/{session_id}", response_model=ResultResponse)
async def get_result_by_session(
    session_id: str, db: AsyncSession = Depends(get_db)
) -> ResultResponse:
    result = await lifecycle.get_result_for_session(db, session_id)
    return ResultResponse.model_validate(result)


@router.get("/{result_id}", response_model=ResultResponse)
async def get_result(result_id: str, db: AsyncSession = Depends(get_db)) -> ResultResponse:
    result = await lifecycle.get_result(db, result_id)
    return ResultResponse.model_validate(result)


@router.put("/{result_id}", response_model=ResultResponse)
async def update_result(
    result_id: str,
    body: ResultUpdate,
    db: AsyncSession = Depends(get_db),
) -> ResultResponse:
    """Edit a result; refused once a certificate has locked it."""
    result = await lifecycle.update_result(
        db, result_id, body.model_dump(exclude_unset=True)
    )
    return ResultResponse.model_validate(result)


@router.delete("/{result_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_result(result_id: str, db: AsyncSession = Depends(get_db)) -> Response:
    await lifecycle.delete_result(db, result_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
