"""Home registration endpoints."""

import uuid

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from clearpath.clock import Clock
from clearpath.dependencies import get_clock, get_db
from clearpath.errors import NotFoundError
from clearpath.models.home import Home
from clearpath.schemas.home import HomeCreate, HomeResponse

router = APIRouter(prefix="/v1/homes", tags=["homes"])


@router.post("", response_model=HomeResponse, status_code=status.HTTP_201_CREATED)
async def create_home(
    body: HomeCreate,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> HomeResponse:
    home = Home(id=str(uuid.uuid4()), **body.model_dump(), created_at=clock())
    db.add(home)
    await db.flush()
    return HomeResponse.model_validate(home)


@router.get("/{home_id}", response_model=HomeResponse)
async def get_home(home_id: str, db: AsyncSession = Depends(get_db)) -> HomeResponse:
    home = await db.get(Home, home_id)
    if home is None:
        raise NotFoundError("Home", home_id)
    return HomeResponse.model_validate(home)
