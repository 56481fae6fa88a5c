"""FastAPI dependency injection functions."""

from collections.abc import AsyncGenerator

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from clearpath.clock import Clock, utc_now
from clearpath.config import Settings, get_settings
from clearpath.db.engine import get_session
from clearpath.services.notifications import Notifier


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session."""
    async for session in get_session():
        yield session


def get_app_settings() -> Settings:
    """Return application settings."""
    return get_settings()


def get_clock() -> Clock:
    """Return the current-time source. Tests override this."""
    return utc_now


def get_notifier(settings: Settings = Depends(get_app_settings)) -> Notifier:
    return Notifier(settings)
