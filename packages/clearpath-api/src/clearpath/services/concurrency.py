"""Retry policy for operations that lose an optimistic-concurrency race."""

import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from clearpath.errors import RaceLostError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# SQLite reports a writer that outwaited its busy timeout this way
_LOCK_CONTENTION_MESSAGES = ("database is locked", "database table is locked")


def is_lock_contention(exc: OperationalError) -> bool:
    message = str(exc.orig).lower()
    return any(text in message for text in _LOCK_CONTENTION_MESSAGES)


async def _run(operation: Callable[[], Awaitable[T]]) -> T:
    try:
        return await operation()
    except OperationalError as exc:
        if not is_lock_contention(exc):
            raise
        raise RaceLostError(
            "Database is busy with a concurrent write; retry the request"
        ) from exc


async def retry_once_on_race(
    db: AsyncSession, operation: Callable[[], Awaitable[T]]
) -> T:
    """Run ``operation``; on RaceLostError roll back and run it exactly once more.

    Lock contention on the database counts as a lost race. A second loss
    propagates to the caller as a transient error.
    """
    try:
        return await _run(operation)
    except RaceLostError as exc:
        logger.info("Retrying after lost race: %s", exc.message)
        await db.rollback()
    return await _run(operation)
