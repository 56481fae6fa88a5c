"""Test session state machine.

The single authority on which status changes are legal and on the fields
that must be written together with a change.

    ordered         -> active, cancelled
    active          -> retrieval_due, cancelled
    retrieval_due   -> mailed, expired, cancelled
    mailed          -> results_pending, cancelled
    results_pending -> complete, cancelled
    complete, expired, cancelled are terminal

Only ``ordered -> active`` derives fields (activation stamp and timeline).
Writes go through the ORM version counter, so two transitions racing from
the same snapshot cannot both succeed.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from clearpath.clock import Clock, utc_now
from clearpath.db.types import ensure_utc
from clearpath.errors import ConflictError, InvalidTransitionError, NotFoundError, RaceLostError
from clearpath.models.enums import KitType, SessionStatus
from clearpath.models.home import Home
from clearpath.models.test_session import TestSession
from clearpath.services.notifications import (
    SESSION_ACTIVATED,
    SESSION_RETRIEVAL_DUE,
    DomainEvent,
)
from clearpath.services.timeline import compute_timeline, days_since_activation

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[SessionStatus, tuple[SessionStatus, ...]] = {
    SessionStatus.ORDERED: (SessionStatus.ACTIVE, SessionStatus.CANCELLED),
    SessionStatus.ACTIVE: (SessionStatus.RETRIEVAL_DUE, SessionStatus.CANCELLED),
    SessionStatus.RETRIEVAL_DUE: (
        SessionStatus.MAILED,
        SessionStatus.EXPIRED,
        SessionStatus.CANCELLED,
    ),
    SessionStatus.MAILED: (SessionStatus.RESULTS_PENDING, SessionStatus.CANCELLED),
    SessionStatus.RESULTS_PENDING: (SessionStatus.COMPLETE, SessionStatus.CANCELLED),
    SessionStatus.COMPLETE: (),
    SessionStatus.EXPIRED: (),
    SessionStatus.CANCELLED: (),
}

TERMINAL_STATUSES = frozenset(
    status for status, targets in ALLOWED_TRANSITIONS.items() if not targets
)

# Caller-supplied timestamps an action may write alongside a transition
STAMP_FIELDS = frozenset({"retrieved_at", "mailed_at"})


@dataclass
class TransitionOutcome:
    """The session after a transition plus the events it produced."""

    session: TestSession
    previous_status: SessionStatus
    events: list[DomainEvent] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return self.previous_status != self.session.status


def get_next_allowed_statuses(current: SessionStatus | str) -> list[SessionStatus]:
    """Return the statuses reachable from ``current`` (empty for terminal ones)."""
    return list(ALLOWED_TRANSITIONS[SessionStatus(current)])


def is_terminal(status: SessionStatus | str) -> bool:
    return SessionStatus(status) in TERMINAL_STATUSES


def validate_transition(current: SessionStatus | str, target: SessionStatus | str) -> None:
    """Raise InvalidTransitionError unless ``current -> target`` is legal.

    A transition to the current status is a silent no-op.
    """
    current = SessionStatus(current)
    target = SessionStatus(target)
    if current == target:
        return

    allowed = ALLOWED_TRANSITIONS[current]
    if target not in allowed:
        raise InvalidTransitionError(
            current=current.value,
            target=target.value,
            allowed=[s.value for s in allowed],
        )


async def get_test_session(
    db: AsyncSession, session_id: str, *, for_update: bool = False
) -> TestSession:
    """Load a test session or raise NotFoundError.

    ``for_update`` re-reads the row under a row lock where the backend
    supports one.
    """
    stmt = select(TestSession).where(TestSession.id == session_id)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    result = await db.execute(stmt)
    session = result.scalar_one_or_none()
    if session is None:
        raise NotFoundError("Test session", session_id)
    return session


def _activation_event(session: TestSession, now: datetime) -> DomainEvent:
    return DomainEvent(
        event_type=SESSION_ACTIVATED,
        subject_id=session.id,
        occurred_at=now,
        data={
            "home_id": session.home_id,
            "kit_serial_number": session.kit_serial_number,
            "kit_type": session.kit_type.value,
            "activated_at": session.activated_at.isoformat(),
            "expected_completion_date": session.expected_completion_date.isoformat(),
            "retrieval_due_at": session.retrieval_due_at.isoformat(),
        },
    )


async def apply_transition(
    db: AsyncSession,
    session: TestSession,
    target: SessionStatus | str,
    *,
    clock: Clock = utc_now,
    stamps: dict[str, datetime] | None = None,
) -> TransitionOutcome:
    """Validate and apply a transition to an already-loaded session.

    The status, any derived activation fields and any ``stamps`` are flushed
    as a single UPDATE guarded by the row version.
    """
    target = SessionStatus(target)
    stamps = stamps or {}
    unknown = set(stamps) - STAMP_FIELDS
    if unknown:
        raise ValueError(f"Unsupported transition stamp fields: {sorted(unknown)}")

    previous = session.status
    validate_transition(previous, target)

    now = clock()
    events: list[DomainEvent] = []

    if previous == SessionStatus.ORDERED and target == SessionStatus.ACTIVE:
        timeline = compute_timeline(session.kit_type, now)
        session.activated_at = now
        session.expected_completion_date = timeline.expected_completion_date
        session.retrieval_due_at = timeline.retrieval_due_at

    # A same-status request writes nothing, stamps included
    if previous != target:
        session.status = target
        session.updated_at = now
        for name, value in stamps.items():
            setattr(session, name, ensure_utc(value))

    try:
        await db.flush()
    except StaleDataError as exc:
        logger.warning(
            "Lost transition race on session %s (%s -> %s)",
            session.id,
            previous.value,
            target.value,
        )
        raise RaceLostError(
            "Test session was modified concurrently; retry the request",
            session_id=session.id,
            target=target.value,
        ) from exc

    if previous == SessionStatus.ORDERED and target == SessionStatus.ACTIVE:
        events.append(_activation_event(session, now))

    if previous != target:
        logger.info(
            "Session %s transitioned %s -> %s", session.id, previous.value, target.value
        )
    return TransitionOutcome(session=session, previous_status=previous, events=events)


async def execute_transition(
    db: AsyncSession,
    session_id: str,
    target: SessionStatus | str,
    *,
    clock: Clock = utc_now,
    stamps: dict[str, datetime] | None = None,
) -> TransitionOutcome:
    """Load the session, validate and apply the transition."""
    session = await get_test_session(db, session_id, for_update=True)
    return await apply_transition(db, session, target, clock=clock, stamps=stamps)


# ── Session actions ──────────────────────────────────────────────────


async def create_test_session(
    db: AsyncSession,
    *,
    home_id: str,
    kit_order_id: str,
    kit_type: KitType | str,
    kit_serial_number: str,
    placement_room: str | None = None,
    placement_description: str | None = None,
    clock: Clock = utc_now,
) -> TestSession:
    """Create a session in ``ordered`` status for a placed kit order."""
    home = await db.get(Home, home_id)
    if home is None:
        raise NotFoundError("Home", home_id)

    stmt = select(TestSession.id).where(TestSession.kit_serial_number == kit_serial_number)
    if (await db.execute(stmt)).scalar_one_or_none() is not None:
        raise ConflictError(
            "Kit serial number already in use", kit_serial_number=kit_serial_number
        )

    now = clock()
    session = TestSession(
        home_id=home_id,
        kit_order_id=kit_order_id,
        kit_type=KitType(kit_type),
        kit_serial_number=kit_serial_number,
        status=SessionStatus.ORDERED,
        placement_room=placement_room,
        placement_description=placement_description,
        activated_at=None,
        expected_completion_date=None,
        retrieval_due_at=None,
        retrieved_at=None,
        mailed_at=None,
        created_at=now,
        updated_at=now,
    )
    try:
        async with db.begin_nested():
            db.add(session)
    except IntegrityError as exc:
        raise ConflictError(
            "Kit serial number already in use", kit_serial_number=kit_serial_number
        ) from exc

    logger.info("Created test session %s for kit %s", session.id, kit_serial_number)
    return session


async def activate_session(
    db: AsyncSession, session_id: str, *, clock: Clock = utc_now
) -> TransitionOutcome:
    return await execute_transition(db, session_id, SessionStatus.ACTIVE, clock=clock)


async def mark_retrieved(
    db: AsyncSession,
    session_id: str,
    *,
    retrieved_at: datetime | None = None,
    clock: Clock = utc_now,
) -> TransitionOutcome:
    """Stamp the pick-up time; an ``active`` session advances to ``retrieval_due``."""
    stamp = retrieved_at or clock()
    return await execute_transition(
        db,
        session_id,
        SessionStatus.RETRIEVAL_DUE,
        clock=clock,
        stamps={"retrieved_at": stamp},
    )


async def mark_mailed(
    db: AsyncSession,
    session_id: str,
    *,
    mailed_at: datetime | None = None,
    clock: Clock = utc_now,
) -> TransitionOutcome:
    stamp = mailed_at or clock()
    return await execute_transition(
        db,
        session_id,
        SessionStatus.MAILED,
        clock=clock,
        stamps={"mailed_at": stamp},
    )


async def cancel_session(
    db: AsyncSession, session_id: str, *, clock: Clock = utc_now
) -> TransitionOutcome:
    return await execute_transition(db, session_id, SessionStatus.CANCELLED, clock=clock)


async def delete_test_session(db: AsyncSession, session_id: str) -> None:
    """Physically delete a session that was never activated."""
    session = await get_test_session(db, session_id, for_update=True)
    if session.status != SessionStatus.ORDERED:
        raise ConflictError(
            "Only sessions that were never activated can be deleted; cancel it instead",
            session_id=session_id,
            status=session.status.value,
        )
    await db.delete(session)
    await db.flush()


async def advance_due_sessions(
    db: AsyncSession, *, clock: Clock = utc_now
) -> list[TransitionOutcome]:
    """Move active sessions whose retrieval date has passed to ``retrieval_due``.

    Invoked by an external scheduler; nothing in-process calls it on a timer.
    """
    now = clock()
    stmt = (
        select(TestSession)
        .where(TestSession.status == SessionStatus.ACTIVE)
        .where(TestSession.retrieval_due_at <= now)
        .order_by(TestSession.retrieval_due_at)
    )
    sessions = list((await db.execute(stmt)).scalars().all())

    outcomes = []
    for session in sessions:
        outcome = await apply_transition(
            db, session, SessionStatus.RETRIEVAL_DUE, clock=clock
        )
        outcome.events.append(
            DomainEvent(
                event_type=SESSION_RETRIEVAL_DUE,
                subject_id=session.id,
                occurred_at=now,
                data={
                    "home_id": session.home_id,
                    "kit_serial_number": session.kit_serial_number,
                    "retrieval_due_at": session.retrieval_due_at.isoformat(),
                    "days_active": days_since_activation(session.activated_at, now),
                },
            )
        )
        outcomes.append(outcome)

    if outcomes:
        logger.info("Advanced %d session(s) to retrieval_due", len(outcomes))
    return outcomes
