"""Concurrent writers on a file-backed SQLite database.

Each task opens its own session, and so its own connection. Together they
exercise the BEGIN IMMEDIATE write lock, the session version guard and the
UNIQUE constraints end to end.
"""

import asyncio

import pytest
from sqlalchemy import func, select

from clearpath.errors import ConflictError, InvalidTransitionError, RaceLostError
from clearpath.models import Certificate, CertType, Home, KitType, Result, SessionStatus
from clearpath.services.lifecycle import generate_certificate, record_result
from clearpath.services.session_state import (
    activate_session,
    apply_transition,
    create_test_session,
    execute_transition,
    get_test_session,
    mark_retrieved,
)


async def _committed_session(factory, clock, serial: str, *, retrieved: bool) -> str:
    """Commit a session, ``ordered`` or walked to ``retrieval_due``; returns its id."""
    async with factory() as db:
        home = Home(
            user_id="user-2",
            address_line1="9 Poplar Road",
            city="Brandon",
            province="MB",
            postal_code="R7A 0B1",
        )
        db.add(home)
        await db.flush()
        session = await create_test_session(
            db,
            home_id=home.id,
            kit_order_id=f"order-{serial}",
            kit_type=KitType.LONG_TERM,
            kit_serial_number=serial,
            clock=clock,
        )
        if retrieved:
            await activate_session(db, session.id, clock=clock)
            await mark_retrieved(db, session.id, clock=clock)
        await db.commit()
        return session.id


class TestConcurrentTransitions:
    @pytest.mark.asyncio
    async def test_exactly_one_of_two_exclusive_transitions_wins(
        self, file_session_factory, clock
    ):
        session_id = await _committed_session(
            file_session_factory, clock, "LT-RACE", retrieved=True
        )

        async def transition(target: SessionStatus) -> SessionStatus:
            async with file_session_factory() as db:
                outcome = await execute_transition(db, session_id, target, clock=clock)
                await db.commit()
                return outcome.session.status

        # mailed and expired exclude each other: whichever commits first wins
        outcomes = await asyncio.gather(
            transition(SessionStatus.MAILED),
            transition(SessionStatus.EXPIRED),
            return_exceptions=True,
        )

        winners = [o for o in outcomes if isinstance(o, SessionStatus)]
        losers = [o for o in outcomes if isinstance(o, InvalidTransitionError)]
        assert len(winners) == 1
        assert len(losers) == 1

        async with file_session_factory() as db:
            final = await get_test_session(db, session_id)
            assert final.status == winners[0]

    @pytest.mark.asyncio
    async def test_stale_snapshot_from_another_connection_loses(
        self, file_session_factory, clock
    ):
        session_id = await _committed_session(
            file_session_factory, clock, "LT-STALE", retrieved=False
        )

        async with file_session_factory() as reader:
            stale = await get_test_session(reader, session_id)
            # End the read transaction but keep the loaded snapshot
            await reader.commit()

            async with file_session_factory() as writer:
                await activate_session(writer, session_id, clock=clock)
                await writer.commit()

            with pytest.raises(RaceLostError):
                await apply_transition(reader, stale, SessionStatus.CANCELLED, clock=clock)
            await reader.rollback()

        async with file_session_factory() as db:
            final = await get_test_session(db, session_id)
            assert final.status == SessionStatus.ACTIVE
            assert final.version == 2


class TestConcurrentResults:
    @pytest.mark.asyncio
    async def test_only_one_result_per_session(
        self, file_session_factory, seed_mailed_sessions, clock, now
    ):
        session_id = (await seed_mailed_sessions(1))[0]

        async def record(value: float):
            async with file_session_factory() as db:
                outcome = await record_result(
                    db,
                    test_session_id=session_id,
                    value_bqm3=value,
                    recorded_at=now,
                    clock=clock,
                )
                await db.commit()
                return outcome

        outcomes = await asyncio.gather(record(150.0), record(650.0), return_exceptions=True)

        conflicts = [o for o in outcomes if isinstance(o, ConflictError)]
        recorded = [o for o in outcomes if not isinstance(o, Exception)]
        assert len(conflicts) == 1
        assert len(recorded) == 1

        async with file_session_factory() as db:
            count = await db.scalar(
                select(func.count()).select_from(Result).where(
                    Result.test_session_id == session_id
                )
            )
            assert count == 1
            session = await get_test_session(db, session_id)
            assert session.status == SessionStatus.COMPLETE


class TestConcurrentCertificates:
    @pytest.mark.asyncio
    async def test_numbers_are_distinct_and_consecutive(
        self, file_session_factory, seed_results, clock, settings
    ):
        result_ids = await seed_results(5)

        async def issue(result_id: str) -> str:
            async with file_session_factory() as db:
                outcome = await generate_certificate(
                    db,
                    result_id=result_id,
                    cert_type=CertType.RESIDENTIAL,
                    clock=clock,
                    settings=settings,
                )
                await db.commit()
                return outcome.certificate.certificate_number

        numbers = await asyncio.gather(*(issue(result_id) for result_id in result_ids))

        assert sorted(numbers) == [f"CP-20260226-{n:04d}" for n in range(1, 6)]

        async with file_session_factory() as db:
            stored = (await db.execute(select(Certificate.certificate_number))).scalars().all()
            assert sorted(stored) == sorted(numbers)
            locked = (
                await db.execute(select(Result.is_immutable).where(Result.id.in_(result_ids)))
            ).scalars().all()
            assert all(locked)
