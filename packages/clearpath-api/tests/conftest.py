"""Test fixtures and configuration."""

from collections.abc import AsyncGenerator
from datetime import datetime, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from clearpath.clock import fixed_clock
from clearpath.config import Settings
from clearpath.db.engine import enable_sqlite_savepoints
from clearpath.dependencies import get_app_settings, get_clock, get_db
from clearpath.main import create_app
from clearpath.models import Base, Home, KitType, TestSession
from clearpath.services.lifecycle import record_result
from clearpath.services.session_state import (
    activate_session,
    create_test_session,
    mark_mailed,
    mark_retrieved,
)

NOW = datetime(2026, 2, 26, 12, 0, tzinfo=timezone.utc)
DB_FILENAME = "clearpath-test.db"


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def clock():
    return fixed_clock(NOW)


@pytest.fixture
def settings() -> Settings:
    """Settings with notifications disabled and a predictable public URL."""
    return Settings(
        public_url="https://verify.test",
        notification_webhook_url="",
        environment="test",
    )


@pytest_asyncio.fixture
async def db_engine():
    """Create an in-memory SQLite engine for tests."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
    )
    enable_sqlite_savepoints(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def file_db_engine(tmp_path):
    """A file-backed SQLite engine: each session gets its own connection."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / DB_FILENAME}",
        connect_args={"check_same_thread": False, "timeout": 15},
    )
    enable_sqlite_savepoints(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def file_session_factory(file_db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=file_db_engine, class_=AsyncSession, expire_on_commit=False
    )


@pytest_asyncio.fixture
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Yield an async session bound to the test engine."""
    factory = async_sessionmaker(
        bind=db_engine, class_=AsyncSession, expire_on_commit=False
    )
    async with factory() as session:
        yield session


def _build_app(engine, clock, settings):
    """Application with DB, clock and settings dependencies overridden."""
    factory = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)

    async def override_get_db():
        async with factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app = create_app()
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_app_settings] = lambda: settings
    return app


@pytest.fixture
def app(db_engine, clock, settings):
    return _build_app(db_engine, clock, settings)


@pytest.fixture
def app_factory(clock):
    """Build an overridden app for a given engine and settings."""

    def _factory(engine, app_settings):
        return _build_app(engine, clock, app_settings)

    return _factory


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client for the overridden app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


# ---------------------------------------------------------------------------
# Domain fixtures
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def home(db_session: AsyncSession) -> Home:
    home = Home(
        user_id="user-1",
        address_line1="12 Maple Street",
        address_line2=None,
        city="Winnipeg",
        province="MB",
        postal_code="R3C 0A1",
    )
    db_session.add(home)
    await db_session.flush()
    return home


@pytest_asyncio.fixture
async def ordered_session(db_session: AsyncSession, home: Home, clock) -> TestSession:
    """A long-term kit session in ``ordered`` status."""
    return await create_test_session(
        db_session,
        home_id=home.id,
        kit_order_id="order-1",
        kit_type=KitType.LONG_TERM,
        kit_serial_number="LT-0001",
        placement_room="Basement",
        clock=clock,
    )


@pytest_asyncio.fixture
async def api_home(client: AsyncClient) -> dict:
    """Register a home via POST /v1/homes and return the response body."""
    response = await client.post(
        "/v1/homes",
        json={
            "user_id": "user-api",
            "address_line1": "34 Birch Avenue",
            "city": "Regina",
            "province": "SK",
            "postal_code": "S4P 3Y2",
        },
    )
    assert response.status_code == 201, response.text
    return response.json()


@pytest.fixture
def bump_version(db_session: AsyncSession):
    """Return a coroutine that simulates a concurrent writer updating a session row."""

    async def _bump(session_id: str) -> None:
        table = TestSession.__table__
        await db_session.execute(
            update(table)
            .where(table.c.id == session_id)
            .values(version=table.c.version + 1)
        )

    return _bump


@pytest.fixture
def seed_mailed_sessions(file_session_factory, clock):
    """Return a coroutine that commits ``count`` mailed sessions to the file database."""

    async def _seed(count: int, serial_prefix: str = "LT-F") -> list[str]:
        async with file_session_factory() as db:
            home = Home(
                user_id="user-1",
                address_line1="56 Aspen Crescent",
                city="Saskatoon",
                province="SK",
                postal_code="S7K 1J5",
                created_at=NOW,
            )
            db.add(home)
            await db.flush()

            session_ids = []
            for index in range(count):
                session = await create_test_session(
                    db,
                    home_id=home.id,
                    kit_order_id=f"order-{serial_prefix}-{index}",
                    kit_type=KitType.LONG_TERM,
                    kit_serial_number=f"{serial_prefix}-{index:03d}",
                    clock=clock,
                )
                await activate_session(db, session.id, clock=clock)
                await mark_retrieved(db, session.id, clock=clock)
                await mark_mailed(db, session.id, clock=clock)
                session_ids.append(session.id)
            await db.commit()
        return session_ids

    return _seed


@pytest.fixture
def seed_results(file_session_factory, seed_mailed_sessions, clock):
    """Return a coroutine that commits ``count`` recorded results; yields their ids."""

    async def _seed(count: int) -> list[str]:
        session_ids = await seed_mailed_sessions(count, serial_prefix="LT-R")
        async with file_session_factory() as db:
            result_ids = []
            for session_id in session_ids:
                outcome = await record_result(
                    db,
                    test_session_id=session_id,
                    value_bqm3=320.0,
                    recorded_at=NOW,
                    clock=clock,
                )
                result_ids.append(outcome.result.id)
            await db.commit()
        return result_ids

    return _seed
