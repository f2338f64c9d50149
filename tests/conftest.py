import os
import sys

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Add the app directory to Python path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

# Settings are read at import time, so the test environment goes first
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("OPERATOR_PASSWORD", "test-operator-password")
os.environ["LOCK_BACKEND"] = "memory"
os.environ["NOTIFICATIONS_ENABLED"] = "false"

from app.api.deps.database import get_db  # noqa: E402
from app.api.deps.services import get_clock, get_locks, get_notifier  # noqa: E402
from app.core.database import Base  # noqa: E402
from app.core.locks import MemorySlotLockManager  # noqa: E402
from app.main import app  # noqa: E402
from app.services.appointment import BookingService  # noqa: E402
from app.services.auth import AuthService  # noqa: E402
from app.services.shop import ShopService  # noqa: E402
from tests.fixtures.appointment_fixtures import (  # noqa: E402
    DEFAULT_NOW,
    FrozenClock,
    RecordingNotifier,
)


@pytest.fixture
async def db_engine(tmp_path):
    """Fresh SQLite database file for each test."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    """Create a fresh database session for each test."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock():
    return FrozenClock(DEFAULT_NOW)


@pytest.fixture
def locks():
    return MemorySlotLockManager(timeout_seconds=1.0)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def shop_service(db, locks):
    return ShopService(db, locks=locks)


@pytest.fixture
def booking_service(db, locks, notifier, clock):
    return BookingService(db, locks=locks, notifier=notifier, clock=clock)


@pytest.fixture
def override_dependencies(db: AsyncSession, locks, notifier, clock):
    """Route API requests to the test database, clock, locks and notifier."""

    async def _override_get_db():
        yield db

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_locks] = lambda: locks
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_clock] = lambda: clock
    yield
    app.dependency_overrides.clear()


@pytest.fixture
async def client(override_dependencies):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def operator_headers() -> dict[str, str]:
    """Bearer headers for the shop operator."""
    return {"Authorization": f"Bearer {AuthService.create_access_token()}"}


# Import shared fixtures to make them available
pytest_plugins = ["tests.fixtures.appointment_fixtures"]
