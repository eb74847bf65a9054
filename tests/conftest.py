import os

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from booking_engine.api.deps import get_scheduling_service
from booking_engine.core.database import Base, get_db
from booking_engine.core.locks import LocalKeyedLock
from booking_engine.main import create_app
from booking_engine.services.scheduling import SchedulingService
from booking_engine.services.store import (
    SQLAlchemyBookingStore,
    SQLAlchemyServiceConfigProvider,
)
from tests.fixtures.scheduling_fixtures import NOW


@pytest.fixture
def test_database_url(tmp_path) -> str:
    """Database for a single test; a throwaway SQLite file unless overridden."""
    return os.getenv(
        "TEST_DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'bookings.db'}"
    )


@pytest.fixture
async def db(test_database_url):
    """Create a fresh database session for each test."""
    engine = create_async_engine(test_database_url, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)  # Clean slate
        await conn.run_sync(Base.metadata.create_all)

    async_session = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )

    async with async_session() as session:
        yield session

    await engine.dispose()


@pytest.fixture
def app(db: AsyncSession):
    """Application wired to the test database and a fixed clock."""
    application = create_app(init_database=False)
    lock = LocalKeyedLock()

    async def _override_get_db():
        yield db

    def _override_scheduling_service():
        return SchedulingService(
            store=SQLAlchemyBookingStore(db),
            config_provider=SQLAlchemyServiceConfigProvider(db),
            lock=lock,
            clock=lambda: NOW,
        )

    application.dependency_overrides[get_db] = _override_get_db
    application.dependency_overrides[get_scheduling_service] = (
        _override_scheduling_service
    )
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
async def client(app):
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac


# Import all scheduling fixtures to make them available
pytest_plugins = ["tests.fixtures.scheduling_fixtures"]
