import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from trajgen.core.database import init_db
from trajgen.scripts.seed_data import seed_master_data
from trajgen.services.master_data import list_geofences, resolve_vehicle


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await init_db(bind=engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def seeded(session):
    """Session over a database holding the Tokyo demo master data."""
    await seed_master_data(session)
    return session


@pytest.fixture
async def vehicle(seeded):
    return await resolve_vehicle(seeded, 1)


@pytest.fixture
async def geofences(seeded):
    return await list_geofences(seeded)
