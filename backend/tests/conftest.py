import os

# Point settings at SQLite before any classroom module builds the engine.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./classroom_test.db")
os.environ.setdefault("AUTO_CREATE_TABLES", "false")

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from classroom.core.database import create_tables
from classroom.core.locks import SessionLocks, session_locks
from classroom.realtime.events import EventBus
from classroom.realtime.presence import PresenceTracker
from classroom.services import ChatChannel, ParticipantCoordinator, ReactionAggregator, SessionRegistry


@pytest.fixture(autouse=True)
def reset_shared_locks():
    # asyncio locks bind to the loop of the test that first contends them.
    session_locks._locks.clear()
    session_locks._users.clear()
    yield
    session_locks._locks.clear()
    session_locks._users.clear()


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'classroom.db'}", echo=False)
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def locks():
    return SessionLocks()


@pytest.fixture
def presence():
    return PresenceTracker()


@pytest.fixture
def registry(db, bus, locks):
    return SessionRegistry(db, events=bus, locks=locks)


@pytest.fixture
def coordinator(db, registry, bus, locks):
    return ParticipantCoordinator(db, registry=registry, events=bus, locks=locks)


@pytest.fixture
def chat(db, registry, bus, locks):
    return ChatChannel(db, registry=registry, events=bus, locks=locks)


@pytest.fixture
def reactions(db, bus, locks):
    return ReactionAggregator(db, events=bus, locks=locks)


@pytest_asyncio.fixture
async def classroom(registry):
    return await registry.create(class_name="3組", date="2024-01-15", period=3)

