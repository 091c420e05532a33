from datetime import datetime, timedelta

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from app.database import init_db
from app.engine import ParkingEngine
from app.errors import PublishError
from app.main import app


class RecordingSink:
    def __init__(self):
        self.events = []
        self.fail = False
        self.connected = False

    async def connect(self):
        self.connected = True

    async def disconnect(self):
        self.connected = False

    async def publish(self, topic, payload):
        if self.fail:
            raise PublishError("broker unreachable")
        self.events.append((topic, payload))

    def kinds(self):
        return [payload["event"] for _, payload in self.events]


class FakeClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
async def db_engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'parking.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, expire_on_commit=False)


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 10, 19, 8, 0, 0))


@pytest.fixture
def engine(session_factory, sink, clock):
    return ParkingEngine(session_factory, sink, clock=clock)


@pytest.fixture
async def client(engine):
    app.state.engine = engine
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http_client:
        yield http_client
    await engine.drain_events()
