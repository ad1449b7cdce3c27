import os

os.environ.setdefault("REALTIME_ENABLED", "false")
os.environ.setdefault("SCHEDULER_ENABLED", "false")

from datetime import date, datetime, timedelta, timezone  # noqa: E402

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from tripbank.config import settings  # noqa: E402
from tripbank.database import Base, get_db  # noqa: E402
from tripbank.dependencies import create_access_token  # noqa: E402
from tripbank.main import app  # noqa: E402
from tripbank.models import User  # noqa: E402
from tripbank.schemas.trip import CreateTripRequest  # noqa: E402

BASE_TIME = datetime(2025, 6, 1, 9, 0, tzinfo=timezone.utc)


def at(minutes: int) -> datetime:
    return BASE_TIME + timedelta(minutes=minutes)


def auth_headers(user_id: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


def trip_request(title: str = "Summer in Rome") -> CreateTripRequest:
    return CreateTripRequest(title=title, start_date=date(2025, 6, 1), end_date=date(2025, 6, 10))


@pytest.fixture(autouse=True)
def storage_dir(tmp_path, monkeypatch):
    path = tmp_path / "objects"
    monkeypatch.setattr(settings, "storage_dir", str(path))
    monkeypatch.setattr(settings, "realtime_enabled", False)
    return path


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_user(db):
    async def _make(user_id: str, **fields) -> User:
        user = User(id=user_id, email=f"{user_id}@example.com", name=user_id.title(), **fields)
        db.add(user)
        await db.commit()
        return user
    return _make


@pytest.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()
