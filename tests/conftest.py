import sys
from pathlib import Path
import os
import tempfile

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///" + os.path.join(tempfile.gettempdir(), "trackpool-test.db"))
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("LOG_FILE", os.path.join(tempfile.gettempdir(), "trackpool-test.log"))

import httpx
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from trackpool.core.security import create_access_token, hash_password
from trackpool.models.base import Base
from trackpool.models.tracking_id import TrackingAuditLog, TrackingId, UserTrackingAssignment
from trackpool.models.user import User

TEST_PASSWORD = "correct-horse"


def make_numbers(count: int, start: int = 0) -> list[str]:
    """22-digit USPS style numbers, unique per index."""
    return [f"94055362075652753{i:05d}" for i in range(start, start + count)]


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'trackpool.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


async def _create_user(session_factory, email: str, name: str, is_admin: bool = False, is_active: bool = True) -> User:
    async with session_factory() as session:
        user = User(
            email=email,
            name=name,
            password_hash=hash_password(TEST_PASSWORD),
            is_admin=is_admin,
            is_active=is_active,
        )
        session.add(user)
        await session.commit()
        await session.refresh(user)
        return user


@pytest.fixture
async def admin(session_factory) -> User:
    return await _create_user(session_factory, "admin@example.com", "Pool Admin", is_admin=True)


@pytest.fixture
async def user_a(session_factory) -> User:
    return await _create_user(session_factory, "alice@example.com", "Alice Shipper")


@pytest.fixture
async def user_b(session_factory) -> User:
    return await _create_user(session_factory, "bob@example.com", "Bob Shipper")


@pytest.fixture
async def inactive_user(session_factory) -> User:
    return await _create_user(session_factory, "idle@example.com", "Idle Shipper", is_active=False)


class PoolSnapshot:
    """Fresh-session reads used to assert on committed state."""

    def __init__(self, session_factory):
        self.session_factory = session_factory

    async def rows(self) -> list[TrackingId]:
        async with self.session_factory() as session:
            result = await session.execute(select(TrackingId).order_by(TrackingId.id))
            return list(result.scalars().all())

    async def ledger(self, user_id) -> UserTrackingAssignment | None:
        async with self.session_factory() as session:
            result = await session.execute(
                select(UserTrackingAssignment).where(UserTrackingAssignment.user_id == user_id)
            )
            return result.scalar_one_or_none()

    async def audit(self, action=None) -> list[TrackingAuditLog]:
        async with self.session_factory() as session:
            stmt = select(TrackingAuditLog).order_by(TrackingAuditLog.created_at, TrackingAuditLog.tracking_id)
            if action is not None:
                stmt = stmt.where(TrackingAuditLog.action == action)
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def count_audit(self) -> int:
        async with self.session_factory() as session:
            result = await session.execute(select(func.count(TrackingAuditLog.id)))
            return result.scalar_one()


@pytest.fixture
def snapshot(session_factory) -> PoolSnapshot:
    return PoolSnapshot(session_factory)


def auth_headers(user: User) -> dict:
    token = create_access_token({"user_id": str(user.id), "role": user.role, "email": user.email})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def client(session_factory):
    from trackpool.db.session import get_db
    from trackpool.main import app

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as async_client:
        yield async_client
    app.dependency_overrides.clear()
