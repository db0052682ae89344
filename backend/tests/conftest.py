"""
Centralized Test Configuration.
"""

import os

# Must be set before the app is imported; debug mode renders tracebacks
os.environ["DEBUG"] = "false"

import pytest
from datetime import timedelta
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from backend.app.main import app
from backend.app.db.session import get_db, Base
from backend.app.core.clock import utcnow
from backend.app.core.jwt import create_access_token
from backend.app.core.redis_client import get_redis
from backend.app.core.security import get_password_hash
from backend.app.models.enums import UserRole, KycStatus, PlanStatus
from backend.app.models.mail_item import MailItem
from backend.app.models.user import User
import backend.app.core.redis_client as redis_client_module

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Event handler to enable foreign keys for SQLite
from sqlalchemy import event
from sqlalchemy.pool import Pool

@event.listens_for(Pool, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    if 'sqlite' in str(type(dbapi_conn)):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
)

TEST_PASSWORD = "correct-horse-1"


# Mock Redis for reliability in CI/CD
class MockRedis:
    def __init__(self):
        self.store = {}
        self._closed = False

    async def ping(self):
        if self._closed:
            return False
        return True

    async def get(self, key):
        if self._closed:
            return None
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        if self._closed:
            return False
        self.store[key] = value
        return True

    async def setex(self, key, ttl, value):
        return await self.set(key, value, ex=ttl)

    async def delete(self, key):
        if self._closed:
            return 0
        if key in self.store:
            del self.store[key]
            return 1
        return 0

    async def exists(self, key):
        if self._closed:
            return 0
        return 1 if key in self.store else 0

    async def flushdb(self):
        if not self._closed:
            self.store = {}

    async def aclose(self):
        self._closed = True
        self.store = {}


_mock_redis = MockRedis()


@pytest.fixture(scope="session", autouse=True)
def apply_overrides():
    """Apply overrides once for the session."""
    original_client = redis_client_module.redis_client
    redis_client_module.redis_client = _mock_redis

    async def override_get_db():
        async with TestingSessionLocal() as session:
            yield session

    async def override_get_redis():
        return _mock_redis

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis
    yield

    app.dependency_overrides = {}
    redis_client_module.redis_client = original_client


@pytest.fixture
def mock_redis():
    return _mock_redis


@pytest.fixture(autouse=True)
async def setup_database():
    """Create tables before each test function and drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    _mock_redis.store = {}

    yield

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def client():
    """Async client for testing."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


# Shared session for fixture data creation
@pytest.fixture
async def db_session():
    async with TestingSessionLocal() as session:
        yield session


async def create_user(
    db: AsyncSession,
    email: str,
    role: UserRole = UserRole.CUSTOMER,
    kyc_status: KycStatus = KycStatus.NOT_STARTED,
    plan_status: PlanStatus = PlanStatus.PENDING,
    first_name: str = "Jane",
    last_name: str = "Doe",
    **extra
) -> User:
    user = User(
        email=email,
        first_name=first_name,
        last_name=last_name,
        hashed_password=get_password_hash(TEST_PASSWORD),
        role=role,
        kyc_status=kyc_status,
        plan_status=plan_status,
        is_active=True,
        **extra
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


async def create_mail_item(db: AsyncSession, user: User, age_days: int = 1, **fields) -> MailItem:
    fields.setdefault("subject", "Quarterly statement")
    fields.setdefault("sender_name", "Example Bank")
    mail = MailItem(user_id=user.id, received_at=utcnow() - timedelta(days=age_days), **fields)
    db.add(mail)
    await db.commit()
    await db.refresh(mail)
    return mail


def auth_headers(user: User) -> dict:
    token = create_access_token(data={"sub": user.email, "user_id": user.id, "role": user.role.value})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def customer(db_session):
    return await create_user(db_session, "customer@example.com")


@pytest.fixture
async def admin_user(db_session):
    return await create_user(
        db_session, "ops@example.com", role=UserRole.ADMIN,
        first_name="Olivia", last_name="Parker"
    )


@pytest.fixture
def customer_headers(customer):
    return auth_headers(customer)


@pytest.fixture
def admin_headers(admin_user):
    return auth_headers(admin_user)


@pytest.fixture
def make_user(db_session):
    async def _make(email: str, **kwargs) -> User:
        return await create_user(db_session, email, **kwargs)
    return _make


@pytest.fixture
def make_mail_item(db_session):
    async def _make(user: User, age_days: int = 1, **fields) -> MailItem:
        return await create_mail_item(db_session, user, age_days=age_days, **fields)
    return _make


@pytest.fixture
def headers_for():
    return auth_headers
