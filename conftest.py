import os
from datetime import timedelta
from typing import AsyncGenerator

# Settings are read at import time; pin the test environment first.
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["RATE_LIMIT_STORAGE_URI"] = "memory://"
os.environ["SMTP_USERNAME"] = ""
os.environ["SMTP_PASSWORD"] = ""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from libs.common.config import get_settings
from libs.common.datetime_utils import utc_now

get_settings.cache_clear()

from libs.db.base import Base
from services.communications_service import models as _communication_models  # noqa: F401
from services.communications_service.services.realtime import ConnectionRegistry
from services.dues_service import models as _dues_models  # noqa: F401
from services.events_service import models as _event_models  # noqa: F401
from services.gateway_service.app.main import app
from services.members_service import models as _member_models  # noqa: F401
from services.members_service.models import MemberRole
from tests.factories import MemberFactory


@pytest_asyncio.fixture
async def test_engine():
    """
    Fresh in-memory SQLite database per test.

    StaticPool keeps the single connection alive so every session sees the
    same database.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    session_factory = async_sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    async with session_factory() as session:
        yield session


@pytest.fixture
def registry() -> ConnectionRegistry:
    return ConnectionRegistry()


@pytest_asyncio.fixture
async def client(db_session, registry) -> AsyncGenerator[AsyncClient, None]:
    """
    Yield an AsyncClient for the gateway with the DB dependency overridden.

    ASGITransport does not run the lifespan, so the registry is attached here.
    """
    from libs.db.session import get_async_db

    async def _override_db():
        yield db_session

    app.dependency_overrides[get_async_db] = _override_db
    app.state.registry = registry

    async with AsyncClient(
        transport=ASGITransport(app=app, raise_app_exceptions=False),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Auth helpers
# ---------------------------------------------------------------------------


def create_access_token(member) -> str:
    """Sign a token the way the identity provider does."""
    settings = get_settings()
    payload = {
        "sub": str(member.id),
        "email": member.email,
        "role": member.role.value,
        "status": member.status.value,
        "exp": utc_now() + timedelta(hours=1),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def auth_headers_for(member) -> dict:
    """Bearer headers for a stored member."""
    token = create_access_token(member)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def headers_for():
    """Build bearer headers for members created inside a test."""
    return auth_headers_for


@pytest_asyncio.fixture
async def member(db_session):
    member = MemberFactory.create(first_name="Ada", last_name="Obi")
    db_session.add(member)
    await db_session.commit()
    return member


@pytest_asyncio.fixture
async def admin(db_session):
    admin = MemberFactory.create(role=MemberRole.ADMIN, first_name="Admin")
    db_session.add(admin)
    await db_session.commit()
    return admin


@pytest_asyncio.fixture
async def secretary(db_session):
    secretary = MemberFactory.create(role=MemberRole.SECRETARY, first_name="Sec")
    db_session.add(secretary)
    await db_session.commit()
    return secretary


@pytest.fixture
def member_headers(member) -> dict:
    return auth_headers_for(member)


@pytest.fixture
def admin_headers(admin) -> dict:
    return auth_headers_for(admin)


@pytest.fixture
def secretary_headers(secretary) -> dict:
    return auth_headers_for(secretary)
