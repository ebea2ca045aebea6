from collections.abc import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import JSON, event
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from buildledger.common.enums import UserRole
from buildledger.core.policy import EngineConfig
from buildledger.db.base import Base
from buildledger.db.models import *  # noqa: F401,F403 - ensure all models loaded
from buildledger.tests.factories import FakeAuditRecorder, make_user


# Make JSONB render as JSON for SQLite
@event.listens_for(Base.metadata, "before_create")
def _remap_jsonb(target, connection, **kw):
    if connection.dialect.name == "sqlite":
        for table in target.tables.values():
            for column in table.columns:
                if isinstance(column.type, JSONB):
                    column.type = JSON()


@pytest.fixture
async def test_engine(tmp_path):
    # A file database so that separate sessions see each other's commits
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def engine_config():
    return EngineConfig()


@pytest.fixture
def audit():
    return FakeAuditRecorder()


@pytest.fixture
async def client(db_session, engine_config):
    from buildledger.api.deps import get_db, get_engine_config
    from buildledger.main import app

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_engine_config] = lambda: engine_config

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
async def owner_user(db_session):
    return await make_user(db_session, UserRole.OWNER, "Test Owner")


@pytest.fixture
async def manager_user(db_session):
    return await make_user(db_session, UserRole.PROJECT_MANAGER, "Test Manager")


@pytest.fixture
async def accountant_user(db_session):
    return await make_user(db_session, UserRole.ACCOUNTANT, "Test Accountant")


@pytest.fixture
async def viewer_user(db_session):
    return await make_user(db_session, UserRole.VIEWER, "Test Viewer")


@pytest.fixture
def owner_headers(owner_user):
    return {"X-User-Id": str(owner_user.id)}


@pytest.fixture
def manager_headers(manager_user):
    return {"X-User-Id": str(manager_user.id)}


@pytest.fixture
def accountant_headers(accountant_user):
    return {"X-User-Id": str(accountant_user.id)}


@pytest.fixture
def viewer_headers(viewer_user):
    return {"X-User-Id": str(viewer_user.id)}
