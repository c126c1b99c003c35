"""
Shared test fixtures.

Provides:
- A fresh SQLite database per test (aiosqlite, tables from the model metadata)
- Service callers that run every call in its own session, like one request each
- Registered users and an "Acme" organization with members of every role
- An HTTP client with the database dependency overridden
"""

import os
from dataclasses import dataclass
from types import SimpleNamespace
from uuid import UUID

# Settings are read once and cached, so the environment must be set before import
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["JWT_SECRET_KEY"] = "test-secret-key-for-unit-tests-only-min-32-chars"
os.environ["JWT_REFRESH_SECRET_KEY"] = "test-refresh-key-for-unit-tests-only-min-32-chars"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["ENVIRONMENT"] = "test"
os.environ["LOG_LEVEL"] = "WARNING"

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine

from taskhub.config import get_settings
from taskhub.db.base import Base
from taskhub.db.session import create_session_factory, get_db_session
from taskhub.main import app
from taskhub.models import MemberRole, User
from taskhub.services import (
    AuthService,
    CommentService,
    CustomPropertyService,
    OrganizationService,
    ProjectService,
    TaskService,
)
from taskhub.services.auth import hash_password

TEST_PASSWORD = "correct-horse-battery"


class ServiceCaller:
    """Proxy running each service method in a fresh session."""

    def __init__(self, session_factory, service_cls):
        self._session_factory = session_factory
        self._service_cls = service_cls

    def __getattr__(self, name):
        async def call(*args, **kwargs):
            async with self._session_factory() as session:
                service = self._service_cls(session)
                return await getattr(service, name)(*args, **kwargs)

        return call


@dataclass
class AcmeOrg:
    """The Acme organization with one member per role and an outsider."""

    id: UUID
    owner: User
    admin: User
    member: User
    viewer: User
    outsider: User


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return create_session_factory(db_engine)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def services(session_factory) -> SimpleNamespace:
    return SimpleNamespace(
        auth=ServiceCaller(session_factory, AuthService),
        organizations=ServiceCaller(session_factory, OrganizationService),
        projects=ServiceCaller(session_factory, ProjectService),
        tasks=ServiceCaller(session_factory, TaskService),
        comments=ServiceCaller(session_factory, CommentService),
        properties=ServiceCaller(session_factory, CustomPropertyService),
    )


@pytest.fixture
def make_user(session_factory):
    """Factory inserting a user directly, skipping the registration checks."""

    async def _make_user(username: str) -> User:
        async with session_factory() as session:
            user = User(
                email=f"{username}@example.com",
                username=username,
                password_hash=hash_password(TEST_PASSWORD, rounds=4),
            )
            session.add(user)
            await session.commit()
            return user

    return _make_user


@pytest_asyncio.fixture
async def acme(services, make_user) -> AcmeOrg:
    owner = await make_user("alice")
    admin = await make_user("bob")
    member = await make_user("carol")
    viewer = await make_user("dave")
    outsider = await make_user("eve")

    organization = await services.organizations.create_organization(owner.id, "Acme")
    for user, role in (
        (admin, MemberRole.ADMIN),
        (member, MemberRole.MEMBER),
        (viewer, MemberRole.VIEWER),
    ):
        await services.organizations.invite_member(owner.id, organization.id, user.email, role)

    return AcmeOrg(
        id=organization.id,
        owner=owner,
        admin=admin,
        member=member,
        viewer=viewer,
        outsider=outsider,
    )


@pytest_asyncio.fixture
async def client(session_factory):
    """HTTP test client with overridden DB dependency."""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db_session] = override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def api_prefix() -> str:
    return get_settings().api_prefix
