"""
Pytest configuration and shared fixtures.

This module provides:
- An in-memory SQLite database (aiosqlite) with every table created
- An httpx AsyncClient bound to the app with the session dependency overridden
- Factories for users, clients, projects and tasks, plus bearer headers
"""

from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import clientportal.models  # noqa: F401
from clientportal.api.v1.auth import create_access_token
from clientportal.db.base import Base
from clientportal.db.session import get_db_session
from clientportal.main import app
from clientportal.models import Client, Project, Task, User

BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: pure functions and services without HTTP")
    config.addinivalue_line("markers", "api: endpoint tests through the ASGI app")


# ============================================================================
# DATABASE FIXTURES
# ============================================================================

@pytest.fixture
async def engine():
    """In-memory SQLite engine shared by the test and the app."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Session for service-level tests."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def fetch(session_factory) -> Callable[..., Awaitable[list[Any]]]:
    """Run a query in a fresh session and return the scalar results."""

    async def _fetch(query) -> list[Any]:
        async with session_factory() as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    return _fetch


# ============================================================================
# API CLIENT
# ============================================================================

@pytest.fixture
async def api_client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """AsyncClient against the app, using the test database."""

    async def override_get_db_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db_session] = override_get_db_session
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


# ============================================================================
# DATA FACTORIES
# ============================================================================

@pytest.fixture
def make_user(session_factory) -> Callable[..., Awaitable[User]]:
    counter = {"n": 0}

    async def _make_user(role: str = "client", name: str | None = None, **kwargs) -> User:
        counter["n"] += 1
        n = counter["n"]
        user = User(
            external_auth_id=kwargs.pop("external_auth_id", f"user_{n}"),
            name=name or f"User {n}",
            email=kwargs.pop("email", f"user{n}@example.com"),
            role=role,
            created_at=kwargs.pop("created_at", BASE_TIME + timedelta(minutes=n)),
            **kwargs,
        )
        async with session_factory() as session:
            session.add(user)
            await session.commit()
        return user

    return _make_user


@pytest.fixture
def make_client(session_factory) -> Callable[..., Awaitable[Client]]:
    counter = {"n": 0}

    async def _make_client(name: str = "Acme", **kwargs) -> Client:
        counter["n"] += 1
        client = Client(
            name=name,
            created_at=kwargs.pop("created_at", BASE_TIME + timedelta(hours=counter["n"])),
            **kwargs,
        )
        async with session_factory() as session:
            session.add(client)
            await session.commit()
        return client

    return _make_client


@pytest.fixture
def make_project(session_factory) -> Callable[..., Awaitable[Project]]:
    async def _make_project(client: Client, title: str = "Website", **kwargs) -> Project:
        project = Project(title=title, client_id=client.id, **kwargs)
        async with session_factory() as session:
            session.add(project)
            await session.commit()
        return project

    return _make_project


@pytest.fixture
def make_task(session_factory) -> Callable[..., Awaitable[Task]]:
    async def _make_task(project: Project, title: str = "Task", **kwargs) -> Task:
        task = Task(title=title, project_id=project.id, **kwargs)
        async with session_factory() as session:
            session.add(task)
            await session.commit()
        return task

    return _make_task


def _auth_headers(user: User, session_status: str = "active") -> dict[str, str]:
    token = create_access_token(
        external_id=user.external_auth_id,
        email=user.email,
        name=user.name,
        session_status=session_status,
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers() -> Callable[..., dict[str, str]]:
    """Bearer headers carrying a session token for a user."""
    return _auth_headers


@pytest.fixture
async def admin(make_user) -> User:
    return await make_user(role="admin", name="Alice Admin")


@pytest.fixture
async def pm(make_user) -> User:
    return await make_user(role="team_member", name="Pat Manager")


@pytest.fixture
async def client_user(make_user) -> User:
    return await make_user(role="client", name="Carla Client", email="carla@acme.test")


@pytest.fixture
async def acme(make_client, pm, client_user) -> Client:
    """Client managed by ``pm`` whose portal login is ``client_user``."""
    return await make_client(
        name="Acme",
        contact_email="carla@acme.test",
        contact_phone="+15550100",
        subaccount_id="sub_acme",
        assigned_pm_id=pm.id,
        user_id=client_user.id,
    )
