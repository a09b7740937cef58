# tests/conftest.py — Shared test fixtures
import os
import uuid

import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

# Use SQLite for tests
TEST_DB_URL = "sqlite+aiosqlite:///./test.db"
os.environ["DATABASE_URL"] = TEST_DB_URL
os.environ["JWT_SECRET_KEY"] = "test-secret-key-for-unit-tests-only-min-32-chars"
os.environ["ENVIRONMENT"] = "test"

from models import Base, User
from auth import AuthService
from database import get_db_session
from main import app


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    engine = create_async_engine(TEST_DB_URL, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(db_engine):
    session_factory = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def client(db_engine):
    """HTTP test client with overridden DB dependency"""
    session_factory = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db_session] = override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


async def _make_user(db_session, name: str) -> User:
    user = User(
        id=str(uuid.uuid4()),
        email=f"{name.lower()}@collabhub.dev",
        display_name=name,
        is_active=True,
    )
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest_asyncio.fixture
async def alice(db_session):
    """Creates organizations and resources in most tests"""
    return await _make_user(db_session, "Alice")


@pytest_asyncio.fixture
async def bob(db_session):
    return await _make_user(db_session, "Bob")


@pytest_asyncio.fixture
async def carol(db_session):
    return await _make_user(db_session, "Carol")


@pytest_asyncio.fixture
async def outsider(db_session):
    """Never joins any organization"""
    return await _make_user(db_session, "Outsider")


def get_auth_headers(user: User) -> dict:
    """Generate auth headers for a user"""
    token = AuthService.create_access_token({"sub": user.id, "email": user.email})
    return {"Authorization": f"Bearer {token}"}


# ============================================================
# API HELPERS
# ============================================================

async def create_org(client: AsyncClient, owner: User, name: str = "Acme") -> dict:
    resp = await client.post("/api/v1/organizations", json={"name": name}, headers=get_auth_headers(owner))
    assert resp.status_code == 201, resp.text
    return resp.json()


async def add_org_member(client: AsyncClient, org_id: str, by: User, user: User, role: str = "member") -> dict:
    resp = await client.post(
        f"/api/v1/organizations/{org_id}/members",
        json={"user_id": user.id, "role": role},
        headers=get_auth_headers(by),
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


async def create_group(client: AsyncClient, org_id: str, by: User, name: str = "Engineering") -> dict:
    resp = await client.post(
        "/api/v1/groups",
        json={"organization_id": org_id, "name": name},
        headers=get_auth_headers(by),
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


async def add_group_member(client: AsyncClient, group_id: str, by: User, user: User, role: str = "member") -> dict:
    resp = await client.post(
        f"/api/v1/groups/{group_id}/members",
        json={"user_id": user.id, "role": role},
        headers=get_auth_headers(by),
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


async def create_board(client: AsyncClient, org_id: str, by: User, name: str = "Platform", key: str = "PLAT") -> dict:
    resp = await client.post(
        "/api/v1/boards",
        json={"organization_id": org_id, "name": name, "key": key},
        headers=get_auth_headers(by),
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


async def create_task(client: AsyncClient, board_id: str, by: User, title: str = "Task", **fields) -> dict:
    resp = await client.post(
        f"/api/v1/boards/{board_id}/tasks",
        json={"title": title, **fields},
        headers=get_auth_headers(by),
    )
    assert resp.status_code == 201, resp.text
    return resp.json()
