# tests/test_auth.py — Bearer token verification
from datetime import timedelta

import pytest
from httpx import AsyncClient

from auth import AuthService
from tests.conftest import get_auth_headers


@pytest.mark.asyncio
async def test_valid_token_identifies_user(client: AsyncClient, alice):
    resp = await client.get("/api/v1/users/me", headers=get_auth_headers(alice))
    assert resp.status_code == 200
    assert resp.json()["id"] == alice.id


@pytest.mark.asyncio
async def test_garbage_token_is_rejected(client: AsyncClient):
    resp = await client.get("/api/v1/users/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Invalid token"


@pytest.mark.asyncio
async def test_expired_token_is_rejected(client: AsyncClient, alice):
    token = AuthService.create_access_token({"sub": alice.id}, expires_delta=timedelta(seconds=-5))
    resp = await client.get("/api/v1/users/me", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Token expired"


@pytest.mark.asyncio
async def test_token_for_unknown_user_is_rejected(client: AsyncClient):
    token = AuthService.create_access_token({"sub": "ghost"})
    resp = await client.get("/api/v1/users/me", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_inactive_user_is_rejected(client: AsyncClient, db_session, bob):
    bob.is_active = False
    await db_session.commit()
    resp = await client.get("/api/v1/users/me", headers=get_auth_headers(bob))
    assert resp.status_code == 401
