"""
Shared fixtures: in-memory SQLite database, recording broadcaster, HTTP client.
"""

from __future__ import annotations

import os

# Settings are cached on first import; configure them before loading the app.
os.environ.setdefault("TB_DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("TB_REALTIME_BACKEND", "memory")
os.environ.setdefault("TB_BCRYPT_ROUNDS", "4")
os.environ.setdefault("TB_SECRET_KEY", "test-secret-key-with-enough-length-for-hs256")

import uuid
from typing import Any, NamedTuple, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

import app.models as _models  # noqa: F401  populate metadata
from app.core.database import get_session
from app.main import app


class RecordingBroadcaster:
    """Broadcaster that keeps every publish/evict call for assertions."""

    def __init__(self) -> None:
        self.published: list[tuple[str, str, Any]] = []
        self.evicted: list[tuple[str, uuid.UUID]] = []

    async def publish(self, room: str, event: str, data: Any) -> None:
        self.published.append((room, event, data))

    async def evict(self, room: str, user_id: uuid.UUID) -> None:
        self.evicted.append((room, user_id))

    def events(self, event: str, room: Optional[str] = None) -> list[Any]:
        return [
            data
            for r, e, data in self.published
            if e == event and (room is None or r == room)
        ]

    def clear(self) -> None:
        self.published.clear()
        self.evicted.clear()


class RegisteredUser(NamedTuple):
    id: str
    name: str
    email: str
    token: str

    @property
    def headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"}


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# App + client
# ---------------------------------------------------------------------------

@pytest.fixture
def broadcaster():
    previous = app.state.broadcaster
    recorder = RecordingBroadcaster()
    app.state.broadcaster = recorder
    yield recorder
    app.state.broadcaster = previous


@pytest.fixture
async def client(session_factory, broadcaster):
    async def _get_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_session] = _get_session
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def register(client):
    """Factory: register a user and return their id, email and bearer token."""

    async def _register(name: str, email: Optional[str] = None, password: str = "s3cret-pass") -> RegisteredUser:
        email = email or f"{name.lower().replace(' ', '.')}@example.com"
        resp = await client.post(
            "/auth/register", json={"name": name, "email": email, "password": password}
        )
        assert resp.status_code == 201, resp.text
        body = resp.json()
        return RegisteredUser(
            id=body["user"]["id"],
            name=name,
            email=body["user"]["email"],
            token=body["token"],
        )

    return _register


@pytest.fixture
def create_workspace(client):
    async def _create(owner: RegisteredUser, name: str = "Acme") -> str:
        resp = await client.post("/api/v1/workspaces", json={"name": name}, headers=owner.headers)
        assert resp.status_code == 201, resp.text
        return resp.json()["id"]

    return _create


@pytest.fixture
def add_member(client):
    """Factory: invite ``user`` into the workspace and accept, then set ``role``."""

    async def _add(owner: RegisteredUser, workspace_id: str, user: RegisteredUser, role: str = "MEMBER") -> None:
        invite_role = "VIEWER" if role == "VIEWER" else "MEMBER"
        resp = await client.post(
            f"/api/v1/workspaces/{workspace_id}/invites",
            json={"email": user.email, "role": invite_role},
            headers=owner.headers,
        )
        assert resp.status_code == 201, resp.text
        resp = await client.post(
            f"/api/v1/workspaces/invites/{resp.json()['id']}/accept", headers=user.headers
        )
        assert resp.status_code == 200, resp.text
        if role == "OWNER":
            resp = await client.patch(
                f"/api/v1/workspaces/{workspace_id}/members/{user.id}",
                json={"role": "OWNER"},
                headers=owner.headers,
            )
            assert resp.status_code == 200, resp.text

    return _add


@pytest.fixture
def create_board(client):
    async def _create(user: RegisteredUser, workspace_id: str, name: str = "Sprint") -> str:
        resp = await client.post(
            f"/api/v1/workspaces/{workspace_id}/boards", json={"name": name}, headers=user.headers
        )
        assert resp.status_code == 201, resp.text
        return resp.json()["id"]

    return _create


@pytest.fixture
def create_task(client):
    async def _create(user: RegisteredUser, workspace_id: str, board_id: str, **fields: Any) -> dict:
        body = {"title": "Write docs", **fields}
        resp = await client.post(
            f"/api/v1/workspaces/{workspace_id}/boards/{board_id}/tasks",
            json=body,
            headers=user.headers,
        )
        assert resp.status_code == 201, resp.text
        return resp.json()

    return _create
