"""
Authentication and Authorization for Taskboard.

Supports:
- Email/Password credentials (bcrypt)
- Stateless JWT bearer tokens (PyJWT)
- Workspace-scoped membership resolution
- Role-based authorization dependencies (OWNER / MEMBER / VIEWER)
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt
import structlog
from fastapi import Depends, HTTPException, Request
from fastapi.security import APIKeyHeader
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.activity import Actor
from app.core.config import get_settings
from app.core.database import get_session
from app.models.membership import WorkspaceMember
from app.models.user import User
from app.models.workspace import Workspace
from taskboard_shared.schemas.common import CONTRIBUTOR_ROLES, WorkspaceRole

log = structlog.get_logger()
settings = get_settings()

api_key_header = APIKeyHeader(name="Authorization", auto_error=False)

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------

def hash_password(password: str) -> str:
    """Hash a password using bcrypt with the configured cost factor."""
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=settings.bcrypt_rounds)).decode()


def verify_password(password: str, hashed: str) -> bool:
    """Verify a password against a bcrypt hash."""
    return bcrypt.checkpw(password.encode(), hashed.encode())


# ---------------------------------------------------------------------------
# JWT
# ---------------------------------------------------------------------------

def create_jwt(
    user_id: uuid.UUID,
    *,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a signed bearer token for ``user_id``."""
    now = datetime.now(timezone.utc)
    exp = now + (expires_delta or timedelta(minutes=settings.jwt_expire_minutes))
    payload = {
        "sub": str(user_id),
        "iat": now,
        "exp": exp,
    }
    return jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_jwt(token: str) -> dict:
    """Decode and verify a JWT. Raises jwt.PyJWTError on failure."""
    return jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])


def extract_bearer(authorization: Optional[str]) -> Optional[str]:
    """Return the token from an ``Authorization: Bearer <token>`` header value."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def resolve_token_user(token: str, session: AsyncSession) -> User:
    """Verify a token and load its user. Shared by HTTP and WebSocket auth."""
    try:
        payload = decode_jwt(token)
        user_id = uuid.UUID(payload["sub"])
    except (jwt.PyJWTError, KeyError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    user = await session.get(User, user_id)
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    return user


# ---------------------------------------------------------------------------
# Authentication dependencies
# ---------------------------------------------------------------------------

async def get_current_user(
    authorization: Optional[str] = Depends(api_key_header),
    session: AsyncSession = Depends(get_session),
) -> User:
    """Authenticate the caller from the bearer token."""
    token = extract_bearer(authorization)
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return await resolve_token_user(token, session)


class WorkspaceContext:
    """Container for an authenticated user + their workspace membership."""

    def __init__(self, user: User, workspace: Workspace, membership: WorkspaceMember):
        self.user = user
        self.workspace = workspace
        self.membership = membership
        self.user_id = user.id
        self.workspace_id = workspace.id
        self.role = WorkspaceRole(membership.role)
        self.actor = Actor.of(user)


async def get_membership(
    session: AsyncSession, workspace_id: uuid.UUID, user_id: uuid.UUID
) -> Optional[WorkspaceMember]:
    return await session.get(WorkspaceMember, (workspace_id, user_id))


async def get_workspace_member(
    request: Request,
    workspaceId: uuid.UUID,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> WorkspaceContext:
    """Resolve the path workspace and the caller's membership in it."""
    workspace = await session.get(Workspace, workspaceId)
    if not workspace:
        raise HTTPException(status_code=404, detail="Workspace not found")

    membership = await get_membership(session, workspace.id, user.id)
    if not membership:
        log.info("auth.not_member", user_id=str(user.id), workspace_id=str(workspace.id))
        raise HTTPException(status_code=403, detail="Not a member of this workspace")

    ctx = WorkspaceContext(user=user, workspace=workspace, membership=membership)
    request.state.auth = ctx
    return ctx


# ---------------------------------------------------------------------------
# Authorization dependencies (role checks)
# ---------------------------------------------------------------------------

def require_roles(*roles: WorkspaceRole):
    """Build a dependency that admits only members holding one of ``roles``."""
    allowed = frozenset(roles)

    async def _check(
        ctx: WorkspaceContext = Depends(get_workspace_member),
    ) -> WorkspaceContext:
        if ctx.role not in allowed:
            log.info(
                "auth.insufficient_role",
                user_id=str(ctx.user_id),
                workspace_id=str(ctx.workspace_id),
                role=ctx.role.value,
            )
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        return ctx

    return _check


# Any member (OWNER, MEMBER, VIEWER)
require_member = require_roles(*WorkspaceRole)
require_contributor = require_roles(*CONTRIBUTOR_ROLES)
require_owner = require_roles(WorkspaceRole.OWNER)
