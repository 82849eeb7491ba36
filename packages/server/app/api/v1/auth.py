"""
Authentication endpoints.

- Email/Password registration & login
- Bearer token issuance (JWT)
- Current user profile
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import create_jwt, get_current_user
from app.core.database import get_session
from app.models.base import ensure_utc
from app.models.user import User
from app.services import users as user_service
from taskboard_shared.schemas.users import (
    LoginRequest,
    RegisterRequest,
    TokenResponse,
    UserResponse,
)

log = structlog.get_logger()
router = APIRouter()


def _user_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        name=user.name,
        email=user.email,
        created_at=ensure_utc(user.created_at),
    )


def _issue_token(user: User) -> TokenResponse:
    token = create_jwt(user.id)
    return TokenResponse(token=token, user=_user_response(user))


# ---------------------------------------------------------------------------
# Email/Password Registration & Login
# ---------------------------------------------------------------------------


@router.post("/register", response_model=TokenResponse, status_code=201)
async def register(
    body: RegisterRequest,
    session: AsyncSession = Depends(get_session),
):
    """Register a new user and return a bearer token."""
    user = await user_service.register_user(session, body)
    await session.commit()
    return _issue_token(user)


@router.post("/login", response_model=TokenResponse)
async def login(
    body: LoginRequest,
    session: AsyncSession = Depends(get_session),
):
    """Authenticate with email/password and receive a bearer token."""
    user = await user_service.authenticate_user(session, body)
    return _issue_token(user)


@router.get("/me", response_model=UserResponse)
async def me(user: User = Depends(get_current_user)):
    """Return the authenticated user's profile."""
    return _user_response(user)
