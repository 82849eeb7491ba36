"""
User service: registration and credential verification.
"""

from __future__ import annotations

import structlog
from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.auth import hash_password, verify_password
from app.core.config import get_settings
from app.models.user import User
from taskboard_shared.schemas.users import LoginRequest, RegisterRequest

log = structlog.get_logger()
settings = get_settings()


def normalize_email(email: str) -> str:
    return email.strip().lower()


async def get_user_by_email(session: AsyncSession, email: str) -> User | None:
    result = await session.execute(select(User).where(User.email == normalize_email(email)))
    return result.scalar_one_or_none()


async def register_user(session: AsyncSession, req: RegisterRequest) -> User:
    """Create a user with a bcrypt-hashed password. Email is unique."""
    if len(req.password) < settings.min_password_length:
        raise HTTPException(
            status_code=400,
            detail=f"Password must be at least {settings.min_password_length} characters",
        )

    email = normalize_email(req.email)
    if await get_user_by_email(session, email):
        raise HTTPException(status_code=409, detail="Email already registered")

    user = User(
        name=req.name,
        email=email,
        password_hash=hash_password(req.password),
    )
    session.add(user)
    await session.flush()

    log.info("user.registered", user_id=str(user.id), email=email)
    return user


async def authenticate_user(session: AsyncSession, req: LoginRequest) -> User:
    """Return the user for valid credentials; 401 otherwise."""
    user = await get_user_by_email(session, req.email)
    if not user:
        log.warning("auth.login_failure", email=normalize_email(req.email), reason="unknown_email")
        raise HTTPException(status_code=401, detail="Invalid email or password")

    if not verify_password(req.password, user.password_hash):
        log.warning("auth.login_failure", email=user.email, reason="bad_password")
        raise HTTPException(status_code=401, detail="Invalid email or password")

    log.info("auth.login_success", user_id=str(user.id))
    return user
