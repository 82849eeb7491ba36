"""Workspace invite model."""

import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin

_PENDING = sa.text("status = 'PENDING'")


class Invite(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "invites"
    __table_args__ = (
        # At most one open invite per address per workspace
        sa.Index(
            "uq_invites_pending_email",
            "workspace_id",
            "email",
            unique=True,
            postgresql_where=_PENDING,
            sqlite_where=_PENDING,
        ),
    )

    workspace_id: uuid.UUID = Field(foreign_key="workspaces.id", nullable=False, index=True)
    email: str = Field(nullable=False, index=True)  # lower-cased
    role: str = Field(nullable=False, default="MEMBER")  # MEMBER | VIEWER
    status: str = Field(nullable=False, default="PENDING")  # PENDING | ACCEPTED | DECLINED
    invited_by: uuid.UUID = Field(foreign_key="users.id", nullable=False)
