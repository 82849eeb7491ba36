"""Workspace model: the tenant boundary for boards, tasks, members and invites."""

import uuid

from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class Workspace(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "workspaces"

    name: str = Field(nullable=False)
    owner_id: uuid.UUID = Field(foreign_key="users.id", nullable=False)  # creator
