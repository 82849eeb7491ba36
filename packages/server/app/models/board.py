"""Board model."""

import uuid

from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class Board(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "boards"

    workspace_id: uuid.UUID = Field(foreign_key="workspaces.id", nullable=False, index=True)
    name: str = Field(nullable=False)
    position: int = Field(nullable=False, default=0)  # dense, 0-based within the workspace
