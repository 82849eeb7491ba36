"""Task model."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class Task(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "tasks"

    board_id: uuid.UUID = Field(foreign_key="boards.id", nullable=False, index=True)
    title: str = Field(nullable=False)
    description: str = Field(nullable=False, default="")
    status: str = Field(nullable=False, default="TODO")  # TODO | DOING | DONE
    priority: str = Field(nullable=False, default="MEDIUM")  # LOW | MEDIUM | HIGH
    due_date: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
    attachments: list[dict] = Field(default_factory=list, sa_type=sa.JSON)  # [{url, label}]
    archived: bool = Field(nullable=False, default=False, index=True)
    archived_at: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
