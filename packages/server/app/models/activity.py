"""Activity event model (immutable audit of state-changing actions)."""

from datetime import datetime
from typing import Any
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import UUIDMixin, utcnow


class ActivityEvent(UUIDMixin, SQLModel, table=True):
    __tablename__ = "activity_events"

    workspace_id: uuid.UUID = Field(foreign_key="workspaces.id", nullable=False, index=True)
    actor_id: uuid.UUID = Field(foreign_key="users.id", nullable=False)
    type: str = Field(nullable=False)  # TASK_CREATED | TASK_UPDATED | TASK_MOVED | ...
    entity_id: uuid.UUID = Field(nullable=False, index=True)
    # "metadata" is reserved on declarative classes
    meta: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=sa.Column("metadata", sa.JSON, nullable=False),
    )
    created_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        index=True,
        sa_type=sa.DateTime(timezone=True),
    )
