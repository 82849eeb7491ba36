"""Activity feed and workspace statistics schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field
from pydantic import UUID4

from .common import ActivityType


class ActivityEventRead(BaseModel):
    id: UUID4
    workspace_id: UUID4
    actor_id: UUID4
    actor_name: Optional[str] = None
    actor_email: Optional[str] = None
    type: ActivityType
    entity_id: UUID4
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime


class ActivityFeedResponse(BaseModel):
    data: list[ActivityEventRead]


class DueCounts(BaseModel):
    overdue: int = 0
    due_soon: int = 0


class WorkspaceStats(BaseModel):
    total: int = 0
    by_status: dict[str, int] = Field(default_factory=dict)
    by_priority: dict[str, int] = Field(default_factory=dict)
    due: DueCounts = Field(default_factory=DueCounts)
