"""Board, task and comment schemas for shared use across server and clients."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic import UUID4

from .common import TaskPriority, TaskStatus


# ---------------------------------------------------------------------------
# Boards
# ---------------------------------------------------------------------------

class BoardCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)

    @field_validator("name")
    @classmethod
    def _strip(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Board name must not be blank")
        return v


class BoardReorder(BaseModel):
    """Request body for PATCH /boards/reorder."""
    ordered_ids: List[UUID4]


class BoardRead(BaseModel):
    id: UUID4
    workspace_id: UUID4
    name: str
    position: int
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


# ---------------------------------------------------------------------------
# Attachments
# ---------------------------------------------------------------------------

class Attachment(BaseModel):
    url: str = Field(min_length=1)
    label: str = ""


# ---------------------------------------------------------------------------
# Task CRUD
# ---------------------------------------------------------------------------

class TaskCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: str = ""
    priority: TaskPriority = TaskPriority.MEDIUM
    status: TaskStatus = TaskStatus.TODO
    due_date: Optional[datetime] = None
    attachments: List[Attachment] = Field(default_factory=list)

    @field_validator("title")
    @classmethod
    def _strip_title(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Title must not be blank")
        return v


class TaskUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    due_date: Optional[datetime] = None
    attachments: Optional[List[Attachment]] = None
    assignee_ids: Optional[List[UUID4]] = None

    @field_validator("title")
    @classmethod
    def _strip_title(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("Title must not be blank")
        return v


class TaskAssign(BaseModel):
    """Request body for POST /tasks/{taskId}/assign. ``None`` clears the assignees."""
    user_id: Optional[UUID4] = None


class TaskRead(BaseModel):
    id: UUID4
    board_id: UUID4
    workspace_id: UUID4
    title: str
    description: str = ""
    status: TaskStatus
    priority: TaskPriority
    due_date: Optional[datetime] = None
    attachments: List[Attachment] = Field(default_factory=list)
    assignee_ids: List[UUID4] = Field(default_factory=list)
    archived: bool = False
    archived_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


# ---------------------------------------------------------------------------
# Comments
# ---------------------------------------------------------------------------

class CommentCreate(BaseModel):
    text: str

    @field_validator("text")
    @classmethod
    def _strip_text(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Comment text must not be blank")
        return v


class CommentRead(BaseModel):
    id: UUID4
    task_id: UUID4
    author_id: UUID4
    author_name: Optional[str] = None
    text: str
    created_at: datetime
