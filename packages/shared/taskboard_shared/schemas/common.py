from enum import Enum
from typing import Optional
from pydantic import BaseModel

class WorkspaceRole(str, Enum):
    OWNER = "OWNER"
    MEMBER = "MEMBER"
    VIEWER = "VIEWER"

# Roles allowed to mutate boards, tasks and comments
CONTRIBUTOR_ROLES: tuple["WorkspaceRole", ...] = (WorkspaceRole.OWNER, WorkspaceRole.MEMBER)

class InviteRole(str, Enum):
    MEMBER = "MEMBER"
    VIEWER = "VIEWER"

class InviteStatus(str, Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    DECLINED = "DECLINED"

class TaskStatus(str, Enum):
    TODO = "TODO"
    DOING = "DOING"
    DONE = "DONE"

class TaskPriority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"

class ActivityType(str, Enum):
    TASK_CREATED = "TASK_CREATED"
    TASK_UPDATED = "TASK_UPDATED"
    TASK_MOVED = "TASK_MOVED"
    TASK_ASSIGNED = "TASK_ASSIGNED"
    TASK_ARCHIVED = "TASK_ARCHIVED"

class RealtimeEvent(str, Enum):
    ACTIVITY = "activity-event"
    BOARDS_UPDATED = "boards-updated"
    COMMENTS_UPDATED = "comments-updated"
    MEMBERS_UPDATED = "members-updated"
    WORKSPACES_UPDATED = "workspaces-updated"
    TASK_ASSIGNED = "task-assigned"
    MENTION = "mention"

class ErrorBody(BaseModel):
    code: str
    message: str
    status: int

class ErrorResponse(BaseModel):
    error: ErrorBody

class OkResponse(BaseModel):
    ok: bool = True
    message: Optional[str] = None
