"""
Workspace-related Pydantic schemas shared between server and clients.

Covers: workspace CRUD request/response, membership management and the
invite lifecycle.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from .common import InviteRole, InviteStatus, WorkspaceRole


# ---------------------------------------------------------------------------
# Lifecycle transitions
# ---------------------------------------------------------------------------

# Valid state transitions for invites (ACCEPTED and DECLINED are terminal)
INVITE_TRANSITIONS: dict[InviteStatus, list[InviteStatus]] = {
    InviteStatus.PENDING: [InviteStatus.ACCEPTED, InviteStatus.DECLINED],
    InviteStatus.ACCEPTED: [],
    InviteStatus.DECLINED: [],
}


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class WorkspaceCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100, description="Workspace display name")

    @field_validator("name")
    @classmethod
    def _strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Workspace name must not be blank")
        return v


class MemberRoleUpdateRequest(BaseModel):
    role: WorkspaceRole


class InviteCreateRequest(BaseModel):
    email: EmailStr
    role: InviteRole = InviteRole.MEMBER


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class MemberResponse(BaseModel):
    user_id: uuid.UUID
    name: str
    email: str
    role: WorkspaceRole
    joined_at: datetime


class MemberListResponse(BaseModel):
    data: list[MemberResponse]


class WorkspaceResponse(BaseModel):
    id: uuid.UUID
    name: str
    owner_id: uuid.UUID
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class WorkspaceDetailResponse(WorkspaceResponse):
    role: WorkspaceRole  # the requesting user's role
    members: list[MemberResponse] = Field(default_factory=list)


class WorkspaceListItem(BaseModel):
    id: uuid.UUID
    name: str
    owner_id: uuid.UUID
    role: WorkspaceRole  # the requesting user's role in this workspace

    model_config = {"from_attributes": True}


class WorkspaceListResponse(BaseModel):
    data: list[WorkspaceListItem]


class InviteResponse(BaseModel):
    id: uuid.UUID
    workspace_id: uuid.UUID
    workspace_name: Optional[str] = None
    email: str
    role: InviteRole
    status: InviteStatus
    invited_by: uuid.UUID
    created_at: datetime


class InviteListResponse(BaseModel):
    data: list[InviteResponse]
