"""
Workspace API endpoints.

GET    /api/v1/workspaces                               - List workspaces for the caller
POST   /api/v1/workspaces                               - Create a workspace (caller becomes OWNER)
GET    /api/v1/workspaces/invites/me                    - Pending invites for the caller's email
POST   /api/v1/workspaces/invites/{inviteId}/accept     - Accept an invite
POST   /api/v1/workspaces/invites/{inviteId}/decline    - Decline an invite
GET    /api/v1/workspaces/{workspaceId}                 - Workspace details with members
GET    /api/v1/workspaces/{workspaceId}/members         - List members
PATCH  /api/v1/workspaces/{workspaceId}/members/{userId} - Change a member's role (OWNER)
DELETE /api/v1/workspaces/{workspaceId}/members/{userId} - Remove a member (OWNER)
POST   /api/v1/workspaces/{workspaceId}/invites         - Invite by email (OWNER)
GET    /api/v1/workspaces/{workspaceId}/invites         - Pending invites (OWNER)
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.activity import record_activity
from app.core.auth import (
    WorkspaceContext,
    get_current_user,
    require_member,
    require_owner,
)
from app.core.database import get_session
from app.core.realtime import Broadcaster, get_broadcaster, user_room, workspace_room
from app.models.base import ensure_utc
from app.models.user import User
from app.models.workspace import Workspace
from app.services import workspaces as ws_service
from taskboard_shared.schemas.common import ActivityType, OkResponse, RealtimeEvent
from taskboard_shared.schemas.workspaces import (
    InviteCreateRequest,
    InviteListResponse,
    InviteResponse,
    MemberListResponse,
    MemberResponse,
    MemberRoleUpdateRequest,
    WorkspaceCreateRequest,
    WorkspaceDetailResponse,
    WorkspaceListResponse,
    WorkspaceResponse,
)



def _workspace_response(ws: Workspace) -> WorkspaceResponse:
    return WorkspaceResponse(
        id=ws.id,
        name=ws.name,
        owner_id=ws.owner_id,
        created_at=ensure_utc(ws.created_at),
        updated_at=ensure_utc(ws.updated_at),
    )


async def _notify_membership_change(
    broadcaster: Broadcaster, workspace_id: uuid.UUID, user_id: uuid.UUID
) -> None:
    await broadcaster.publish(
        workspace_room(workspace_id),
        RealtimeEvent.MEMBERS_UPDATED.value,
        {"workspace_id": str(workspace_id)},
    )
    await broadcaster.publish(
        user_room(user_id),
        RealtimeEvent.WORKSPACES_UPDATED.value,
        {"workspace_id": str(workspace_id)},
    )


# ---------------------------------------------------------------------------
# Non-workspace-scoped routes (no workspaceId in path)
# ---------------------------------------------------------------------------
router_global = APIRouter()


@router_global.get("/workspaces", response_model=WorkspaceListResponse, tags=["Workspaces"])
async def list_workspaces(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """List workspaces the authenticated user belongs to."""
    items = await ws_service.list_user_workspaces(session, user.id)
    return WorkspaceListResponse(data=items)


@router_global.post(
    "/workspaces", response_model=WorkspaceResponse, status_code=201, tags=["Workspaces"]
)
async def create_workspace(
    body: WorkspaceCreateRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    """Create a new workspace. The creator becomes its OWNER."""
    workspace = await ws_service.create_workspace(session, body, user)
    await session.commit()
    response = _workspace_response(workspace)

    await broadcaster.publish(
        user_room(user.id),
        RealtimeEvent.WORKSPACES_UPDATED.value,
        {"workspace_id": str(workspace.id)},
    )
    return response


@router_global.get("/workspaces/invites/me", response_model=InviteListResponse, tags=["Invites"])
async def my_invites(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """Pending invites addressed to the caller's email."""
    items = await ws_service.list_invites_for_email(session, user.email)
    return InviteListResponse(data=items)


@router_global.post(
    "/workspaces/invites/{inviteId}/accept", response_model=InviteResponse, tags=["Invites"]
)
async def accept_invite(
    inviteId: uuid.UUID,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    """Accept an invite. Accepting an already-accepted invite is a no-op."""
    invite, changed = await ws_service.accept_invite(session, inviteId, user)
    await session.commit()
    response = ws_service.invite_to_response(invite)

    if changed:
        await _notify_membership_change(broadcaster, invite.workspace_id, user.id)
    return response


@router_global.post(
    "/workspaces/invites/{inviteId}/decline", response_model=InviteResponse, tags=["Invites"]
)
async def decline_invite(
    inviteId: uuid.UUID,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """Decline an invite."""
    invite = await ws_service.decline_invite(session, inviteId, user)
    await session.commit()
    return ws_service.invite_to_response(invite)


# ---------------------------------------------------------------------------
# Workspace-scoped routes (workspaceId in path)
# ---------------------------------------------------------------------------
router_scoped = APIRouter()


@router_scoped.get("", response_model=WorkspaceDetailResponse)
async def get_workspace(
    ctx: WorkspaceContext = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    """Workspace details, the caller's role and the member list."""
    members = await ws_service.list_members(session, ctx.workspace_id)
    return WorkspaceDetailResponse(
        **_workspace_response(ctx.workspace).model_dump(),
        role=ctx.role,
        members=members,
    )


@router_scoped.get("/members", response_model=MemberListResponse)
async def list_members(
    ctx: WorkspaceContext = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    """List members with name, email and role."""
    return MemberListResponse(data=await ws_service.list_members(session, ctx.workspace_id))


@router_scoped.patch("/members/{userId}", response_model=MemberResponse)
async def change_member_role(
    userId: uuid.UUID,
    body: MemberRoleUpdateRequest,
    ctx: WorkspaceContext = Depends(require_owner),
    session: AsyncSession = Depends(get_session),
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    """Change a member's role (OWNER only)."""
    await ws_service.change_member_role(session, ctx.workspace_id, ctx.user_id, userId, body.role)
    await session.commit()

    members = await ws_service.list_members(session, ctx.workspace_id)
    updated = next(m for m in members if m.user_id == userId)

    await _notify_membership_change(broadcaster, ctx.workspace_id, userId)
    return updated


@router_scoped.delete("/members/{userId}", response_model=OkResponse)
async def remove_member(
    userId: uuid.UUID,
    ctx: WorkspaceContext = Depends(require_owner),
    session: AsyncSession = Depends(get_session),
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    """Remove a member (OWNER only).

    Their sockets leave the workspace room, and every task they were
    assigned to records a TASK_ASSIGNED event without them.
    """
    unassigned = await ws_service.remove_member(session, ctx.workspace_id, ctx.user_id, userId)
    await session.commit()

    await broadcaster.evict(workspace_room(ctx.workspace_id), userId)
    await _notify_membership_change(broadcaster, ctx.workspace_id, userId)
    for task_id, change in unassigned.items():
        await record_activity(
            session,
            broadcaster,
            workspace_id=ctx.workspace_id,
            actor=ctx.actor,
            event_type=ActivityType.TASK_ASSIGNED,
            entity_id=task_id,
            metadata=change.metadata(),
        )
    return OkResponse(message="Member removed")


@router_scoped.post("/invites", response_model=InviteResponse, status_code=201)
async def create_invite(
    body: InviteCreateRequest,
    ctx: WorkspaceContext = Depends(require_owner),
    session: AsyncSession = Depends(get_session),
):
    """Invite an email address at MEMBER or VIEWER (OWNER only)."""
    invite = await ws_service.create_invite(session, ctx.workspace_id, body, ctx.user_id)
    await session.commit()
    return ws_service.invite_to_response(invite, ctx.workspace.name)


@router_scoped.get("/invites", response_model=InviteListResponse)
async def list_invites(
    ctx: WorkspaceContext = Depends(require_owner),
    session: AsyncSession = Depends(get_session),
):
    """Pending invites for this workspace (OWNER only)."""
    invites = await ws_service.list_pending_invites(session, ctx.workspace_id)
    return InviteListResponse(
        data=[ws_service.invite_to_response(i, ctx.workspace.name) for i in invites]
    )


