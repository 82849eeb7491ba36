"""
Workspace service: business logic for workspaces, membership and invites.

Handles:
- Workspace creation (creator becomes OWNER) and listing
- Member role changes and removal with the at-least-one-owner guard
- Invite lifecycle: PENDING → ACCEPTED | DECLINED
"""

from __future__ import annotations

import uuid
from typing import Sequence

import structlog
from fastapi import HTTPException
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.models.base import ensure_utc
from app.models.invite import Invite
from app.models.membership import WorkspaceMember
from app.models.user import User
from app.models.workspace import Workspace
from app.services.tasks import AssigneeChange, unassign_member
from app.services.users import normalize_email
from taskboard_shared.schemas.common import InviteStatus, WorkspaceRole
from taskboard_shared.schemas.workspaces import (
    INVITE_TRANSITIONS,
    InviteCreateRequest,
    InviteResponse,
    MemberResponse,
    WorkspaceCreateRequest,
    WorkspaceListItem,
)

log = structlog.get_logger()


# ---------------------------------------------------------------------------
# Workspaces
# ---------------------------------------------------------------------------


async def create_workspace(
    session: AsyncSession, req: WorkspaceCreateRequest, creator: User
) -> Workspace:
    """Create a workspace and make the creator its OWNER."""
    workspace = Workspace(name=req.name, owner_id=creator.id)
    session.add(workspace)
    await session.flush()

    session.add(
        WorkspaceMember(
            workspace_id=workspace.id,
            user_id=creator.id,
            role=WorkspaceRole.OWNER.value,
        )
    )
    await session.flush()

    log.info("workspace.created", workspace_id=str(workspace.id), creator=str(creator.id))
    return workspace


async def list_user_workspaces(
    session: AsyncSession, user_id: uuid.UUID
) -> list[WorkspaceListItem]:
    """List all workspaces a user belongs to, with their role."""
    result = await session.execute(
        select(Workspace, WorkspaceMember.role)
        .join(WorkspaceMember, WorkspaceMember.workspace_id == Workspace.id)
        .where(WorkspaceMember.user_id == user_id)
        .order_by(Workspace.created_at)
    )
    return [
        WorkspaceListItem(id=ws.id, name=ws.name, owner_id=ws.owner_id, role=role)
        for ws, role in result.all()
    ]


# ---------------------------------------------------------------------------
# Members
# ---------------------------------------------------------------------------


async def list_members(
    session: AsyncSession, workspace_id: uuid.UUID
) -> list[MemberResponse]:
    result = await session.execute(
        select(WorkspaceMember, User)
        .join(User, User.id == WorkspaceMember.user_id)
        .where(WorkspaceMember.workspace_id == workspace_id)
        .order_by(WorkspaceMember.joined_at)
    )
    return [
        MemberResponse(
            user_id=user.id,
            name=user.name,
            email=user.email,
            role=member.role,
            joined_at=ensure_utc(member.joined_at),
        )
        for member, user in result.all()
    ]


async def member_users(session: AsyncSession, workspace_id: uuid.UUID) -> Sequence[User]:
    """All users holding a membership in the workspace."""
    result = await session.execute(
        select(User)
        .join(WorkspaceMember, WorkspaceMember.user_id == User.id)
        .where(WorkspaceMember.workspace_id == workspace_id)
    )
    return result.scalars().all()


async def _count_owners(session: AsyncSession, workspace_id: uuid.UUID) -> int:
    result = await session.execute(
        select(func.count())
        .select_from(WorkspaceMember)
        .where(
            WorkspaceMember.workspace_id == workspace_id,
            WorkspaceMember.role == WorkspaceRole.OWNER.value,
        )
    )
    return result.scalar_one()


async def _get_member_or_404(
    session: AsyncSession, workspace_id: uuid.UUID, user_id: uuid.UUID
) -> WorkspaceMember:
    member = await session.get(WorkspaceMember, (workspace_id, user_id))
    if not member:
        raise HTTPException(status_code=404, detail="Member not found")
    return member


async def change_member_role(
    session: AsyncSession,
    workspace_id: uuid.UUID,
    actor_id: uuid.UUID,
    target_id: uuid.UUID,
    role: WorkspaceRole,
) -> WorkspaceMember:
    """Set a member's role. The workspace always keeps at least one OWNER."""
    if target_id == actor_id:
        raise HTTPException(status_code=400, detail="Owners cannot change their own role")

    member = await _get_member_or_404(session, workspace_id, target_id)
    if member.role == role.value:
        return member

    if member.role == WorkspaceRole.OWNER.value and await _count_owners(session, workspace_id) <= 1:
        raise HTTPException(status_code=409, detail="Workspace must have at least one owner")

    previous = member.role
    member.role = role.value
    session.add(member)
    await session.flush()

    log.info(
        "member.role_changed",
        workspace_id=str(workspace_id),
        user_id=str(target_id),
        previous=previous,
        role=role.value,
    )
    return member


async def remove_member(
    session: AsyncSession,
    workspace_id: uuid.UUID,
    actor_id: uuid.UUID,
    target_id: uuid.UUID,
) -> dict[uuid.UUID, AssigneeChange]:
    """Remove a member and drop their task assignments in this workspace.

    Returns the assignee change of every task the member was removed from.
    """
    if target_id == actor_id:
        raise HTTPException(status_code=400, detail="Owners cannot remove themselves")

    member = await _get_member_or_404(session, workspace_id, target_id)
    if member.role == WorkspaceRole.OWNER.value and await _count_owners(session, workspace_id) <= 1:
        raise HTTPException(status_code=409, detail="Workspace must have at least one owner")

    unassigned = await unassign_member(session, workspace_id, target_id)
    await session.delete(member)
    await session.flush()

    log.info(
        "member.removed",
        workspace_id=str(workspace_id),
        user_id=str(target_id),
        unassigned_tasks=len(unassigned),
    )
    return unassigned


# ---------------------------------------------------------------------------
# Invites
# ---------------------------------------------------------------------------


def invite_to_response(invite: Invite, workspace_name: str | None = None) -> InviteResponse:
    return InviteResponse(
        id=invite.id,
        workspace_id=invite.workspace_id,
        workspace_name=workspace_name,
        email=invite.email,
        role=invite.role,
        status=invite.status,
        invited_by=invite.invited_by,
        created_at=ensure_utc(invite.created_at),
    )


async def create_invite(
    session: AsyncSession,
    workspace_id: uuid.UUID,
    req: InviteCreateRequest,
    inviter_id: uuid.UUID,
) -> Invite:
    """Queue an invite. Rejects existing members and duplicate pending invites."""
    email = normalize_email(req.email)

    result = await session.execute(
        select(WorkspaceMember)
        .join(User, User.id == WorkspaceMember.user_id)
        .where(WorkspaceMember.workspace_id == workspace_id, User.email == email)
    )
    if result.scalar_one_or_none():
        raise HTTPException(status_code=409, detail="User is already a member of this workspace")

    result = await session.execute(
        select(Invite).where(
            Invite.workspace_id == workspace_id,
            Invite.email == email,
            Invite.status == InviteStatus.PENDING.value,
        )
    )
    if result.scalar_one_or_none():
        raise HTTPException(status_code=409, detail="An invite is already pending for this email")

    invite = Invite(
        workspace_id=workspace_id,
        email=email,
        role=req.role.value,
        status=InviteStatus.PENDING.value,
        invited_by=inviter_id,
    )
    session.add(invite)
    await session.flush()

    log.info("invite.created", workspace_id=str(workspace_id), invite_id=str(invite.id), role=invite.role)
    return invite


async def list_pending_invites(session: AsyncSession, workspace_id: uuid.UUID) -> list[Invite]:
    result = await session.execute(
        select(Invite)
        .where(
            Invite.workspace_id == workspace_id,
            Invite.status == InviteStatus.PENDING.value,
        )
        .order_by(Invite.created_at.desc())
    )
    return list(result.scalars().all())


async def list_invites_for_email(session: AsyncSession, email: str) -> list[InviteResponse]:
    """Pending invites addressed to ``email``, with the workspace name."""
    result = await session.execute(
        select(Invite, Workspace.name)
        .join(Workspace, Workspace.id == Invite.workspace_id)
        .where(
            Invite.email == normalize_email(email),
            Invite.status == InviteStatus.PENDING.value,
        )
        .order_by(Invite.created_at.desc())
    )
    return [invite_to_response(invite, name) for invite, name in result.all()]


async def _get_own_invite(session: AsyncSession, invite_id: uuid.UUID, user: User) -> Invite:
    invite = await session.get(Invite, invite_id)
    if not invite:
        raise HTTPException(status_code=404, detail="Invite not found")
    if invite.email != normalize_email(user.email):
        raise HTTPException(status_code=403, detail="This invite is not addressed to you")
    return invite


async def accept_invite(
    session: AsyncSession, invite_id: uuid.UUID, user: User
) -> tuple[Invite, bool]:
    """Accept an invite addressed to ``user``.

    Returns ``(invite, changed)``; ``changed`` is False when the invite had
    already been accepted.
    """
    invite = await _get_own_invite(session, invite_id, user)
    current = InviteStatus(invite.status)

    if current == InviteStatus.ACCEPTED:
        return invite, False
    if InviteStatus.ACCEPTED not in INVITE_TRANSITIONS[current]:
        raise HTTPException(status_code=409, detail=f"Invite has already been {current.value.lower()}")

    user_id = user.id
    if not await session.get(WorkspaceMember, (invite.workspace_id, user_id)):
        session.add(
            WorkspaceMember(
                workspace_id=invite.workspace_id,
                user_id=user_id,
                role=invite.role,
            )
        )
    invite.status = InviteStatus.ACCEPTED.value
    session.add(invite)
    try:
        await session.flush()
    except IntegrityError:
        # A concurrent accept inserted the membership first
        await session.rollback()
        await session.refresh(invite)
        if invite.status != InviteStatus.ACCEPTED.value:
            raise
        log.info("invite.accept_raced", invite_id=str(invite_id), user_id=str(user_id))
        return invite, False

    log.info("invite.accepted", invite_id=str(invite.id), workspace_id=str(invite.workspace_id), user_id=str(user_id))
    return invite, True


async def decline_invite(session: AsyncSession, invite_id: uuid.UUID, user: User) -> Invite:
    """Decline an invite addressed to ``user``. Declining twice is a no-op."""
    invite = await _get_own_invite(session, invite_id, user)
    current = InviteStatus(invite.status)

    if current == InviteStatus.DECLINED:
        return invite
    if InviteStatus.DECLINED not in INVITE_TRANSITIONS[current]:
        raise HTTPException(status_code=409, detail=f"Invite has already been {current.value.lower()}")

    invite.status = InviteStatus.DECLINED.value
    session.add(invite)
    await session.flush()

    log.info("invite.declined", invite_id=str(invite.id), workspace_id=str(invite.workspace_id))
    return invite
