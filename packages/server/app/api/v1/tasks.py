"""
Task endpoints: CRUD, archive, assignment, comments and per-task activity.

Status columns: TODO → DOING → DONE
- Every mutation is scope-checked (task → board → workspace), committed,
  then recorded as an activity event and broadcast to the workspace room.
- A status change records TASK_MOVED; other field changes record one
  TASK_UPDATED; assignee changes record TASK_ASSIGNED.
- A PATCH that changes nothing records nothing.
"""

from __future__ import annotations

import uuid
from typing import List, Optional

import structlog
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.activity import record_activity
from app.core.auth import WorkspaceContext, require_contributor, require_member
from app.core.database import get_session
from app.core.realtime import Broadcaster, get_broadcaster, user_room, workspace_room
from app.services import activity as activity_service
from app.services import comments as comment_service
from app.services.boards import get_board_or_404
from app.services.mentions import resolve_mentions
from app.services.tasks import (
    AssigneeChange,
    archive_task,
    create_task,
    enrich_task,
    enrich_tasks,
    get_task_or_404,
    list_tasks,
    set_assignees,
    update_task,
)
from app.services.workspaces import member_users
from taskboard_shared.schemas.activity import ActivityEventRead
from taskboard_shared.schemas.common import ActivityType, RealtimeEvent, TaskPriority, TaskStatus
from taskboard_shared.schemas.tasks import (
    CommentCreate,
    CommentRead,
    TaskAssign,
    TaskCreate,
    TaskRead,
    TaskUpdate,
)

log = structlog.get_logger()

board_tasks_router = APIRouter()
router = APIRouter()


async def _record_assignment(
    session: AsyncSession,
    broadcaster: Broadcaster,
    ctx: WorkspaceContext,
    task: TaskRead,
    change: AssigneeChange,
) -> None:
    """TASK_ASSIGNED activity plus a ``task-assigned`` notice per new assignee."""
    task_id, title = task.id, task.title
    await record_activity(
        session,
        broadcaster,
        workspace_id=ctx.workspace_id,
        actor=ctx.actor,
        event_type=ActivityType.TASK_ASSIGNED,
        entity_id=task_id,
        metadata=change.metadata(),
    )
    for user_id in change.added:
        await broadcaster.publish(
            user_room(user_id),
            RealtimeEvent.TASK_ASSIGNED.value,
            {
                "workspace_id": str(ctx.workspace_id),
                "task_id": str(task_id),
                "title": title,
                "assigned_by": str(ctx.user_id),
            },
        )


# ---------------------------------------------------------------------------
# Board-scoped task routes
# ---------------------------------------------------------------------------


@board_tasks_router.get("", response_model=List[TaskRead])
async def list_tasks_endpoint(
    boardId: uuid.UUID,
    status: Optional[TaskStatus] = None,
    priority: Optional[TaskPriority] = None,
    assignee_id: Optional[uuid.UUID] = None,
    ctx: WorkspaceContext = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    """List the board's non-archived tasks, newest first."""
    board = await get_board_or_404(session, boardId, ctx.workspace_id)
    tasks = await list_tasks(
        session, board, status=status, priority=priority, assignee_id=assignee_id
    )
    return await enrich_tasks(session, tasks, ctx.workspace_id)


@board_tasks_router.post("", response_model=TaskRead, status_code=201)
async def create_task_endpoint(
    boardId: uuid.UUID,
    task_in: TaskCreate,
    ctx: WorkspaceContext = Depends(require_contributor),
    session: AsyncSession = Depends(get_session),
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    """Create a task on a board."""
    task = await create_task(session, ctx.workspace_id, boardId, task_in)
    await session.commit()
    enriched = await enrich_task(session, task, ctx.workspace_id)

    await record_activity(
        session,
        broadcaster,
        workspace_id=ctx.workspace_id,
        actor=ctx.actor,
        event_type=ActivityType.TASK_CREATED,
        entity_id=enriched.id,
        metadata={"title": enriched.title},
    )
    return enriched


# ---------------------------------------------------------------------------
# Task routes
# ---------------------------------------------------------------------------


@router.get("/{taskId}", response_model=TaskRead)
async def get_task_endpoint(
    taskId: uuid.UUID,
    ctx: WorkspaceContext = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    """Get a single task."""
    task, _board = await get_task_or_404(session, taskId, ctx.workspace_id)
    return await enrich_task(session, task, ctx.workspace_id)


@router.patch("/{taskId}", response_model=TaskRead)
async def update_task_endpoint(
    taskId: uuid.UUID,
    task_in: TaskUpdate,
    ctx: WorkspaceContext = Depends(require_contributor),
    session: AsyncSession = Depends(get_session),
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    """Update task fields, status and/or assignees."""
    task, _board = await get_task_or_404(session, taskId, ctx.workspace_id)
    changes = await update_task(session, task, ctx.workspace_id, task_in)
    await session.commit()
    enriched = await enrich_task(session, task, ctx.workspace_id)

    if changes.moved:
        from_status, to_status = changes.moved
        await record_activity(
            session,
            broadcaster,
            workspace_id=ctx.workspace_id,
            actor=ctx.actor,
            event_type=ActivityType.TASK_MOVED,
            entity_id=enriched.id,
            metadata={"from": from_status, "to": to_status},
        )
    if changes.fields:
        await record_activity(
            session,
            broadcaster,
            workspace_id=ctx.workspace_id,
            actor=ctx.actor,
            event_type=ActivityType.TASK_UPDATED,
            entity_id=enriched.id,
            metadata=changes.updated_metadata(),
        )
    if changes.assignees:
        await _record_assignment(session, broadcaster, ctx, enriched, changes.assignees)

    return enriched


@router.delete("/{taskId}", response_model=TaskRead)
async def archive_task_endpoint(
    taskId: uuid.UUID,
    ctx: WorkspaceContext = Depends(require_contributor),
    session: AsyncSession = Depends(get_session),
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    """Archive (soft-delete) a task. Archiving twice is a no-op."""
    task, _board = await get_task_or_404(session, taskId, ctx.workspace_id)
    archived = await archive_task(session, task)
    await session.commit()
    enriched = await enrich_task(session, task, ctx.workspace_id)

    if archived:
        await record_activity(
            session,
            broadcaster,
            workspace_id=ctx.workspace_id,
            actor=ctx.actor,
            event_type=ActivityType.TASK_ARCHIVED,
            entity_id=enriched.id,
            metadata={"title": enriched.title},
        )
    return enriched


@router.post("/{taskId}/assign", response_model=TaskRead)
async def assign_task_endpoint(
    taskId: uuid.UUID,
    body: TaskAssign,
    ctx: WorkspaceContext = Depends(require_contributor),
    session: AsyncSession = Depends(get_session),
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    """Assign the task to one member, or clear its assignees with ``null``."""
    task, _board = await get_task_or_404(session, taskId, ctx.workspace_id)
    user_ids = [body.user_id] if body.user_id else []
    change = await set_assignees(session, task, ctx.workspace_id, user_ids)
    await session.commit()
    enriched = await enrich_task(session, task, ctx.workspace_id)

    if change:
        await _record_assignment(session, broadcaster, ctx, enriched, change)
    return enriched


@router.get("/{taskId}/activity", response_model=List[ActivityEventRead])
async def task_activity_endpoint(
    taskId: uuid.UUID,
    ctx: WorkspaceContext = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    """Activity events recorded for this task, newest first."""
    task, _board = await get_task_or_404(session, taskId, ctx.workspace_id)
    return await activity_service.list_activity(session, ctx.workspace_id, entity_id=task.id)


# ---------------------------------------------------------------------------
# Comments
# ---------------------------------------------------------------------------


@router.get("/{taskId}/comments", response_model=List[CommentRead])
async def list_comments_endpoint(
    taskId: uuid.UUID,
    ctx: WorkspaceContext = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    """Comments on the task, newest first."""
    task, _board = await get_task_or_404(session, taskId, ctx.workspace_id)
    return await comment_service.list_comments(session, task)


@router.post("/{taskId}/comments", response_model=CommentRead, status_code=201)
async def create_comment_endpoint(
    taskId: uuid.UUID,
    comment_in: CommentCreate,
    ctx: WorkspaceContext = Depends(require_contributor),
    session: AsyncSession = Depends(get_session),
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    """Comment on a task and notify mentioned members."""
    task, _board = await get_task_or_404(session, taskId, ctx.workspace_id)
    comment = await comment_service.create_comment(session, task, ctx.user, comment_in)
    await session.commit()
    response = comment_service.to_comment_read(comment, ctx.actor.name)

    await broadcaster.publish(
        workspace_room(ctx.workspace_id),
        RealtimeEvent.COMMENTS_UPDATED.value,
        {"task_id": str(response.task_id), "comment": response.model_dump(mode="json")},
    )

    mentioned = resolve_mentions(
        response.text, await member_users(session, ctx.workspace_id), ctx.user_id
    )
    for user in mentioned:
        await broadcaster.publish(
            user_room(user.id),
            RealtimeEvent.MENTION.value,
            {
                "workspace_id": str(ctx.workspace_id),
                "task_id": str(response.task_id),
                "comment_id": str(response.id),
                "author_id": str(ctx.user_id),
                "author_name": ctx.actor.name,
                "text": response.text,
            },
        )
    if mentioned:
        log.info("comment.mentions", comment_id=str(response.id), count=len(mentioned))
    return response
