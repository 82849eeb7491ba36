"""
Task service layer: business logic for tasks and their assignees.

Handles:
- Workspace scoping of task lookups (task → board → workspace)
- Task CRUD with change detection for activity emission
- Assignee set replacement restricted to workspace members
- Enrichment of task data for API responses
"""

from __future__ import annotations

import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional, Sequence

import structlog
from fastapi import HTTPException
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.models.assignments import TaskAssignee
from app.models.base import ensure_utc, utcnow
from app.models.board import Board
from app.models.membership import WorkspaceMember
from app.models.task import Task
from app.services.boards import get_board_or_404
from taskboard_shared.schemas.common import TaskPriority, TaskStatus
from taskboard_shared.schemas.tasks import TaskCreate, TaskRead, TaskUpdate

log = structlog.get_logger()

# Fields of TaskUpdate that may not be cleared with null
_REQUIRED_FIELDS = ("title", "description", "status", "priority", "attachments")


# ---------------------------------------------------------------------------
# Change tracking
# ---------------------------------------------------------------------------


@dataclass
class AssigneeChange:
    previous: list[uuid.UUID]
    current: list[uuid.UUID]

    @property
    def added(self) -> list[uuid.UUID]:
        before = set(self.previous)
        return [uid for uid in self.current if uid not in before]

    def metadata(self) -> dict[str, Any]:
        return {
            "user_ids": [str(uid) for uid in self.current],
            "previous": [str(uid) for uid in self.previous],
        }


@dataclass
class TaskChanges:
    """What a PATCH actually changed, as opposed to what it supplied."""

    moved: Optional[tuple[str, str]] = None
    fields: list[str] = field(default_factory=list)
    priority: Optional[tuple[str, str]] = None
    assignees: Optional[AssigneeChange] = None

    @property
    def any(self) -> bool:
        return bool(self.moved or self.fields or self.assignees)

    def updated_metadata(self) -> dict[str, Any]:
        meta: dict[str, Any] = {"fields": list(self.fields)}
        if self.priority:
            meta["from"], meta["to"] = self.priority
        return meta


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def get_task_or_404(
    session: AsyncSession, task_id: uuid.UUID, workspace_id: uuid.UUID
) -> tuple[Task, Board]:
    """Load a task and check its board lives in ``workspace_id``."""
    task = await session.get(Task, task_id)
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")
    board = await session.get(Board, task.board_id)
    if not board or board.workspace_id != workspace_id:
        raise HTTPException(status_code=403, detail="Task does not belong to this workspace")
    return task, board


async def _get_assignee_ids(session: AsyncSession, task_id: uuid.UUID) -> list[uuid.UUID]:
    result = await session.execute(
        select(TaskAssignee.user_id)
        .where(TaskAssignee.task_id == task_id)
        .order_by(TaskAssignee.assigned_at)
    )
    return [row[0] for row in result.all()]


def _to_read(task: Task, workspace_id: uuid.UUID, assignee_ids: list[uuid.UUID]) -> TaskRead:
    return TaskRead(
        id=task.id,
        board_id=task.board_id,
        workspace_id=workspace_id,
        title=task.title,
        description=task.description,
        status=task.status,
        priority=task.priority,
        due_date=ensure_utc(task.due_date),
        attachments=task.attachments or [],
        assignee_ids=assignee_ids,
        archived=task.archived,
        archived_at=ensure_utc(task.archived_at),
        created_at=ensure_utc(task.created_at),
        updated_at=ensure_utc(task.updated_at),
    )


async def enrich_task(session: AsyncSession, task: Task, workspace_id: uuid.UUID) -> TaskRead:
    """Convert a Task ORM object to a TaskRead with its assignees."""
    return _to_read(task, workspace_id, await _get_assignee_ids(session, task.id))


async def enrich_tasks(
    session: AsyncSession, tasks: Sequence[Task], workspace_id: uuid.UUID
) -> list[TaskRead]:
    """Enrich a list of tasks with one assignee query."""
    if not tasks:
        return []
    result = await session.execute(
        select(TaskAssignee.task_id, TaskAssignee.user_id)
        .where(TaskAssignee.task_id.in_([t.id for t in tasks]))
        .order_by(TaskAssignee.assigned_at)
    )
    by_task: dict[uuid.UUID, list[uuid.UUID]] = defaultdict(list)
    for task_id, user_id in result.all():
        by_task[task_id].append(user_id)
    return [_to_read(t, workspace_id, by_task[t.id]) for t in tasks]


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------


async def list_tasks(
    session: AsyncSession,
    board: Board,
    *,
    status: Optional[TaskStatus] = None,
    priority: Optional[TaskPriority] = None,
    assignee_id: Optional[uuid.UUID] = None,
) -> list[Task]:
    """Non-archived tasks of a board, newest first."""
    stmt = select(Task).where(Task.board_id == board.id, Task.archived == False)  # noqa: E712

    if status:
        stmt = stmt.where(Task.status == status.value)
    if priority:
        stmt = stmt.where(Task.priority == priority.value)
    if assignee_id:
        stmt = stmt.join(TaskAssignee, TaskAssignee.task_id == Task.id).where(
            TaskAssignee.user_id == assignee_id
        )

    result = await session.execute(stmt.order_by(Task.created_at.desc()))
    return list(result.scalars().all())


async def create_task(
    session: AsyncSession,
    workspace_id: uuid.UUID,
    board_id: uuid.UUID,
    task_in: TaskCreate,
) -> Task:
    board = await get_board_or_404(session, board_id, workspace_id)
    task = Task(
        board_id=board.id,
        title=task_in.title,
        description=task_in.description,
        status=task_in.status.value,
        priority=task_in.priority.value,
        due_date=task_in.due_date,
        attachments=[a.model_dump() for a in task_in.attachments],
    )
    session.add(task)
    await session.flush()

    log.info("task.created", task_id=str(task.id), board_id=str(board.id))
    return task


def _normalize(name: str, value: Any) -> Any:
    if name in ("status", "priority") and value is not None:
        return getattr(value, "value", value)
    if name == "due_date":
        return ensure_utc(value)
    if name == "attachments" and value is not None:
        return [a if isinstance(a, dict) else a.model_dump() for a in value]
    return value


async def set_assignees(
    session: AsyncSession,
    task: Task,
    workspace_id: uuid.UUID,
    user_ids: Sequence[uuid.UUID],
) -> Optional[AssigneeChange]:
    """Replace the assignee set. Returns None when the set is unchanged."""
    wanted = list(dict.fromkeys(user_ids))

    if wanted:
        result = await session.execute(
            select(WorkspaceMember.user_id).where(
                WorkspaceMember.workspace_id == workspace_id,
                WorkspaceMember.user_id.in_(wanted),
            )
        )
        members = {row[0] for row in result.all()}
        missing = [uid for uid in wanted if uid not in members]
        if missing:
            log.info("task.assign_rejected", task_id=str(task.id), user_ids=[str(u) for u in missing])
            raise HTTPException(status_code=400, detail="Assignee must be a member of this workspace")

    previous = await _get_assignee_ids(session, task.id)
    if set(previous) == set(wanted):
        return None

    removed = [uid for uid in previous if uid not in set(wanted)]
    if removed:
        await session.execute(
            delete(TaskAssignee).where(
                TaskAssignee.task_id == task.id,
                TaskAssignee.user_id.in_(removed),
            )
        )
    for uid in wanted:
        if uid not in previous:
            session.add(TaskAssignee(task_id=task.id, user_id=uid))
    await session.flush()

    return AssigneeChange(previous=previous, current=wanted)


async def unassign_member(
    session: AsyncSession,
    workspace_id: uuid.UUID,
    user_id: uuid.UUID,
) -> dict[uuid.UUID, AssigneeChange]:
    """Drop ``user_id`` from every task in the workspace, keyed by task id."""
    result = await session.execute(
        select(TaskAssignee.task_id)
        .join(Task, Task.id == TaskAssignee.task_id)
        .join(Board, Board.id == Task.board_id)
        .where(Board.workspace_id == workspace_id, TaskAssignee.user_id == user_id)
    )
    task_ids = [row[0] for row in result.all()]
    if not task_ids:
        return {}

    changes: dict[uuid.UUID, AssigneeChange] = {}
    for task_id in task_ids:
        previous = await _get_assignee_ids(session, task_id)
        changes[task_id] = AssigneeChange(
            previous=previous,
            current=[uid for uid in previous if uid != user_id],
        )

    await session.execute(
        delete(TaskAssignee).where(
            TaskAssignee.user_id == user_id,
            TaskAssignee.task_id.in_(task_ids),
        )
    )
    await session.flush()
    return changes


async def update_task(
    session: AsyncSession,
    task: Task,
    workspace_id: uuid.UUID,
    task_in: TaskUpdate,
) -> TaskChanges:
    """Apply the supplied fields and report which ones actually changed."""
    changes = TaskChanges()
    update_data = task_in.model_dump(exclude_unset=True)
    assignee_ids = update_data.pop("assignee_ids", None)

    for name, raw in update_data.items():
        if raw is None and name in _REQUIRED_FIELDS:
            raise HTTPException(status_code=400, detail=f"{name} cannot be null")
        new = _normalize(name, raw)
        old = _normalize(name, getattr(task, name))
        if new == old:
            continue

        setattr(task, name, new)
        if name == "status":
            changes.moved = (old, new)
        else:
            changes.fields.append(name)
            if name == "priority":
                changes.priority = (old, new)

    if assignee_ids is not None:
        changes.assignees = await set_assignees(session, task, workspace_id, assignee_ids)

    if changes.moved or changes.fields:
        task.updated_at = utcnow()
        session.add(task)
    await session.flush()

    if changes.any:
        log.info(
            "task.updated",
            task_id=str(task.id),
            moved=changes.moved,
            fields=changes.fields,
            assignees_changed=changes.assignees is not None,
        )
    return changes


async def archive_task(session: AsyncSession, task: Task) -> bool:
    """Soft-delete a task. Returns False if it was already archived."""
    if task.archived:
        return False
    now = utcnow()
    task.archived = True
    task.archived_at = now
    task.updated_at = now
    session.add(task)
    await session.flush()

    log.info("task.archived", task_id=str(task.id))
    return True


def due_state(task: Task, now: datetime, soon_until: datetime) -> Optional[str]:
    """``"overdue"``, ``"due_soon"`` or None for an open task's due date."""
    due = ensure_utc(task.due_date)
    if due is None or task.status == TaskStatus.DONE.value:
        return None
    if due < now:
        return "overdue"
    if due <= soon_until:
        return "due_soon"
    return None
