"""
Activity service: feed queries, CSV export and workspace statistics.
"""

from __future__ import annotations

import csv
import io
import json
import uuid
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.activity import to_event_read
from app.models.activity import ActivityEvent
from app.models.board import Board
from app.models.task import Task
from app.models.user import User
from app.services.tasks import due_state
from taskboard_shared.schemas.activity import ActivityEventRead, DueCounts, WorkspaceStats
from taskboard_shared.schemas.common import TaskPriority, TaskStatus

CSV_HEADER = ["createdAt", "type", "actor", "entityId", "metadata"]


# ---------------------------------------------------------------------------
# Feed
# ---------------------------------------------------------------------------


async def list_activity(
    session: AsyncSession,
    workspace_id: uuid.UUID,
    *,
    limit: Optional[int] = None,
    entity_id: Optional[uuid.UUID] = None,
) -> list[ActivityEventRead]:
    """Workspace events, newest first, with actor name and email."""
    stmt = (
        select(ActivityEvent, User)
        .outerjoin(User, User.id == ActivityEvent.actor_id)
        .where(ActivityEvent.workspace_id == workspace_id)
    )
    if entity_id is not None:
        stmt = stmt.where(ActivityEvent.entity_id == entity_id)
    stmt = stmt.order_by(ActivityEvent.created_at.desc())
    if limit is not None:
        stmt = stmt.limit(limit)

    result = await session.execute(stmt)
    return [to_event_read(event, actor) for event, actor in result.all()]


def export_csv(events: list[ActivityEventRead]) -> str:
    """Render events as CSV: createdAt,type,actor,entityId,metadata."""
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for event in events:
        writer.writerow([
            event.created_at.isoformat(),
            event.type.value,
            event.actor_name or event.actor_email or "",
            str(event.entity_id),
            json.dumps(event.metadata, separators=(",", ":"), sort_keys=True),
        ])
    return buf.getvalue()


# ---------------------------------------------------------------------------
# Stats
# ---------------------------------------------------------------------------


async def compute_stats(
    session: AsyncSession,
    workspace_id: uuid.UUID,
    *,
    due_soon_hours: int,
    now: Optional[datetime] = None,
) -> WorkspaceStats:
    """Counts over the workspace's non-archived tasks."""
    result = await session.execute(
        select(Task)
        .join(Board, Board.id == Task.board_id)
        .where(Board.workspace_id == workspace_id, Task.archived == False)  # noqa: E712
    )
    tasks = result.scalars().all()

    now = now or datetime.now(timezone.utc)
    soon_until = now + timedelta(hours=due_soon_hours)

    by_status = Counter({s.value: 0 for s in TaskStatus})
    by_priority = Counter({p.value: 0 for p in TaskPriority})
    due = DueCounts()
    for task in tasks:
        by_status[task.status] += 1
        by_priority[task.priority] += 1
        state = due_state(task, now, soon_until)
        if state == "overdue":
            due.overdue += 1
        elif state == "due_soon":
            due.due_soon += 1

    return WorkspaceStats(
        total=len(tasks),
        by_status=dict(by_status),
        by_priority=dict(by_priority),
        due=due,
    )
