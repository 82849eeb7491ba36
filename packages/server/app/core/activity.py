"""
Activity recording: persist an ActivityEvent, then push it to the workspace room.

This is the single entry point for all activity emission. Routers call it
after the primary mutation has been committed, so a failure here never
undoes the mutation: a failed insert is logged and rolled back, and a
failed broadcast is logged by the broadcaster.
"""

from __future__ import annotations

import uuid
from typing import Any, NamedTuple, Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.realtime import Broadcaster, workspace_room
from app.models.activity import ActivityEvent
from app.models.base import ensure_utc
from app.models.user import User
from taskboard_shared.schemas.activity import ActivityEventRead
from taskboard_shared.schemas.common import ActivityType, RealtimeEvent

log = structlog.get_logger()


class Actor(NamedTuple):
    """Detached snapshot of the user performing an action."""

    id: uuid.UUID
    name: str
    email: str

    @classmethod
    def of(cls, user: User) -> "Actor":
        return cls(id=user.id, name=user.name, email=user.email)


def to_event_read(event: ActivityEvent, actor: Optional[User | Actor]) -> ActivityEventRead:
    return ActivityEventRead(
        id=event.id,
        workspace_id=event.workspace_id,
        actor_id=event.actor_id,
        actor_name=actor.name if actor else None,
        actor_email=actor.email if actor else None,
        type=event.type,
        entity_id=event.entity_id,
        metadata=event.meta or {},
        created_at=ensure_utc(event.created_at),
    )


async def record_activity(
    session: AsyncSession,
    broadcaster: Broadcaster,
    *,
    workspace_id: uuid.UUID,
    actor: Actor,
    event_type: ActivityType,
    entity_id: uuid.UUID,
    metadata: dict[str, Any] | None = None,
) -> Optional[ActivityEventRead]:
    """Append an activity event and broadcast ``activity-event``.

    Returns the recorded event, or None when it could not be stored.
    """
    event = ActivityEvent(
        workspace_id=workspace_id,
        actor_id=actor.id,
        type=event_type.value,
        entity_id=entity_id,
        meta=metadata or {},
    )
    try:
        session.add(event)
        await session.commit()
    except SQLAlchemyError:
        log.exception(
            "activity.persist_failed",
            workspace_id=str(workspace_id),
            type=event_type.value,
            entity_id=str(entity_id),
        )
        await session.rollback()
        return None

    payload = to_event_read(event, actor)
    log.info(
        "activity.recorded",
        workspace_id=str(workspace_id),
        type=event_type.value,
        entity_id=str(entity_id),
    )
    await broadcaster.publish(
        workspace_room(workspace_id),
        RealtimeEvent.ACTIVITY.value,
        payload.model_dump(mode="json"),
    )
    return payload
