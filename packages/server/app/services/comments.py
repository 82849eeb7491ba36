"""
Comment service: append-only discussion on tasks.
"""

from __future__ import annotations

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.models.base import ensure_utc
from app.models.comment import Comment
from app.models.task import Task
from app.models.user import User
from taskboard_shared.schemas.tasks import CommentCreate, CommentRead

log = structlog.get_logger()


def to_comment_read(comment: Comment, author_name: str | None) -> CommentRead:
    return CommentRead(
        id=comment.id,
        task_id=comment.task_id,
        author_id=comment.author_id,
        author_name=author_name,
        text=comment.text,
        created_at=ensure_utc(comment.created_at),
    )


async def list_comments(session: AsyncSession, task: Task) -> list[CommentRead]:
    """Comments on a task, newest first, with author names."""
    result = await session.execute(
        select(Comment, User.name)
        .join(User, User.id == Comment.author_id)
        .where(Comment.task_id == task.id)
        .order_by(Comment.created_at.desc())
    )
    return [to_comment_read(c, name) for c, name in result.all()]


async def create_comment(
    session: AsyncSession, task: Task, author: User, comment_in: CommentCreate
) -> Comment:
    comment = Comment(task_id=task.id, author_id=author.id, text=comment_in.text)
    session.add(comment)
    await session.flush()

    log.info("comment.created", comment_id=str(comment.id), task_id=str(task.id), author_id=str(author.id))
    return comment
