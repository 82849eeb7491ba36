"""
Board service: workspace-scoped board CRUD and ordering.
"""

from __future__ import annotations

import uuid

import structlog
from fastapi import HTTPException
from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.models.board import Board
from taskboard_shared.schemas.tasks import BoardCreate

log = structlog.get_logger()


async def get_board_or_404(
    session: AsyncSession, board_id: uuid.UUID, workspace_id: uuid.UUID
) -> Board:
    """Load a board and check it lives in ``workspace_id``."""
    board = await session.get(Board, board_id)
    if not board:
        raise HTTPException(status_code=404, detail="Board not found")
    if board.workspace_id != workspace_id:
        raise HTTPException(status_code=403, detail="Board does not belong to this workspace")
    return board


async def list_boards(session: AsyncSession, workspace_id: uuid.UUID) -> list[Board]:
    result = await session.execute(
        select(Board)
        .where(Board.workspace_id == workspace_id)
        .order_by(Board.position, Board.created_at)
    )
    return list(result.scalars().all())


async def create_board(
    session: AsyncSession, workspace_id: uuid.UUID, board_in: BoardCreate
) -> Board:
    """Append a board at the end of the workspace's order."""
    result = await session.execute(
        select(func.count()).select_from(Board).where(Board.workspace_id == workspace_id)
    )
    board = Board(
        workspace_id=workspace_id,
        name=board_in.name,
        position=result.scalar_one(),
    )
    session.add(board)
    await session.flush()

    log.info("board.created", workspace_id=str(workspace_id), board_id=str(board.id))
    return board


async def reorder_boards(
    session: AsyncSession, workspace_id: uuid.UUID, ordered_ids: list[uuid.UUID]
) -> list[Board]:
    """Rewrite positions 0..n-1 following ``ordered_ids``.

    ``ordered_ids`` must name every board of the workspace exactly once.
    """
    boards = await list_boards(session, workspace_id)
    by_id = {b.id: b for b in boards}

    if len(ordered_ids) != len(set(ordered_ids)) or set(ordered_ids) != set(by_id):
        raise HTTPException(
            status_code=400,
            detail="ordered_ids must list every board in this workspace exactly once",
        )

    for position, board_id in enumerate(ordered_ids):
        board = by_id[board_id]
        if board.position != position:
            board.position = position
            session.add(board)
    await session.flush()

    log.info("board.reordered", workspace_id=str(workspace_id), count=len(ordered_ids))
    return [by_id[board_id] for board_id in ordered_ids]
