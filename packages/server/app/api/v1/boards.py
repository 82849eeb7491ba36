"""
Board endpoints, scoped to a workspace.

GET    /api/v1/workspaces/{workspaceId}/boards          - Boards in order (member)
POST   /api/v1/workspaces/{workspaceId}/boards          - Append a board (contributor)
PATCH  /api/v1/workspaces/{workspaceId}/boards/reorder  - Rewrite the order (contributor)
"""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import WorkspaceContext, require_contributor, require_member
from app.core.database import get_session
from app.core.realtime import Broadcaster, get_broadcaster, workspace_room
from app.models.base import ensure_utc
from app.models.board import Board
from app.services import boards as board_service
from taskboard_shared.schemas.common import RealtimeEvent
from taskboard_shared.schemas.tasks import BoardCreate, BoardRead, BoardReorder

router = APIRouter()


def _board_read(board: Board) -> BoardRead:
    return BoardRead(
        id=board.id,
        workspace_id=board.workspace_id,
        name=board.name,
        position=board.position,
        created_at=ensure_utc(board.created_at),
        updated_at=ensure_utc(board.updated_at),
    )


async def _boards_updated(broadcaster: Broadcaster, ctx: WorkspaceContext) -> None:
    await broadcaster.publish(
        workspace_room(ctx.workspace_id),
        RealtimeEvent.BOARDS_UPDATED.value,
        {"workspace_id": str(ctx.workspace_id)},
    )


@router.get("", response_model=List[BoardRead])
async def list_boards_endpoint(
    ctx: WorkspaceContext = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    """List boards ordered by position."""
    boards = await board_service.list_boards(session, ctx.workspace_id)
    return [_board_read(b) for b in boards]


@router.post("", response_model=BoardRead, status_code=201)
async def create_board_endpoint(
    board_in: BoardCreate,
    ctx: WorkspaceContext = Depends(require_contributor),
    session: AsyncSession = Depends(get_session),
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    """Create a board at the end of the workspace's order."""
    board = await board_service.create_board(session, ctx.workspace_id, board_in)
    await session.commit()
    response = _board_read(board)

    await _boards_updated(broadcaster, ctx)
    return response


@router.patch("/reorder", response_model=List[BoardRead])
async def reorder_boards_endpoint(
    body: BoardReorder,
    ctx: WorkspaceContext = Depends(require_contributor),
    session: AsyncSession = Depends(get_session),
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    """Reorder boards. ``ordered_ids`` must be a permutation of the workspace's boards."""
    boards = await board_service.reorder_boards(session, ctx.workspace_id, body.ordered_ids)
    await session.commit()
    response = [_board_read(b) for b in boards]

    await _boards_updated(broadcaster, ctx)
    return response
