"""
Realtime WebSocket endpoint.

    ws://<host>/api/v1/realtime/ws?token=<jwt>

The token may also be sent as ``Authorization: Bearer <jwt>``. On connect the
socket joins its user room. Client frames:

- ``{"type": "join-workspace", "workspace_id": ...}`` → join-success | join-error
- ``{"type": "leave-workspace", "workspace_id": ...}`` → left | leave-error
- ``{"type": "ping"}`` → pong

Server pushes arrive as ``{"event": <name>, "data": {...}}``.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import extract_bearer, get_membership, resolve_token_user
from app.core.database import get_session
from app.core.realtime import ConnectionInfo, ConnectionManager, workspace_room

logger = logging.getLogger(__name__)

router = APIRouter()

# Close code for failed handshake authentication
WS_AUTH_FAILED = 4001


def _frame(frame_type: str, **fields: Any) -> str:
    return json.dumps({"type": frame_type, **fields})


async def handle_frame(
    raw: str,
    conn_info: ConnectionInfo,
    connections: ConnectionManager,
    session: AsyncSession,
) -> None:
    """Process one client frame and send the reply on the same socket."""
    websocket = conn_info.websocket
    try:
        frame = json.loads(raw)
    except json.JSONDecodeError:
        await websocket.send_text(_frame("error", code="INVALID_JSON", message="Could not parse message as JSON."))
        return
    if not isinstance(frame, dict):
        await websocket.send_text(_frame("error", code="INVALID_FRAME", message="Frames must be JSON objects."))
        return

    frame_type = frame.get("type")

    # --- Ping/Pong ---
    if frame_type == "ping":
        await websocket.send_text(_frame("pong"))
        return

    if frame_type in ("join-workspace", "leave-workspace"):
        raw_id = frame.get("workspace_id")
        try:
            workspace_id = UUID(str(raw_id))
        except ValueError:
            error_type = "leave-error" if frame_type == "leave-workspace" else "join-error"
            await websocket.send_text(_frame(error_type, workspace_id=raw_id, message="Invalid workspace_id"))
            return

        # --- Leave ---
        if frame_type == "leave-workspace":
            connections.leave(conn_info, workspace_room(workspace_id))
            await websocket.send_text(_frame("left", workspace_id=str(workspace_id)))
            return

        # --- Join (membership re-checked on every request) ---
        membership = await get_membership(session, workspace_id, conn_info.user_id)
        if not membership:
            logger.info("Join refused: user=%s workspace=%s", conn_info.user_id, workspace_id)
            await websocket.send_text(
                _frame("join-error", workspace_id=str(workspace_id), message="Not a member of this workspace")
            )
            return
        connections.join(conn_info, workspace_room(workspace_id))
        await websocket.send_text(_frame("join-success", workspace_id=str(workspace_id)))
        return

    await websocket.send_text(
        _frame("error", code="UNKNOWN_TYPE", message=f"Unsupported frame type: {frame_type!r}")
    )


@router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    token: Optional[str] = Query(None),
    session: AsyncSession = Depends(get_session),
):
    """Authenticated WebSocket endpoint for realtime notifications."""
    token = token or extract_bearer(websocket.headers.get("authorization"))
    if not token:
        await websocket.close(code=WS_AUTH_FAILED, reason="authentication_failed")
        return
    try:
        user = await resolve_token_user(token, session)
    except HTTPException:
        await websocket.close(code=WS_AUTH_FAILED, reason="authentication_failed")
        return

    connections: ConnectionManager = websocket.app.state.connections
    conn_info = await connections.connect(websocket, user.id)

    try:
        while True:
            data = await websocket.receive_text()
            await handle_frame(data, conn_info, connections, session)
            # Release the read transaction between frames
            await session.commit()
    except WebSocketDisconnect:
        await connections.disconnect(conn_info)
    except Exception:
        logger.exception("WebSocket error: user=%s", conn_info.user_id)
        await connections.disconnect(conn_info)
