"""
Activity feed, CSV export and workspace statistics.

GET /api/v1/workspaces/{workspaceId}/activity         - Newest events with actor details
GET /api/v1/workspaces/{workspaceId}/activity/export  - Full log as CSV
GET /api/v1/workspaces/{workspaceId}/stats            - Task counts by status/priority/due state
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import WorkspaceContext, require_member
from app.core.config import get_settings
from app.core.database import get_session
from app.services import activity as activity_service
from taskboard_shared.schemas.activity import ActivityFeedResponse, WorkspaceStats

settings = get_settings()
router = APIRouter()

MAX_FEED_LIMIT = 200


@router.get("/activity", response_model=ActivityFeedResponse)
async def activity_feed(
    limit: Optional[int] = Query(None, ge=1, le=MAX_FEED_LIMIT),
    ctx: WorkspaceContext = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    """Most recent activity in the workspace, newest first."""
    events = await activity_service.list_activity(
        session, ctx.workspace_id, limit=limit or settings.activity_feed_limit
    )
    return ActivityFeedResponse(data=events)


@router.get("/activity/export")
async def export_activity(
    ctx: WorkspaceContext = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    """Download the workspace's activity log as CSV."""
    events = await activity_service.list_activity(session, ctx.workspace_id)
    return Response(
        content=activity_service.export_csv(events),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="activity-{ctx.workspace_id}.csv"'},
    )


@router.get("/stats", response_model=WorkspaceStats)
async def workspace_stats(
    ctx: WorkspaceContext = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    """Counts over the workspace's non-archived tasks."""
    return await activity_service.compute_stats(
        session, ctx.workspace_id, due_soon_hours=settings.due_soon_hours
    )
