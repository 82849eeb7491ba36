"""
API v1 Router

All workspace-scoped endpoints are prefixed with /workspaces/{workspaceId}.
"""

from fastapi import APIRouter
from . import activity, boards, realtime, tasks
from .workspaces import router_global as workspaces_global_router
from .workspaces import router_scoped as workspaces_scoped_router

router = APIRouter()

# Workspace routes (non-workspace-scoped: list, create, the caller's invites)
router.include_router(workspaces_global_router)

# Workspace routes (workspace-scoped: detail, members, invites)
router.include_router(workspaces_scoped_router, prefix="/workspaces/{workspaceId}", tags=["Workspaces"])

# Include resource routers
router.include_router(boards.router, prefix="/workspaces/{workspaceId}/boards", tags=["Boards"])
router.include_router(
    tasks.board_tasks_router, prefix="/workspaces/{workspaceId}/boards/{boardId}/tasks", tags=["Tasks"]
)
router.include_router(tasks.router, prefix="/workspaces/{workspaceId}/tasks", tags=["Tasks"])
router.include_router(activity.router, prefix="/workspaces/{workspaceId}", tags=["Activity"])
router.include_router(realtime.router, prefix="/realtime", tags=["Realtime"])


@router.get("/", tags=["API"])
async def api_root():
    """API root: returns version and available endpoints."""
    return {
        "api": "v1",
        "version": "0.1.0",
        "endpoints": [
            "/workspaces",
            "/workspaces/invites/me",
            "/workspaces/{workspaceId}/members",
            "/workspaces/{workspaceId}/invites",
            "/workspaces/{workspaceId}/boards",
            "/workspaces/{workspaceId}/boards/{boardId}/tasks",
            "/workspaces/{workspaceId}/tasks/{taskId}",
            "/workspaces/{workspaceId}/activity",
            "/workspaces/{workspaceId}/stats",
            "/realtime/ws",
        ],
    }
