"""
Taskboard API Server

Entry point for the FastAPI application.
"""

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from app.core.config import get_settings
from app.core.database import async_session_factory, dispose_db, init_db
from app.core.errors import error_response, register_exception_handlers
from app.core.logging import configure_logging
from app.core.middleware import SecurityHeadersMiddleware
from app.core.realtime import ConnectionManager, RedisBroadcaster
from app.core.redis import close_redis, ping_redis
from app.api.v1 import router as api_v1_router
from app.api.v1.auth import router as auth_router

settings = get_settings()
log = structlog.get_logger()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    configure_logging(settings.log_level, settings.log_format)

    app = FastAPI(
        title="Taskboard",
        description="Collaborative kanban boards with workspace roles and realtime activity.",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    # Realtime: local rooms always; Redis fan-out across workers when enabled
    connections = ConnectionManager()
    app.state.connections = connections
    if settings.realtime_backend == "redis":
        app.state.broadcaster = RedisBroadcaster(connections)
    else:
        app.state.broadcaster = connections

    # Middleware (order matters, outermost first)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "PUT", "DELETE"],
        allow_headers=["Content-Type", "Authorization"],
    )

    register_exception_handlers(app)

    # Auth routes (not workspace-scoped)
    app.include_router(auth_router, prefix="/auth", tags=["Authentication"])

    # API routes
    app.include_router(api_v1_router, prefix="/api/v1")

    @app.get("/health", tags=["System"])
    async def health_check():
        """Health check endpoint for liveness probes."""
        return {"status": "ok"}

    @app.get("/ready", tags=["System"])
    async def readiness_check():
        """Readiness check: database and, when used, Redis must answer."""
        try:
            async with async_session_factory() as session:
                await session.execute(text("SELECT 1"))
            if isinstance(app.state.broadcaster, RedisBroadcaster):
                await ping_redis()
                if not app.state.broadcaster.running:
                    raise RuntimeError("Redis realtime listener is not running")
        except Exception:
            log.warning("readiness.failed", exc_info=True)
            return error_response(503, "Service not ready", code="NOT_READY")
        return {"status": "ready"}

    @app.on_event("startup")
    async def on_startup():
        log.info("Taskboard starting", realtime_backend=settings.realtime_backend)
        if settings.create_tables:
            await init_db()
        if isinstance(app.state.broadcaster, RedisBroadcaster):
            app.state.broadcaster.start()

    @app.on_event("shutdown")
    async def on_shutdown():
        log.info("Taskboard shutting down")
        if isinstance(app.state.broadcaster, RedisBroadcaster):
            await app.state.broadcaster.stop()
        await close_redis()
        await dispose_db()

    return app


app = create_app()


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    import uvicorn

    uvicorn.run("app.main:app", host=settings.host, port=settings.port, reload=settings.debug)
