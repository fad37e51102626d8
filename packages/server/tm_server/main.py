"""
Task Manager API Server

Entry point for the FastAPI application.
"""

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tm_server.api.v1 import router as api_v1_router
from tm_server.core.config import get_settings
from tm_server.core.database import get_session_context, init_db
from tm_server.core.errors import register_error_handlers
from tm_server.core.middleware import RequestContextMiddleware, SecurityHeadersMiddleware
from tm_server.core.permissions import seed_permissions
from tm_server.core.redis import close_redis

settings = get_settings()
log = structlog.get_logger()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Task Manager",
        description="Multi-tenant task manager with department-scoped access control.",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    # Middleware: the last one added is outermost
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "PUT", "DELETE"],
        allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
    )

    register_error_handlers(app)
    app.include_router(api_v1_router, prefix="/api")

    @app.get("/health", tags=["System"])
    async def health_check():
        """Health check endpoint for liveness probes."""
        return {"status": "ok"}

    @app.on_event("startup")
    async def on_startup():
        await init_db()
        async with get_session_context() as session:
            await seed_permissions(session)
        log.info("server.starting", database=settings.database_url.split("://", 1)[0])

    @app.on_event("shutdown")
    async def on_shutdown():
        log.info("server.shutting_down")
        await close_redis()

    return app


app = create_app()


def run() -> None:
    """CLI entry point: serve the API with uvicorn."""
    import uvicorn

    uvicorn.run("tm_server.main:app", host=settings.host, port=settings.port, log_level="info")


if __name__ == "__main__":
    run()
