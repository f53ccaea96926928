"""
Developer Review API Server

Entry point for the FastAPI application.
"""

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from devreview.core.config import get_settings
from devreview.core.database import engine
from devreview.core.errors import install_error_handlers
from devreview.core.guard import RouteGuardMiddleware
from devreview_shared.logging_config import configure_logging
from devreview.core.middleware import CSRFMiddleware, SecurityHeadersMiddleware
from devreview.core.redis import close_redis, get_redis
from devreview.api import notify, pages
from devreview.api.v1 import router as api_v1_router
from devreview.api.v1.auth import router as auth_router

settings = get_settings()
log = structlog.get_logger()


def create_app(*, lookup_role=None) -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Developer Review",
        description="Developer application submission and evaluation.",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    # Middleware (last added runs first)
    app.add_middleware(RouteGuardMiddleware, lookup_role=lookup_role)
    app.add_middleware(CSRFMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type", "Authorization", "X-CSRF-Token"],
    )

    install_error_handlers(app)

    app.include_router(auth_router, prefix="/auth", tags=["Authentication"])
    app.include_router(api_v1_router, prefix="/api/v1")
    app.include_router(notify.router, prefix="/api", tags=["Notifications"])
    app.include_router(pages.router, tags=["Pages"])

    @app.get("/health", tags=["System"])
    async def health_check():
        """Health check endpoint for liveness probes."""
        return {"status": "ok"}

    @app.get("/ready", tags=["System"])
    async def readiness_check():
        """Readiness check: database and Redis reachable."""
        checks = {}
        try:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            checks["database"] = "ok"
        except Exception as exc:
            log.warning("ready.database_failed", error=str(exc))
            checks["database"] = "unavailable"
        try:
            redis = await get_redis()
            await redis.ping()
            checks["redis"] = "ok"
        except Exception as exc:
            log.warning("ready.redis_failed", error=str(exc))
            checks["redis"] = "unavailable"

        if all(v == "ok" for v in checks.values()):
            return {"status": "ready", "checks": checks}
        return JSONResponse(status_code=503, content={"status": "degraded", "checks": checks})

    @app.on_event("startup")
    async def on_startup():
        configure_logging(settings.log_level, settings.log_format)
        log.info("Developer Review starting", email_transport=settings.email_transport)

    @app.on_event("shutdown")
    async def on_shutdown():
        log.info("Developer Review shutting down")
        await close_redis()

    return app


app = create_app()
