"""
FastAPI application factory
"""
import logging
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.sessions import SessionMiddleware
from starlette.responses import Response

from creatorhub.config import get_settings
from creatorhub.infrastructure.db.session import check_db_connection
from creatorhub.api.v1 import notifications, settings as settings_api, creators, stripe_connect

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class ErrorLoggingMiddleware(BaseHTTPMiddleware):
    """Catches everything the routers let escape, including sync routes."""

    async def dispatch(self, request, call_next):
        try:
            return await call_next(request)
        except Exception:
            logger.error(
                "Unhandled error on %s %s\n%s",
                request.method, request.url.path, traceback.format_exc(),
            )
            return Response(content="Internal Server Error", status_code=500)


@asynccontextmanager
async def lifespan(app: FastAPI):
    from creatorhub.application.scheduler import start_scheduler, shutdown_scheduler

    enabled = get_settings().SCHEDULER_ENABLED
    if enabled:
        start_scheduler()
    try:
        yield
    finally:
        if enabled:
            shutdown_scheduler()


def create_app() -> FastAPI:
    """
    Application factory: creates and configures the FastAPI app

    Returns:
        Configured FastAPI app
    """
    settings = get_settings()

    app = FastAPI(
        title="Creatorhub",
        debug=settings.DEBUG,
        lifespan=lifespan,
    )

    app.add_middleware(ErrorLoggingMiddleware)

    # Middleware
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.SECRET_KEY
    )

    # Routers
    app.include_router(notifications.router)
    app.include_router(settings_api.router)
    app.include_router(creators.router)
    app.include_router(stripe_connect.router)

    # Health checks
    @app.get("/health", response_class=PlainTextResponse, tags=["system"])
    def health():
        """Health check endpoint"""
        return "ok"

    @app.get("/ready", response_class=PlainTextResponse, tags=["system"])
    def ready():
        """Readiness check endpoint (database reachable)"""
        check_db_connection()
        return "ok"

    return app


# Create app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "creatorhub.main:app",
        host="127.0.0.1",
        port=8000,
        reload=True,
    )
