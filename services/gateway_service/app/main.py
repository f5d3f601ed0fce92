"""FastAPI application entrypoint for the MemberHub gateway.

Mounts every service router under ``/api`` in one process so that all of
them share the database and the realtime connection registry.
"""

from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded

load_dotenv()

from libs.common.config import get_settings
from libs.common.error_handler import add_exception_handlers
from libs.common.logging import get_logger
from libs.common.middleware import add_observability_middleware
from libs.common.rate_limit import limiter, rate_limit_exceeded_handler
from services.communications_service.messaging_router import router as messaging_router
from services.communications_service.notifications_router import (
    router as notifications_router,
)
from services.communications_service.services.realtime import ConnectionRegistry
from services.communications_service.websocket_router import router as websocket_router
from services.dues_service.router import router as dues_router
from services.events_service.router import router as events_router
from services.members_service.router import router as members_router

logger = get_logger(__name__)

API_PREFIX = "/api"


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.registry = ConnectionRegistry()
    logger.info("Gateway started (%s)", get_settings().ENVIRONMENT)
    yield
    await app.state.registry.close()
    logger.info("Gateway stopped")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application instance."""
    settings = get_settings()
    app = FastAPI(
        title=f"{settings.ORGANIZATION_NAME} Gateway",
        version="0.1.0",
        description="Membership back office: members, dues, events and messaging.",
        lifespan=lifespan,
    )

    # Add rate limiter state to app
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Add observability (structured logging + request tracing)
    add_observability_middleware(app)

    # Add global exception handlers for consistent error responses
    add_exception_handlers(app)

    @app.get(f"{API_PREFIX}/health", tags=["system"])
    async def health_check() -> dict:
        """Simple readiness endpoint."""
        return {
            "status": "ok",
            "online_users": len(app.state.registry.online_users()),
        }

    for router in (
        members_router,
        dues_router,
        events_router,
        messaging_router,
        notifications_router,
        websocket_router,
    ):
        app.include_router(router, prefix=API_PREFIX)

    return app


app = create_app()
