"""FastAPI application for the Communications Service."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from libs.common.error_handler import add_exception_handlers
from libs.common.middleware import add_observability_middleware
from services.communications_service.messaging_router import router as messaging_router
from services.communications_service.notifications_router import (
    router as notifications_router,
)
from services.communications_service.services.realtime import ConnectionRegistry
from services.communications_service.websocket_router import router as websocket_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.registry = ConnectionRegistry()
    yield
    await app.state.registry.close()


def create_app() -> FastAPI:
    """Create and configure the Communications Service FastAPI app."""
    app = FastAPI(
        title="MemberHub Communications Service",
        version="0.1.0",
        description="Message threads, notifications and realtime delivery.",
        lifespan=lifespan,
    )
    add_observability_middleware(app)
    add_exception_handlers(app)

    @app.get("/health", tags=["system"])
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok", "service": "communications"}

    app.include_router(messaging_router)
    app.include_router(notifications_router)
    app.include_router(websocket_router)

    return app


app = create_app()
