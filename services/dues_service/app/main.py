"""FastAPI application for the Dues Service."""

from fastapi import FastAPI
from libs.common.error_handler import add_exception_handlers
from libs.common.middleware import add_observability_middleware
from services.dues_service.router import router as dues_router


def create_app() -> FastAPI:
    """Create and configure the Dues Service FastAPI app."""
    app = FastAPI(
        title="MemberHub Dues Service",
        version="0.1.0",
        description="Dues ledger, including meeting attendance penalties.",
    )
    add_observability_middleware(app)
    add_exception_handlers(app)

    @app.get("/health", tags=["system"])
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok", "service": "dues"}

    app.include_router(dues_router)

    return app


app = create_app()
