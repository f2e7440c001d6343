"""Main FastAPI application."""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from curtailment.api.v1.router import api_router
from curtailment.core.config import get_settings
from curtailment.core.context import RunContext
from curtailment.core.exceptions import add_exception_handlers
from curtailment.core.logging_config import configure_logging
from curtailment.core.middleware import add_middleware

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the run context unless one was injected."""
    logger.info("Starting up application")

    owns_context = getattr(app.state, "context", None) is None
    if owns_context:
        app.state.context = await RunContext.create(get_settings())

    yield

    if owns_context:
        await app.state.context.close()
        app.state.context = None
    logger.info("Shutting down application")


def create_application(context: Optional[RunContext] = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL)

    app = FastAPI(
        title=settings.PROJECT_NAME,
        description="Curtailment payments and the mining value of curtailed energy",
        version="0.1.0",
        openapi_url=f"{settings.API_V1_STR}/openapi.json" if settings.DEBUG else None,
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
        lifespan=lifespan,
        redirect_slashes=False,
    )
    app.state.context = context

    # Read only API, any origin may read
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET"],
        allow_headers=["*"],
    )
    add_middleware(app)

    if settings.ALLOWED_HOSTS:
        app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.ALLOWED_HOSTS)

    add_exception_handlers(app)
    app.include_router(api_router, prefix=settings.API_V1_STR)

    @app.get("/health")
    async def health_check():
        """Health check endpoint with database connectivity test."""
        try:
            async with app.state.context.session_factory() as db:
                await db.execute(text("SELECT 1"))
            return {"status": "healthy", "database": "connected"}
        except SQLAlchemyError as e:
            logger.error("Health check failed", error=str(e))
            return {"status": "unhealthy", "database": "error", "error": str(e)}

    return app


# Create the app instance
app = create_application()


def serve() -> None:
    """Run the read API under uvicorn."""
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL)

    logger.info("Starting curtailment API", host=settings.HOST, port=settings.PORT, debug=settings.DEBUG)

    uvicorn.run(
        "curtailment.main:app",
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    serve()
