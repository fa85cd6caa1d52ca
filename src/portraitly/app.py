"""FastAPI application factory."""

# Import timezone enforcement (sets TZ=UTC)
from contextlib import asynccontextmanager

import httpx
import structlog
from fastapi import FastAPI, Response, status
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from portraitly.api.routes import credits, generate, generations, styles
from portraitly.core import timezone  # noqa: F401
from portraitly.core.config import Settings, configure_logging
from portraitly.core.database import setup_db_session
from portraitly.services.auth.supabase_auth import SupabaseAuthClient
from portraitly.services.generation.factory import build_engine
from portraitly.uow import create_uow_factory

logger = structlog.get_logger()

# Outbound calls carry their own per-provider bound; this only caps connection setup
HTTP_CONNECT_TIMEOUT_SECONDS = 10.0


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan context manager.

    Handles startup and shutdown tasks:
    - Startup: Configure logging, initialize database session factory, open the
      shared HTTP client and build the generation engine
    - Shutdown: Close the HTTP client and dispose of the database engine
    """
    # Load settings
    settings = Settings()  # type: ignore[call-arg]

    # Configure logging
    configure_logging(settings)

    # Setup database session factory
    session_factory = setup_db_session(settings.database_url, settings.db_pool_size)
    uow_factory = create_uow_factory(session_factory)

    http_client = httpx.AsyncClient(
        timeout=httpx.Timeout(
            settings.provider_timeout_seconds, connect=HTTP_CONNECT_TIMEOUT_SECONDS
        )
    )

    engine = build_engine(settings, uow_factory, http_client)

    # Store in app.state for access in routes
    app.state.session_factory = session_factory
    app.state.uow_factory = uow_factory
    app.state.http_client = http_client
    app.state.engine = engine
    app.state.ledger = engine.ledger
    app.state.auth_client = SupabaseAuthClient(
        http_client, settings.supabase_url, settings.supabase_anon_key
    )

    logger.info(
        "application.startup",
        db_url=settings.database_url.split("@")[-1],
        providers=[c.provider_id for c in engine.orchestrator.candidates],
    )

    yield

    logger.info("application.shutdown")
    await http_client.aclose()
    await session_factory.kw["bind"].dispose()


def create_app() -> FastAPI:
    """Create and configure FastAPI application.

    Returns:
        Configured FastAPI application instance
    """
    settings = Settings()  # type: ignore[call-arg]

    app = FastAPI(
        title="Portraitly API",
        description="AI portrait generation with per-user daily credits",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Register API routers (each has its /api prefix in definition)
    app.include_router(generate.router)
    app.include_router(generations.router)
    app.include_router(credits.router)
    app.include_router(styles.router)

    # Health check endpoint with database validation
    @app.get("/health")
    async def health_check(response: Response):
        """Health check endpoint with database connectivity test.

        Returns:
            200: {"status": "healthy"} if database connection succeeds
            503: {"status": "unhealthy", "error": {...}} if database connection fails
        """
        try:
            async with app.state.session_factory() as session:
                result = await session.execute(text("SELECT 1"))
                result.scalar()

            logger.debug("health_check.success")
            return {"status": "healthy"}

        except Exception as e:
            logger.error(
                "health_check.failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
            return {
                "status": "unhealthy",
                "error": {
                    "type": type(e).__name__,
                    "message": str(e),
                },
            }

    return app


# Create app instance for uvicorn
app = create_app()
