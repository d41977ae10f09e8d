import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from scriptor import __version__
from scriptor.config.settings import get_settings
from scriptor.db.supabase_backend import SupabaseBackend
from scriptor.gateway.auth.routes import router as auth_router
from scriptor.gateway.errors import install_error_handlers
from scriptor.gateway.metrics import setup_metrics
from scriptor.gateway.redis_connection import check_redis_health, is_redis_available
from scriptor.gateway.routers import conversations
from scriptor.logging_config import configure_logging

# Configure logging
configure_logging()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler.

    Builds the Supabase clients once per process unless a backend was
    injected through ``create_app``.
    """
    settings = get_settings()
    logger.info(f"Starting Scriptor gateway on {settings.host}:{settings.port}")

    if app.state.backend is None:
        if settings.supabase_configured:
            app.state.backend = await SupabaseBackend.connect(settings)
        else:
            logger.warning("Supabase is not configured; authenticated routes will answer 500")

    yield
    logger.info("Shutting down Scriptor gateway")


def create_app(backend: SupabaseBackend | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        backend: Adapter to serve requests with. When omitted, one is built
            from settings at start-up.

    Returns:
        Configured FastAPI application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title="Scriptor Umbra API",
        description="""
## Scriptor Umbra API

Backend for the Scriptor Umbra writing assistant.

### Features

- **Authentication**: Sign-up, sign-in, sessions and password management backed by Supabase Auth
- **Profiles**: Read and update the caller's profile and subscription tier
- **Conversations**: Per-user conversations and their message history
- **Health Monitoring**: Health check endpoints
        """,
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        openapi_tags=[
            {
                "name": "auth",
                "description": "Sign-up, sign-in, sign-out, profile, password reset and session refresh",
            },
            {
                "name": "conversations",
                "description": "Conversation CRUD (archive instead of delete) and message history",
            },
            {
                "name": "health",
                "description": "Health check and system status endpoints",
            },
        ],
    )
    app.state.backend = backend

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    install_error_handlers(app)

    # Auth API is mounted at /api/auth
    app.include_router(auth_router)

    # Conversations API is mounted at /api/conversations
    app.include_router(conversations.router)

    setup_metrics(app)

    @app.get("/health", tags=["health"])
    async def health_check() -> dict:
        """Health check endpoint.

        Reports whether Supabase is configured and the backend adapter is up,
        and the Redis rate-limit store status when one is configured.
        """
        checks: dict[str, str] = {"gateway": "healthy"}

        if not settings.supabase_configured:
            checks["supabase"] = "not configured"
        elif app.state.backend is None:
            checks["supabase"] = "not connected"
        else:
            checks["supabase"] = "healthy"

        if is_redis_available():
            checks["redis"] = check_redis_health()

        all_healthy = all(v == "healthy" for v in checks.values())
        return {
            "status": "OK" if all_healthy else "degraded",
            "service": "scriptor-gateway",
            "checks": checks,
        }

    return app


# Create app instance for uvicorn
app = create_app()
