"""
Main FastAPI application for Ofie Assistant.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .routes import conversations, handoff, realtime
from .services import get_services, initialize_services
from .middleware.metrics import MetricsMiddleware, metrics_endpoint
from config.settings import get_settings

logger = logging.getLogger(__name__)


def configure_logging(level: str):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Ofie Assistant starting up...")

    settings = get_settings()
    store = None
    if settings.database_url:
        from database.session import init_db
        from conversation.db_store import DbConversationStore
        session_factory = await init_db(settings.database_url)
        store = DbConversationStore(session_factory)
        logger.info("Database initialized")

    initialize_services(store=store)
    services = get_services()
    await services.ensure_bot_user()
    await services.queue.start()
    logger.info("Ofie Assistant ready")
    yield
    logger.info("Ofie Assistant shutting down...")

    await services.queue.stop()
    if settings.database_url:
        from database.session import close_db
        await close_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title=settings.api_title,
        description="Conversational assistant for the Ofie rental platform.",
        version=settings.api_version,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Prometheus metrics middleware
    app.add_middleware(MetricsMiddleware)

    app.include_router(conversations.router, prefix="/api/v1", tags=["Conversations"])
    app.include_router(handoff.router, prefix="/api/v1", tags=["Handoff"])
    app.include_router(realtime.router, prefix="/api/v1", tags=["Realtime"])

    # --- Prometheus metrics endpoint ---
    app.get("/metrics", tags=["Monitoring"])(metrics_endpoint)

    # Root endpoint
    @app.get("/")
    async def root():
        return {
            "service": settings.api_title,
            "version": settings.api_version,
            "status": "operational",
            "docs": "/docs",
        }

    # Health check
    @app.get("/health")
    async def health():
        services = get_services()
        return {
            "status": "healthy" if services.is_ready else "degraded",
            "services": services.health(),
        }

    return app


# Create app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
