"""Main FastAPI application for the OKR assistant."""
from fastapi import FastAPI
from typing import Optional
import logging

from okr_assistant.config import Settings, load_settings
from okr_assistant.dependencies import AppServices, build_services
from okr_assistant.middleware.cors import add_cors_middleware
from okr_assistant.routers import chat_router
from okr_assistant.utils.logger import configure_logging

logger = logging.getLogger(__name__)

VERSION = "1.0.0"


def create_app(settings: Optional[Settings] = None, services: Optional[AppServices] = None) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        settings: Settings to use (loaded from the environment when omitted)
        services: Prebuilt service graph (built from settings when omitted)
    """
    settings = settings or (services.settings if services else load_settings())
    configure_logging(settings.log_level)

    app = FastAPI(
        title="OKR Assistant API",
        description="Conversational AI orchestration for OKR management",
        version=VERSION,
    )
    app.state.services = services or build_services(settings)

    # Add CORS middleware
    add_cors_middleware(app, settings)

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        providers = app.state.services.providers.providers
        return {
            "status": "healthy",
            "version": VERSION,
            "providers": {provider.value: backend.enabled for provider, backend in providers.items()},
        }

    @app.get("/")
    async def root():
        """Root endpoint - API welcome message."""
        return {
            "message": "Welcome to the OKR Assistant API",
            "title": "OKR Assistant API",
            "version": VERSION,
            "docs": "/docs",
            "health": "/health",
        }

    app.include_router(chat_router, prefix="/api/ai")  # Assistant endpoints: /api/ai/chat, ...
    logger.info(f"OKR assistant started (environment: {settings.environment})")
    return app


app = create_app()
