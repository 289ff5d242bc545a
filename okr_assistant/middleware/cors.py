"""CORS configuration for the OKR frontend."""
from fastapi.middleware.cors import CORSMiddleware
import logging

from okr_assistant.config import Settings

logger = logging.getLogger(__name__)

# Base allowed origins for development
DEVELOPMENT_ORIGINS = [
    "http://localhost:4200",
    "http://127.0.0.1:4200",
]


def allowed_origins(settings: Settings):
    origins = list(DEVELOPMENT_ORIGINS)
    # Add production frontend URL if provided
    if settings.frontend_url and settings.frontend_url not in origins:
        origins.append(settings.frontend_url)
    return origins


def add_cors_middleware(app, settings: Settings):
    """Add CORS middleware to the FastAPI application."""
    if settings.environment == "production":
        origins = [settings.frontend_url] if settings.frontend_url else []
    else:
        origins = allowed_origins(settings)

    logger.info(f"CORS configuration: environment={settings.environment}, allowed origins={origins}")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
