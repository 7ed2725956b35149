"""
FastAPI application entry point for the extension guard service.

Startup sequence:
- Configure structured logging from settings
- Validate configuration
- Connect the configured extension repository and ensure its indexes
- Wire the shared services
- Seed the fixed extension set

Shutdown closes the repository.
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from extension_guard.app.api.deps import (
    cleanup_all_services,
    get_fixed_extension_service,
    get_repository,
    get_service_status,
    initialize_services
)
from extension_guard.app.api.middleware.error_handler import setup_error_handlers
from extension_guard.app.api.middleware.logging import LoggingMiddleware
from extension_guard.app.api.routes import extensions, uploads
from extension_guard.app.core.database import create_extension_repository
from extension_guard.app.core.exceptions import ConfigurationError
from extension_guard.app.utils.content_detector import ContentTypeDetector
from extension_guard.app.utils.logging import get_logger, initialize_logging_from_settings
from extension_guard.config.settings import get_settings

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown procedures."""
    initialize_logging_from_settings()
    settings = get_settings()

    logger.info("=== Extension Guard Starting Up ===", environment=settings.environment)

    errors = settings.validate_configuration()
    if errors:
        raise ConfigurationError(f"Invalid configuration: {errors}", config_section=", ".join(errors))

    repository = await create_extension_repository(settings)
    try:
        await repository.ensure_indexes()
    except Exception:
        await repository.close()
        raise

    initialize_services(repository, settings, detector=app.state.content_detector)
    try:
        await get_fixed_extension_service().initialize_fixed_extensions()

        logger.info("=== Extension Guard Started Successfully ===", repository=repository.database_type)
        yield
    finally:
        logger.info("=== Extension Guard Shutting Down ===")
        await cleanup_all_services()
        logger.info("=== Extension Guard Shutdown Complete ===")


def create_app(detector: Optional[ContentTypeDetector] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        detector: Content type detector for the upload gate; libmagic by default

    Returns:
        Configured application instance
    """
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Blocked file extension registry and upload gate",
        version=settings.app_version,
        debug=settings.debug,
        lifespan=lifespan
    )
    app.state.content_detector = detector

    app.add_middleware(
        LoggingMiddleware,
        excluded_paths=settings.logging.excluded_paths,
        enable_correlation_ids=settings.logging.enable_correlation_ids
    )
    setup_error_handlers(app)

    @app.get("/health", tags=["system"])
    async def health_check():
        """Service health check."""
        status = get_service_status()
        healthy = all(status.values())
        return {
            "status": "healthy" if healthy else "degraded",
            "repository": get_repository().database_type if healthy else None,
            "services": status
        }

    app.include_router(extensions.router)
    app.include_router(uploads.router)

    return app


app = create_app()


# Development server entry point
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "extension_guard.main:app",
        host="0.0.0.0",
        port=8000,
        reload=get_settings().debug
    )
