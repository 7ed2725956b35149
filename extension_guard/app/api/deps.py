"""
Dependency injection module for API routes.

Services are process-wide singletons: the admission controller's lock only
serializes writers that share the same CustomExtensionService instance.
"""

import threading
from typing import Dict, Optional

from ..repositories.base import ExtensionRepository
from ..services.custom_extension_service import CustomExtensionService
from ..services.fixed_extension_service import FixedExtensionService
from ..services.upload_service import UploadGateService
from ..utils.content_detector import ContentTypeDetector, MagicContentTypeDetector
from ..utils.logging import get_logger
from extension_guard.config.settings import Settings, get_settings

logger = get_logger(__name__)


# Global instances for dependency injection
_repository_instance: Optional[ExtensionRepository] = None
_custom_service_instance: Optional[CustomExtensionService] = None
_fixed_service_instance: Optional[FixedExtensionService] = None
_upload_service_instance: Optional[UploadGateService] = None
_services_lock = threading.Lock()


def initialize_services(
    repository: ExtensionRepository,
    settings: Optional[Settings] = None,
    detector: Optional[ContentTypeDetector] = None
) -> None:
    """
    Wire the global service instances around one repository.

    Args:
        repository: Extension repository shared by all services
        settings: Application settings, defaults to get_settings()
        detector: Content type detector, defaults to libmagic
    """
    global _repository_instance, _custom_service_instance, _fixed_service_instance, _upload_service_instance

    settings = settings or get_settings()
    detector = detector or MagicContentTypeDetector(sniff_bytes=settings.upload.sniff_bytes)

    with _services_lock:
        _repository_instance = repository
        _custom_service_instance = CustomExtensionService(repository, settings)
        _fixed_service_instance = FixedExtensionService(repository, settings)
        _upload_service_instance = UploadGateService(repository, detector)

    logger.info("Services initialized", repository=repository.database_type)


def _require(instance, name: str):
    if instance is None:
        raise RuntimeError(f"{name} has not been initialized")
    return instance


def get_repository() -> ExtensionRepository:
    return _require(_repository_instance, "ExtensionRepository")


def get_custom_extension_service() -> CustomExtensionService:
    """Get the shared admission controller (FastAPI dependency)."""
    return _require(_custom_service_instance, "CustomExtensionService")


def get_fixed_extension_service() -> FixedExtensionService:
    """Get the shared fixed extension service (FastAPI dependency)."""
    return _require(_fixed_service_instance, "FixedExtensionService")


def get_upload_gate_service() -> UploadGateService:
    """Get the shared upload gate (FastAPI dependency)."""
    return _require(_upload_service_instance, "UploadGateService")


async def cleanup_all_services() -> None:
    """Close the repository and clear all global service instances."""
    global _repository_instance, _custom_service_instance, _fixed_service_instance, _upload_service_instance

    with _services_lock:
        repository = _repository_instance
        _repository_instance = None
        _custom_service_instance = None
        _fixed_service_instance = None
        _upload_service_instance = None

    if repository is not None:
        await repository.close()

    logger.info("All services cleaned up successfully")


def get_service_status() -> Dict[str, bool]:
    """
    Get initialization status of all services.

    Returns:
        Dict mapping service names to their initialization status
    """
    return {
        "repository": _repository_instance is not None,
        "custom_extension_service": _custom_service_instance is not None,
        "fixed_extension_service": _fixed_service_instance is not None,
        "upload_gate_service": _upload_service_instance is not None,
    }
