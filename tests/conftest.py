"""
Shared fixtures for the extension guard test suite.

Services run against the in-memory repository; settings are built
explicitly so tests never read a developer's .env file.
"""

import io
from typing import BinaryIO, Dict, Optional

import pytest
import pytest_asyncio

from extension_guard.app.repositories.memory.extension_repository import InMemoryExtensionRepository
from extension_guard.app.services.custom_extension_service import CustomExtensionService
from extension_guard.app.services.fixed_extension_service import FixedExtensionService
from extension_guard.app.services.upload_service import UploadedFile, UploadGateService
from extension_guard.app.utils.content_detector import ContentTypeDetector
from extension_guard.config.settings import RegistrySettings, Settings, get_settings


class FakeContentTypeDetector(ContentTypeDetector):
    """Detector returning canned media types by file name."""

    def __init__(self, types: Optional[Dict[str, str]] = None, failing: Optional[Dict[str, Exception]] = None):
        self.types = types or {}
        self.failing = failing or {}
        self.calls = []

    def detect(self, stream: BinaryIO, filename_hint: Optional[str] = None) -> str:
        self.calls.append(filename_hint)
        if filename_hint in self.failing:
            raise self.failing[filename_hint]
        return self.types.get(filename_hint, "text/plain")


def make_file(name: Optional[str], content: bytes = b"hello") -> UploadedFile:
    return UploadedFile(name=name, stream=io.BytesIO(content))


@pytest.fixture
def settings():
    return Settings(_env_file=None, registry=RegistrySettings(custom_extension_limit=200))


@pytest.fixture
def small_settings():
    return Settings(_env_file=None, registry=RegistrySettings(custom_extension_limit=5))


@pytest.fixture
def repository():
    return InMemoryExtensionRepository()


@pytest.fixture
def detector():
    return FakeContentTypeDetector()


@pytest_asyncio.fixture
async def fixed_service(repository, settings):
    service = FixedExtensionService(repository, settings)
    await service.initialize_fixed_extensions()
    return service


@pytest.fixture
def custom_service(repository, settings, fixed_service):
    return CustomExtensionService(repository, settings)


@pytest.fixture
def upload_service(repository, detector, fixed_service):
    return UploadGateService(repository, detector)


@pytest.fixture
def memory_backend_env(monkeypatch):
    """Point application settings at the in-memory backend."""
    monkeypatch.setenv("DATABASE__BACKEND", "memory")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
