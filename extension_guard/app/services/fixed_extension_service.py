"""
Fixed Extension Service - Toggle Policy

The fixed set is seeded at startup and never grows or shrinks; only the
blocked flag changes. Updates are not serialized with the admission
controller. Each one is a compare-and-swap on the record version, so two
writers racing from the same read never both succeed.
"""

from typing import List, Optional

from ..core.exceptions import (
    CategoryMismatchError,
    ConcurrentModificationError,
    DuplicateRecordError,
    raise_extension_not_found
)
from ..models.domain.extension import ExtensionCategory, ExtensionRecord
from ..repositories.base import ExtensionRepository
from ..utils.logging import get_logger, log_business_event
from ..utils.validators import normalize_extension
from extension_guard.config.settings import Settings, get_settings

logger = get_logger(__name__)


class FixedExtensionService:
    """Seeding, listing and optimistic toggling of fixed extensions."""

    def __init__(self, repository: ExtensionRepository, settings: Optional[Settings] = None):
        self.repository = repository
        self.settings = settings or get_settings()
        self.fixed_extensions = [normalize_extension(e) for e in self.settings.registry.fixed_extensions]

    async def initialize_fixed_extensions(self) -> int:
        """
        Seed the fixed set with blocked=False.

        Idempotent: existing rows are left alone, and losing an insert race
        to another process counts as already present.

        Returns:
            Number of rows created
        """
        created = 0
        for extension in self.fixed_extensions:
            if await self.repository.exists_by_extension(extension):
                continue
            try:
                await self.repository.insert(ExtensionRecord.create_fixed(extension))
                created += 1
            except DuplicateRecordError:
                logger.debug("Fixed extension seeded concurrently", extension=extension)

        logger.info("Fixed extensions initialized", created=created, total=len(self.fixed_extensions))
        return created

    async def list_fixed_extensions(self) -> List[ExtensionRecord]:
        """Fixed extensions in configured order."""
        records = await self.repository.find_by_category(ExtensionCategory.FIXED, newest_first=False)
        position = {extension: index for index, extension in enumerate(self.fixed_extensions)}
        return sorted(records, key=lambda r: position.get(r.extension, len(position)))

    async def update_fixed(
        self,
        extension: str,
        blocked: bool,
        expected_version: Optional[int] = None
    ) -> ExtensionRecord:
        """
        Set the blocked flag of one fixed extension.

        Args:
            extension: Extension name, case-insensitive
            blocked: New flag value
            expected_version: Version the caller last read; defaults to the
                version read here

        Raises:
            ExtensionNotFoundError: If the extension does not exist
            CategoryMismatchError: If the extension is a custom one
            ConcurrentModificationError: If the record changed since expected_version
        """
        name = normalize_extension(extension)
        record = await self.repository.find_by_extension(name)
        if record is None:
            raise_extension_not_found(extension=name)
        if not record.is_fixed:
            raise CategoryMismatchError(f"Not a fixed extension: {name}", extension=name)

        baseline = record.version if expected_version is None else expected_version
        updated = await self.repository.update_blocked_if_version(record.id, blocked, baseline)
        if updated is None:
            logger.info("Fixed extension update conflict", extension=name, expected_version=baseline)
            raise ConcurrentModificationError(
                f"'{name}' was modified by another request. Refresh and try again.",
                extension=name,
                expected_version=baseline
            )

        log_business_event("fixed_extension_updated", extension=name, blocked=blocked, version=updated.version)
        return updated

    async def bulk_update_fixed(self, blocked: bool) -> int:
        """Set the blocked flag of every fixed extension. Returns rows affected."""
        affected = await self.repository.bulk_set_blocked_by_category(ExtensionCategory.FIXED, blocked)
        log_business_event("fixed_extensions_bulk_updated", blocked=blocked, count=affected)
        return affected
