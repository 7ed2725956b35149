"""
Custom Extension Service - Admission Controller

Business logic for the administrator-managed CUSTOM category of the
blocked extension registry.

Business Rules:
- At most ``registry.custom_extension_limit`` custom extensions (default 200)
- Extension names are unique across both categories
- A custom extension may not shadow a fixed one
- A batch add is all-or-nothing

Every mutation of the CUSTOM category runs under one asyncio.Lock owned by
the service instance. Inside the lock the service opens a repository
transaction, performs its reads, decisions and writes, and commits before
the lock is released, so the count a caller sees is the count it acts on.
"""

import asyncio
from typing import List, Optional

from ..core.exceptions import (
    CategoryMismatchError,
    DuplicateExtensionError,
    DuplicateRecordError,
    FixedNameConflictError,
    ValidationError,
    raise_extension_not_found,
    raise_quota_exceeded
)
from ..models.domain.extension import ExtensionCategory, ExtensionRecord
from ..repositories.base import ExtensionRepository, Transaction
from ..utils.logging import get_logger, log_business_event, performance_context
from ..utils.validators import parse_extension_list, validate_extension_format
from extension_guard.config.settings import Settings, get_settings

logger = get_logger(__name__)


class CustomExtensionService:
    """
    Admission controller for custom blocked extensions.

    One instance is shared per process; its lock is what serializes the
    capacity check with the inserts that depend on it.
    """

    def __init__(self, repository: ExtensionRepository, settings: Optional[Settings] = None):
        self.repository = repository
        self.settings = settings or get_settings()
        self.capacity_limit = self.settings.registry.custom_extension_limit
        self.max_extension_length = self.settings.registry.max_extension_length
        self.fixed_extensions = frozenset(self.settings.registry.fixed_extensions)
        self.filler_prefix = self.settings.registry.filler_prefix
        self._lock = asyncio.Lock()

    async def list_custom_extensions(self) -> List[ExtensionRecord]:
        """List custom extensions, newest first. Does not take the lock."""
        return await self.repository.find_by_category(ExtensionCategory.CUSTOM, newest_first=True)

    async def add_custom_extensions(self, raw_input: Optional[str]) -> List[ExtensionRecord]:
        """
        Register one or more comma-separated custom extensions.

        Args:
            raw_input: Administrator input, e.g. "py, java, sh"

        Returns:
            The created records in input order

        Raises:
            ValidationError: If the input is empty or an extension is malformed
            QuotaExceededError: If the batch would exceed the capacity limit
            FixedNameConflictError: If an extension is in the fixed set
            DuplicateExtensionError: If an extension is already registered
        """
        candidates = parse_extension_list(raw_input)
        if not candidates:
            raise ValidationError("Please enter an extension.")

        with performance_context("custom_extension_add", requested=len(candidates)):
            async with self._lock:
                try:
                    async with self.repository.transaction() as tx:
                        created = await self._admit(candidates, tx)
                except DuplicateRecordError as e:
                    raise DuplicateExtensionError(
                        f"Extension already registered: {e.extension}",
                        extension=e.extension
                    ) from e

        log_business_event(
            "custom_extensions_added",
            count=len(created),
            extensions=[record.extension for record in created]
        )
        return created

    async def _admit(self, candidates: List[str], tx: Transaction) -> List[ExtensionRecord]:
        current_count = await self.repository.count_by_category(ExtensionCategory.CUSTOM, tx=tx)
        if current_count + len(candidates) > self.capacity_limit:
            logger.info(
                "Custom extension quota exceeded",
                current_count=current_count,
                requested=len(candidates),
                limit=self.capacity_limit
            )
            raise_quota_exceeded(current_count, len(candidates), self.capacity_limit)

        for extension in candidates:
            validate_extension_format(extension, self.max_extension_length)
            if extension in self.fixed_extensions:
                raise FixedNameConflictError(
                    f"'{extension}' is a fixed extension; toggle it in the fixed list instead.",
                    extension=extension
                )
            if await self.repository.exists_by_extension(extension, tx=tx):
                raise DuplicateExtensionError(f"Extension already registered: {extension}", extension=extension)

        created = []
        for extension in candidates:
            created.append(await self.repository.insert(ExtensionRecord.create_custom(extension), tx=tx))
        return created

    async def delete_custom_extension(self, extension_id: str) -> None:
        """
        Delete one custom extension by record id.

        Raises:
            ExtensionNotFoundError: If no record has this id
            CategoryMismatchError: If the record is a fixed extension
        """
        async with self._lock:
            async with self.repository.transaction() as tx:
                record = await self.repository.find_by_id(extension_id, tx=tx)
                if record is None:
                    raise_extension_not_found(extension_id=extension_id)
                if not record.is_custom:
                    raise CategoryMismatchError(
                        f"Fixed extensions cannot be deleted: {record.extension}",
                        extension=record.extension
                    )
                await self.repository.delete_by_id(extension_id, tx=tx)

        log_business_event("custom_extension_deleted", extension=record.extension, extension_id=extension_id)

    async def delete_all_custom_extensions(self) -> int:
        """Delete every custom extension; fixed ones are untouched. Returns the count."""
        async with self._lock:
            async with self.repository.transaction() as tx:
                deleted = await self.repository.delete_all_by_category(ExtensionCategory.CUSTOM, tx=tx)

        log_business_event("custom_extensions_cleared", count=deleted)
        return deleted

    async def reset_all(self) -> None:
        """Delete all custom extensions and unblock every fixed one."""
        with performance_context("registry_reset"):
            async with self._lock:
                async with self.repository.transaction() as tx:
                    deleted = await self.repository.delete_all_by_category(ExtensionCategory.CUSTOM, tx=tx)
                    unblocked = await self.repository.bulk_set_blocked_by_category(
                        ExtensionCategory.FIXED, False, tx=tx
                    )

        log_business_event("registry_reset", custom_deleted=deleted, fixed_unblocked=unblocked)

    async def generate_filler_data(self) -> int:
        """
        Fill the remaining custom capacity with synthetic extensions.

        Names are ``<prefix><n>`` for n = 1 .. capacity limit; names already
        registered are skipped. The returned count is the number created.

        Raises:
            QuotaExceededError: If the custom category is already full
        """
        with performance_context("custom_extension_filler"):
            async with self._lock:
                async with self.repository.transaction() as tx:
                    current_count = await self.repository.count_by_category(ExtensionCategory.CUSTOM, tx=tx)
                    room = self.capacity_limit - current_count
                    if room <= 0:
                        raise_quota_exceeded(current_count, 1, self.capacity_limit)

                    created = await self._insert_filler(room, tx)

        log_business_event("custom_filler_generated", count=created)
        return created

    async def _insert_filler(self, room: int, tx: Transaction) -> int:
        created = 0
        for n in range(1, self.capacity_limit + 1):
            if created >= room:
                break

            extension = f"{self.filler_prefix}{n}"
            if extension in self.fixed_extensions:
                continue
            if await self.repository.exists_by_extension(extension, tx=tx):
                continue

            try:
                await self.repository.insert(ExtensionRecord.create_custom(extension), tx=tx)
            except DuplicateRecordError:
                logger.warning("Skipping filler extension that already exists", extension=extension)
                continue
            created += 1

        if created < room:
            logger.info("Filler generation left capacity unused", created=created, room=room)
        return created
