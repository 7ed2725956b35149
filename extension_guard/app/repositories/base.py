"""
Storage contract for extension records.

Services talk to storage only through ExtensionRepository. Every write
accepts an optional Transaction; writes made inside one commit or roll
back together.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncContextManager, Awaitable, Callable, List, Optional

from ..models.domain.extension import ExtensionCategory, ExtensionRecord
from ..utils.logging import database_logger, get_logger

logger = get_logger(__name__)

UndoAction = Callable[[], Awaitable[None]]


@dataclass
class Transaction:
    """
    Handle for a repository transaction.

    ``session`` is the backend's native session when the backend supports
    real transactions. Without one, writes register compensating actions
    that are replayed in reverse order on rollback, and inserts may be
    held in ``pending_inserts`` until commit.
    """

    database_type: str
    session: Any = None
    pending_inserts: List[ExtensionRecord] = field(default_factory=list)
    _undo_actions: List[UndoAction] = field(default_factory=list)

    @property
    def is_native(self) -> bool:
        return self.session is not None

    def record_undo(self, action: UndoAction) -> None:
        if not self.is_native:
            self._undo_actions.append(action)

    async def rollback(self, error: BaseException) -> None:
        """Run compensating actions, newest first."""
        actions = list(reversed(self._undo_actions))
        self._undo_actions.clear()
        if not actions:
            return

        database_logger.transaction_rolled_back(self.database_type, len(actions), str(error))
        for action in actions:
            try:
                await action()
            except Exception as e:
                # Keep compensating; the original error is what propagates
                logger.error("Compensating action failed", error=str(e))


class ExtensionRepository(ABC):
    """Abstract keyed store of extension records with a unique extension key."""

    database_type = "abstract"

    @abstractmethod
    def transaction(self) -> AsyncContextManager[Transaction]:
        """Open a transaction; commits on normal exit, rolls back on error."""

    @abstractmethod
    async def find_by_id(self, extension_id: str, tx: Optional[Transaction] = None) -> Optional[ExtensionRecord]:
        ...

    @abstractmethod
    async def find_by_extension(self, extension: str, tx: Optional[Transaction] = None) -> Optional[ExtensionRecord]:
        ...

    @abstractmethod
    async def exists_by_extension(self, extension: str, tx: Optional[Transaction] = None) -> bool:
        ...

    @abstractmethod
    async def find_by_category(
        self,
        category: ExtensionCategory,
        newest_first: bool = True,
        tx: Optional[Transaction] = None
    ) -> List[ExtensionRecord]:
        ...

    @abstractmethod
    async def find_blocked(self, tx: Optional[Transaction] = None) -> List[ExtensionRecord]:
        """Records with blocked=True across both categories."""

    @abstractmethod
    async def count_by_category(self, category: ExtensionCategory, tx: Optional[Transaction] = None) -> int:
        ...

    @abstractmethod
    async def insert(self, record: ExtensionRecord, tx: Optional[Transaction] = None) -> ExtensionRecord:
        """
        Insert a record.

        Raises:
            DuplicateRecordError: If the extension already exists
        """

    @abstractmethod
    async def delete_by_id(self, extension_id: str, tx: Optional[Transaction] = None) -> bool:
        ...

    @abstractmethod
    async def delete_all_by_category(self, category: ExtensionCategory, tx: Optional[Transaction] = None) -> int:
        ...

    @abstractmethod
    async def bulk_set_blocked_by_category(
        self,
        category: ExtensionCategory,
        blocked: bool,
        tx: Optional[Transaction] = None
    ) -> int:
        """Set the flag and bump the version of every record in the category."""

    @abstractmethod
    async def update_blocked_if_version(
        self,
        extension_id: str,
        blocked: bool,
        expected_version: int,
        tx: Optional[Transaction] = None
    ) -> Optional[ExtensionRecord]:
        """
        Compare-and-swap the blocked flag.

        Returns:
            The updated record, or None when the stored version differs
            from expected_version (or the record is gone)
        """

    async def ensure_indexes(self) -> None:
        """Create storage constraints; no-op by default."""

    async def close(self) -> None:
        """Release storage resources; no-op by default."""
