"""
In-memory repository for extension records.

Used for local development and tests. Transactions stage their writes
against a working copy and record each write as an operation; commit
replays the operations onto the live state and swaps it in without
yielding to the event loop, so concurrent readers see either none or
all of a transaction's writes. The unique extension key is enforced on
every write, including during replay.
"""

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from ...core.exceptions import DatabaseError, DuplicateRecordError, ErrorCode
from ...models.domain.extension import ExtensionCategory, ExtensionRecord
from ...utils.logging import database_logger, get_logger
from ..base import ExtensionRepository, Transaction

logger = get_logger(__name__)

RecordState = Dict[str, ExtensionRecord]
Operation = Callable[[RecordState], None]


@dataclass
class _StagedChanges:
    working: RecordState
    operations: List[Operation] = field(default_factory=list)


def _insert_op(record: ExtensionRecord) -> Operation:
    def apply(state: RecordState) -> None:
        if any(r.extension == record.extension for r in state.values()):
            raise DuplicateRecordError(record.extension, database_type="memory")
        state[record.id] = record
    return apply


def _delete_op(extension_id: str) -> Operation:
    def apply(state: RecordState) -> None:
        state.pop(extension_id, None)
    return apply


def _delete_category_op(category: ExtensionCategory) -> Operation:
    def apply(state: RecordState) -> None:
        for record_id in [r.id for r in state.values() if r.category == category]:
            del state[record_id]
    return apply


def _bulk_blocked_op(category: ExtensionCategory, blocked: bool) -> Operation:
    def apply(state: RecordState) -> None:
        for record_id, record in list(state.items()):
            if record.category == category:
                state[record_id] = record.with_blocked(blocked)
    return apply


def _compare_and_set_op(extension_id: str, blocked: bool, expected_version: int) -> Operation:
    def apply(state: RecordState) -> None:
        record = state.get(extension_id)
        if record is None or record.version != expected_version:
            raise DatabaseError(
                f"Record {extension_id} changed before commit",
                error_code=ErrorCode.DATABASE_OPERATION_FAILED,
                database_type="memory",
                operation="update_blocked_if_version"
            )
        state[extension_id] = record.with_blocked(blocked)
    return apply


class InMemoryExtensionRepository(ExtensionRepository):
    """Dictionary-backed extension store keyed by record id."""

    database_type = "memory"

    def __init__(self):
        # Insertion ordered; ties on created_at resolve by position
        self._records: RecordState = {}

    def _state(self, tx: Optional[Transaction]) -> RecordState:
        if tx is not None and isinstance(tx.session, _StagedChanges):
            return tx.session.working
        return self._records

    def _apply(self, operation: Operation, tx: Optional[Transaction]) -> None:
        if tx is not None and isinstance(tx.session, _StagedChanges):
            operation(tx.session.working)
            tx.session.operations.append(operation)
        else:
            operation(self._records)

    def _commit(self, staged: _StagedChanges) -> None:
        state = dict(self._records)
        for operation in staged.operations:
            operation(state)
        self._records = state

    @asynccontextmanager
    async def transaction(self):
        staged = _StagedChanges(working=dict(self._records))
        tx = Transaction(database_type=self.database_type, session=staged)
        try:
            yield tx
        except BaseException as e:
            if staged.operations:
                database_logger.transaction_rolled_back(self.database_type, len(staged.operations), str(e))
            raise
        self._commit(staged)

    async def find_by_id(self, extension_id: str, tx: Optional[Transaction] = None) -> Optional[ExtensionRecord]:
        await asyncio.sleep(0)
        return self._state(tx).get(extension_id)

    async def find_by_extension(self, extension: str, tx: Optional[Transaction] = None) -> Optional[ExtensionRecord]:
        await asyncio.sleep(0)
        for record in self._state(tx).values():
            if record.extension == extension:
                return record
        return None

    async def exists_by_extension(self, extension: str, tx: Optional[Transaction] = None) -> bool:
        return await self.find_by_extension(extension, tx=tx) is not None

    async def find_by_category(
        self,
        category: ExtensionCategory,
        newest_first: bool = True,
        tx: Optional[Transaction] = None
    ) -> List[ExtensionRecord]:
        await asyncio.sleep(0)
        ordered = [
            (record.created_at, position, record)
            for position, record in enumerate(self._state(tx).values())
            if record.category == category
        ]
        ordered.sort(key=lambda item: (item[0], item[1]), reverse=newest_first)
        records = [item[2] for item in ordered]

        database_logger.query_executed(self.database_type, "find_by_category", result_count=len(records))
        return records

    async def find_blocked(self, tx: Optional[Transaction] = None) -> List[ExtensionRecord]:
        await asyncio.sleep(0)
        return [record for record in self._state(tx).values() if record.blocked]

    async def count_by_category(self, category: ExtensionCategory, tx: Optional[Transaction] = None) -> int:
        await asyncio.sleep(0)
        return sum(1 for record in self._state(tx).values() if record.category == category)

    async def insert(self, record: ExtensionRecord, tx: Optional[Transaction] = None) -> ExtensionRecord:
        await asyncio.sleep(0)
        self._apply(_insert_op(record), tx)
        return record

    async def delete_by_id(self, extension_id: str, tx: Optional[Transaction] = None) -> bool:
        await asyncio.sleep(0)
        existed = extension_id in self._state(tx)
        if existed:
            self._apply(_delete_op(extension_id), tx)
        return existed

    async def delete_all_by_category(self, category: ExtensionCategory, tx: Optional[Transaction] = None) -> int:
        await asyncio.sleep(0)
        count = sum(1 for record in self._state(tx).values() if record.category == category)
        self._apply(_delete_category_op(category), tx)
        return count

    async def bulk_set_blocked_by_category(
        self,
        category: ExtensionCategory,
        blocked: bool,
        tx: Optional[Transaction] = None
    ) -> int:
        await asyncio.sleep(0)
        count = sum(1 for record in self._state(tx).values() if record.category == category)
        self._apply(_bulk_blocked_op(category, blocked), tx)
        return count

    async def update_blocked_if_version(
        self,
        extension_id: str,
        blocked: bool,
        expected_version: int,
        tx: Optional[Transaction] = None
    ) -> Optional[ExtensionRecord]:
        await asyncio.sleep(0)
        current = self._state(tx).get(extension_id)
        if current is None or current.version != expected_version:
            return None
        self._apply(_compare_and_set_op(extension_id, blocked, expected_version), tx)
        return self._state(tx)[extension_id]
