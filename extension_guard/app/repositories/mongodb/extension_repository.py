"""
MongoDB repository for blocked extension records.

This module provides the data access layer for the extension registry with:
- A unique index on the extension name as the last line of defense
- Compare-and-swap updates keyed on the record version
- Multi-document transactions when the deployment supports them
- Without them, a batch of inserts written by one insert_many at commit,
  with compensating undo actions for everything else
"""

from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import BulkWriteError, DuplicateKeyError, PyMongoError

from ...core.exceptions import DuplicateRecordError, raise_database_error
from ...models.domain.extension import ExtensionCategory, ExtensionRecord
from ...utils.logging import database_logger, get_logger, performance_context
from ..base import ExtensionRepository, Transaction

logger = get_logger(__name__)


class MongoExtensionRepository(ExtensionRepository):
    """
    MongoDB repository for extension records.

    Documents are stored as ``ExtensionRecord.to_dict()`` with the record
    id as ``_id``.
    """

    database_type = "mongodb"

    def __init__(
        self,
        manager: Any = None,
        collection_name: str = "blocked_extensions",
        use_transactions: bool = False,
        collection: Optional[AsyncIOMotorCollection] = None
    ):
        """
        Initialize the extension repository.

        Args:
            manager: MongoDBManager owning the client
            collection_name: Collection holding extension records
            use_transactions: Use native multi-document transactions
            collection: Pre-built collection, bypassing the manager
        """
        self._manager = manager
        self._collection_name = collection_name
        self._use_transactions = use_transactions
        self._collection = collection

    def _get_collection(self) -> AsyncIOMotorCollection:
        """Get MongoDB collection with lazy initialization."""
        if self._collection is None:
            self._collection = self._manager.get_database()[self._collection_name]
        return self._collection

    @staticmethod
    def _session(tx: Optional[Transaction]):
        return tx.session if tx is not None else None

    @staticmethod
    def _compensating(tx: Optional[Transaction]) -> bool:
        return tx is not None and not tx.is_native

    def _log_query(self, operation: str, result_count: Optional[int] = None) -> None:
        database_logger.query_executed(
            database_type=self.database_type,
            operation=operation,
            collection=self._collection_name,
            result_count=result_count
        )

    def _raise_storage_error(self, operation: str, error: Exception) -> None:
        raise_database_error(
            f"MongoDB {operation} failed: {error}",
            database_type=self.database_type,
            operation=operation,
            collection_name=self._collection_name
        )

    @asynccontextmanager
    async def transaction(self):
        if self._use_transactions:
            client = self._manager.client
            async with await client.start_session() as session:
                async with session.start_transaction():
                    yield Transaction(database_type=self.database_type, session=session)
            return

        tx = Transaction(database_type=self.database_type)
        try:
            yield tx
            await self._flush_pending_inserts(tx)
        except BaseException as e:
            await tx.rollback(e)
            raise

    async def ensure_indexes(self) -> None:
        """Create the unique extension index and the listing index."""
        collection = self._get_collection()
        try:
            with performance_context("mongodb_create_indexes", collection=self._collection_name):
                await collection.create_index(
                    [("extension", ASCENDING)],
                    unique=True,
                    name="extension_unique"
                )
                await collection.create_index(
                    [("category", ASCENDING), ("created_at", DESCENDING)],
                    name="category_created"
                )
            logger.debug("Extension collection indexes ensured")
        except PyMongoError as e:
            self._raise_storage_error("create_indexes", e)

    async def find_by_id(self, extension_id: str, tx: Optional[Transaction] = None) -> Optional[ExtensionRecord]:
        try:
            doc = await self._get_collection().find_one({"_id": extension_id}, session=self._session(tx))
        except PyMongoError as e:
            self._raise_storage_error("find_by_id", e)
        self._log_query("find_one", 1 if doc else 0)
        return ExtensionRecord.from_dict(doc) if doc else None

    async def find_by_extension(self, extension: str, tx: Optional[Transaction] = None) -> Optional[ExtensionRecord]:
        try:
            doc = await self._get_collection().find_one({"extension": extension}, session=self._session(tx))
        except PyMongoError as e:
            self._raise_storage_error("find_by_extension", e)
        self._log_query("find_one", 1 if doc else 0)
        return ExtensionRecord.from_dict(doc) if doc else None

    async def exists_by_extension(self, extension: str, tx: Optional[Transaction] = None) -> bool:
        try:
            count = await self._get_collection().count_documents(
                {"extension": extension},
                limit=1,
                session=self._session(tx)
            )
        except PyMongoError as e:
            self._raise_storage_error("exists_by_extension", e)
        return count > 0

    async def _find_many(self, query: Dict[str, Any], sort, tx: Optional[Transaction]) -> List[ExtensionRecord]:
        try:
            cursor = self._get_collection().find(query, session=self._session(tx))
            if sort:
                cursor = cursor.sort(sort)
            docs = await cursor.to_list(length=None)
        except PyMongoError as e:
            self._raise_storage_error("find", e)
        self._log_query("find", len(docs))
        return [ExtensionRecord.from_dict(doc) for doc in docs]

    async def find_by_category(
        self,
        category: ExtensionCategory,
        newest_first: bool = True,
        tx: Optional[Transaction] = None
    ) -> List[ExtensionRecord]:
        direction = DESCENDING if newest_first else ASCENDING
        return await self._find_many(
            {"category": category.value},
            [("created_at", direction), ("_id", direction)],
            tx
        )

    async def find_blocked(self, tx: Optional[Transaction] = None) -> List[ExtensionRecord]:
        return await self._find_many({"blocked": True}, None, tx)

    async def count_by_category(self, category: ExtensionCategory, tx: Optional[Transaction] = None) -> int:
        try:
            count = await self._get_collection().count_documents(
                {"category": category.value},
                session=self._session(tx)
            )
        except PyMongoError as e:
            self._raise_storage_error("count_by_category", e)
        self._log_query("count_documents", count)
        return count

    async def insert(self, record: ExtensionRecord, tx: Optional[Transaction] = None) -> ExtensionRecord:
        if self._compensating(tx):
            # Written with the rest of the batch when the transaction commits
            tx.pending_inserts.append(record)
            return record

        try:
            await self._get_collection().insert_one(record.to_dict(), session=self._session(tx))
        except DuplicateKeyError:
            raise DuplicateRecordError(record.extension, database_type=self.database_type)
        except PyMongoError as e:
            self._raise_storage_error("insert", e)

        self._log_query("insert_one", 1)
        return record

    async def _flush_pending_inserts(self, tx: Transaction) -> None:
        """
        Write a transaction's staged inserts with one ordered insert_many.

        Readers see none of the batch until this single call. If the server
        stops part way, the written prefix is removed on rollback.

        Raises:
            DuplicateRecordError: If the unique index rejects a staged record
            DatabaseError: If the write fails for any other reason
        """
        records, tx.pending_inserts = tx.pending_inserts, []
        if not records:
            return

        collection = self._get_collection()
        docs = [record.to_dict() for record in records]
        batch_ids = [doc["_id"] for doc in docs]

        async def undo_insert_batch():
            await collection.delete_many({"_id": {"$in": batch_ids}})
        tx.record_undo(undo_insert_batch)

        try:
            with performance_context("mongodb_insert_batch", collection=self._collection_name, count=len(docs)):
                await collection.insert_many(docs, ordered=True)
        except BulkWriteError as e:
            duplicate = next(
                (err for err in e.details.get("writeErrors", []) if err.get("code") == 11000),
                None
            )
            if duplicate is not None:
                raise DuplicateRecordError(docs[duplicate["index"]]["extension"], database_type=self.database_type)
            self._raise_storage_error("insert_many", e)
        except PyMongoError as e:
            self._raise_storage_error("insert_many", e)

        self._log_query("insert_many", len(docs))

    async def delete_by_id(self, extension_id: str, tx: Optional[Transaction] = None) -> bool:
        collection = self._get_collection()
        try:
            doc = await collection.find_one_and_delete({"_id": extension_id}, session=self._session(tx))
        except PyMongoError as e:
            self._raise_storage_error("delete_by_id", e)

        self._log_query("find_one_and_delete", 1 if doc else 0)
        if doc and self._compensating(tx):
            async def undo_delete():
                await collection.insert_one(doc)
            tx.record_undo(undo_delete)
        return doc is not None

    async def delete_all_by_category(self, category: ExtensionCategory, tx: Optional[Transaction] = None) -> int:
        collection = self._get_collection()
        query = {"category": category.value}
        try:
            removed_docs = []
            if self._compensating(tx):
                removed_docs = await collection.find(query).to_list(length=None)
            result = await collection.delete_many(query, session=self._session(tx))
        except PyMongoError as e:
            self._raise_storage_error("delete_all_by_category", e)

        self._log_query("delete_many", result.deleted_count)
        if removed_docs:
            async def undo_delete_all():
                await collection.insert_many(removed_docs, ordered=False)
            tx.record_undo(undo_delete_all)
        return result.deleted_count

    async def bulk_set_blocked_by_category(
        self,
        category: ExtensionCategory,
        blocked: bool,
        tx: Optional[Transaction] = None
    ) -> int:
        collection = self._get_collection()
        query = {"category": category.value}
        try:
            previous = []
            if self._compensating(tx):
                previous = await collection.find(query, {"blocked": 1}).to_list(length=None)
            result = await collection.update_many(
                query,
                {"$set": {"blocked": blocked}, "$inc": {"version": 1}},
                session=self._session(tx)
            )
        except PyMongoError as e:
            self._raise_storage_error("bulk_set_blocked_by_category", e)

        self._log_query("update_many", result.matched_count)
        if previous:
            # Versions only move forward, so undo is another bump
            async def undo_bulk_set():
                for doc in previous:
                    await collection.update_one(
                        {"_id": doc["_id"]},
                        {"$set": {"blocked": doc["blocked"]}, "$inc": {"version": 1}}
                    )
            tx.record_undo(undo_bulk_set)
        return result.matched_count

    async def update_blocked_if_version(
        self,
        extension_id: str,
        blocked: bool,
        expected_version: int,
        tx: Optional[Transaction] = None
    ) -> Optional[ExtensionRecord]:
        collection = self._get_collection()
        try:
            before = await collection.find_one_and_update(
                {"_id": extension_id, "version": expected_version},
                {"$set": {"blocked": blocked}, "$inc": {"version": 1}},
                return_document=ReturnDocument.BEFORE,
                session=self._session(tx)
            )
        except PyMongoError as e:
            self._raise_storage_error("update_blocked_if_version", e)

        self._log_query("find_one_and_update", 1 if before else 0)
        if before is None:
            return None

        if self._compensating(tx):
            async def undo_update():
                await collection.update_one(
                    {"_id": extension_id},
                    {"$set": {"blocked": before["blocked"]}, "$inc": {"version": 1}}
                )
            tx.record_undo(undo_update)
        return ExtensionRecord.from_dict(before).with_blocked(blocked)

    async def close(self) -> None:
        if self._manager is not None:
            await self._manager.disconnect()
