"""
Unit tests for the MongoDB extension repository.

The motor collection is mocked; these tests check the queries issued and
the translation of driver errors, not MongoDB itself.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from pymongo import ReturnDocument
from pymongo.errors import BulkWriteError, DuplicateKeyError, PyMongoError

from extension_guard.app.core.exceptions import DatabaseError, DuplicateExtensionError, DuplicateRecordError
from extension_guard.app.models.domain.extension import ExtensionCategory, ExtensionRecord
from extension_guard.app.repositories.mongodb.extension_repository import MongoExtensionRepository
from extension_guard.app.services.custom_extension_service import CustomExtensionService


def make_cursor(docs):
    cursor = MagicMock()
    cursor.sort.return_value = cursor
    cursor.to_list = AsyncMock(return_value=docs)
    return cursor


class TestMongoExtensionRepository:
    """Test suite for MongoExtensionRepository."""

    def setup_method(self):
        """Set up a repository over a mocked collection."""
        self.collection = MagicMock()
        self.collection.insert_one = AsyncMock()
        self.collection.delete_one = AsyncMock()
        self.collection.find_one = AsyncMock(return_value=None)
        self.collection.find_one_and_update = AsyncMock()
        self.collection.count_documents = AsyncMock(return_value=0)
        self.collection.update_many = AsyncMock()
        self.collection.create_index = AsyncMock()
        self.repository = MongoExtensionRepository(collection=self.collection)

    @pytest.mark.asyncio
    async def test_insert_writes_document(self):
        record = ExtensionRecord.create_custom("py")

        await self.repository.insert(record)

        self.collection.insert_one.assert_awaited_once_with(record.to_dict(), session=None)

    @pytest.mark.asyncio
    async def test_duplicate_key_becomes_duplicate_record(self):
        self.collection.insert_one.side_effect = DuplicateKeyError("E11000 duplicate key error")

        with pytest.raises(DuplicateRecordError) as exc_info:
            await self.repository.insert(ExtensionRecord.create_custom("py"))

        assert exc_info.value.extension == "py"

    @pytest.mark.asyncio
    async def test_driver_error_becomes_database_error(self):
        self.collection.find_one.side_effect = PyMongoError("connection reset")

        with pytest.raises(DatabaseError):
            await self.repository.find_by_extension("py")

    @pytest.mark.asyncio
    async def test_compare_and_set_filters_on_version(self):
        record = ExtensionRecord.create_fixed("exe")
        self.collection.find_one_and_update.return_value = record.to_dict()

        updated = await self.repository.update_blocked_if_version(record.id, True, 0)

        args, kwargs = self.collection.find_one_and_update.call_args
        assert args[0] == {"_id": record.id, "version": 0}
        assert args[1] == {"$set": {"blocked": True}, "$inc": {"version": 1}}
        assert kwargs["return_document"] == ReturnDocument.BEFORE
        assert updated.blocked is True
        assert updated.version == 1

    @pytest.mark.asyncio
    async def test_compare_and_set_mismatch_returns_none(self):
        self.collection.find_one_and_update.return_value = None

        assert await self.repository.update_blocked_if_version("abc", True, 4) is None

    @pytest.mark.asyncio
    async def test_find_by_category_sorts_newest_first(self):
        record = ExtensionRecord.create_custom("py")
        cursor = make_cursor([record.to_dict()])
        self.collection.find.return_value = cursor

        records = await self.repository.find_by_category(ExtensionCategory.CUSTOM)

        assert records == [record]
        self.collection.find.assert_called_once_with({"category": "custom"}, session=None)
        cursor.sort.assert_called_once_with([("created_at", -1), ("_id", -1)])

    @pytest.mark.asyncio
    async def test_bulk_set_returns_matched_count(self):
        self.collection.update_many.return_value = MagicMock(matched_count=7)

        affected = await self.repository.bulk_set_blocked_by_category(ExtensionCategory.FIXED, False)

        assert affected == 7
        args, _ = self.collection.update_many.call_args
        assert args == ({"category": "fixed"}, {"$set": {"blocked": False}, "$inc": {"version": 1}})

    @pytest.mark.asyncio
    async def test_ensure_indexes_creates_unique_extension_index(self):
        await self.repository.ensure_indexes()

        first_call = self.collection.create_index.call_args_list[0]
        assert first_call.args[0] == [("extension", 1)]
        assert first_call.kwargs["unique"] is True



class TestMongoBatchWrites:
    """Test suite for inserts inside a non-native transaction."""

    def setup_method(self):
        """Set up a repository without native transactions over a mocked collection."""
        self.collection = MagicMock()
        self.collection.insert_one = AsyncMock()
        self.collection.insert_many = AsyncMock()
        self.collection.delete_many = AsyncMock()
        self.collection.count_documents = AsyncMock(return_value=0)
        self.repository = MongoExtensionRepository(collection=self.collection, use_transactions=False)

    @pytest.mark.asyncio
    async def test_batch_is_written_by_one_insert_many_at_commit(self):
        first = ExtensionRecord.create_custom("go")
        second = ExtensionRecord.create_custom("rs")

        async with self.repository.transaction() as tx:
            await self.repository.insert(first, tx=tx)
            await self.repository.insert(second, tx=tx)
            self.collection.insert_many.assert_not_awaited()

        self.collection.insert_one.assert_not_awaited()
        self.collection.insert_many.assert_awaited_once_with([first.to_dict(), second.to_dict()], ordered=True)
        self.collection.delete_many.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_aborted_batch_writes_nothing(self):
        with pytest.raises(RuntimeError):
            async with self.repository.transaction() as tx:
                await self.repository.insert(ExtensionRecord.create_custom("go"), tx=tx)
                raise RuntimeError("abort")

        self.collection.insert_one.assert_not_awaited()
        self.collection.insert_many.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_duplicate_in_batch_removes_written_prefix(self):
        first = ExtensionRecord.create_custom("go")
        second = ExtensionRecord.create_custom("rs")
        self.collection.insert_many.side_effect = BulkWriteError({
            "nInserted": 1,
            "writeErrors": [{"index": 1, "code": 11000, "errmsg": "E11000 duplicate key error"}]
        })

        with pytest.raises(DuplicateRecordError) as exc_info:
            async with self.repository.transaction() as tx:
                await self.repository.insert(first, tx=tx)
                await self.repository.insert(second, tx=tx)

        assert exc_info.value.extension == "rs"
        self.collection.delete_many.assert_awaited_once_with({"_id": {"$in": [first.id, second.id]}})

    @pytest.mark.asyncio
    async def test_failed_add_leaves_store_unchanged(self, settings):
        """A duplicate found at commit fails the whole add and nothing stays behind."""
        service = CustomExtensionService(self.repository, settings)
        self.collection.insert_many.side_effect = BulkWriteError({
            "nInserted": 2,
            "writeErrors": [{"index": 2, "code": 11000, "errmsg": "E11000 duplicate key error"}]
        })

        with pytest.raises(DuplicateExtensionError) as exc_info:
            await service.add_custom_extensions("go, rs, kt")

        assert exc_info.value.extension == "kt"
        written = [doc["_id"] for doc in self.collection.insert_many.await_args.args[0]]
        self.collection.delete_many.assert_awaited_once_with({"_id": {"$in": written}})
        self.collection.insert_one.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_other_bulk_errors_become_database_errors(self):
        self.collection.insert_many.side_effect = BulkWriteError({
            "nInserted": 0,
            "writeErrors": [{"index": 0, "code": 121, "errmsg": "Document failed validation"}]
        })

        with pytest.raises(DatabaseError) as exc_info:
            async with self.repository.transaction() as tx:
                await self.repository.insert(ExtensionRecord.create_custom("go"), tx=tx)

        assert not isinstance(exc_info.value, DuplicateRecordError)
