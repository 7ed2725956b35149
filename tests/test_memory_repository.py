"""
Unit tests for the in-memory extension repository.
"""

import pytest

from extension_guard.app.core.exceptions import DuplicateRecordError
from extension_guard.app.models.domain.extension import ExtensionCategory, ExtensionRecord


class TestBasicOperations:
    """Test suite for non-transactional operations."""

    @pytest.mark.asyncio
    async def test_insert_and_find(self, repository):
        record = await repository.insert(ExtensionRecord.create_custom("py"))

        assert await repository.find_by_id(record.id) == record
        assert await repository.find_by_extension("py") == record
        assert await repository.exists_by_extension("py")
        assert await repository.find_by_extension("rb") is None

    @pytest.mark.asyncio
    async def test_duplicate_insert_rejected(self, repository):
        await repository.insert(ExtensionRecord.create_fixed("exe"))

        with pytest.raises(DuplicateRecordError) as exc_info:
            await repository.insert(ExtensionRecord.create_custom("exe"))

        assert exc_info.value.extension == "exe"
        assert await repository.count_by_category(ExtensionCategory.CUSTOM) == 0

    @pytest.mark.asyncio
    async def test_compare_and_set(self, repository):
        record = await repository.insert(ExtensionRecord.create_fixed("js"))

        updated = await repository.update_blocked_if_version(record.id, True, 0)
        stale = await repository.update_blocked_if_version(record.id, False, 0)

        assert updated.blocked is True
        assert updated.version == 1
        assert stale is None
        assert (await repository.find_by_id(record.id)).blocked is True

    @pytest.mark.asyncio
    async def test_compare_and_set_missing_record(self, repository):
        assert await repository.update_blocked_if_version("nope", True, 0) is None

    @pytest.mark.asyncio
    async def test_bulk_set_only_touches_category(self, repository):
        await repository.insert(ExtensionRecord.create_fixed("exe"))
        await repository.insert(ExtensionRecord.create_fixed("bat"))
        custom = await repository.insert(ExtensionRecord.create_custom("py"))

        affected = await repository.bulk_set_blocked_by_category(ExtensionCategory.FIXED, True)

        assert affected == 2
        assert {r.extension for r in await repository.find_blocked()} == {"exe", "bat", "py"}
        assert (await repository.find_by_id(custom.id)).version == 0

    @pytest.mark.asyncio
    async def test_delete_operations(self, repository):
        a = await repository.insert(ExtensionRecord.create_custom("a"))
        await repository.insert(ExtensionRecord.create_custom("b"))
        await repository.insert(ExtensionRecord.create_fixed("exe"))

        assert await repository.delete_by_id(a.id) is True
        assert await repository.delete_by_id(a.id) is False
        assert await repository.delete_all_by_category(ExtensionCategory.CUSTOM) == 1
        assert await repository.count_by_category(ExtensionCategory.FIXED) == 1

    @pytest.mark.asyncio
    async def test_find_by_category_ordering(self, repository):
        for name in ("first", "second", "third"):
            await repository.insert(ExtensionRecord.create_custom(name))

        newest = await repository.find_by_category(ExtensionCategory.CUSTOM)
        oldest = await repository.find_by_category(ExtensionCategory.CUSTOM, newest_first=False)

        assert [r.extension for r in newest] == ["third", "second", "first"]
        assert [r.extension for r in oldest] == ["first", "second", "third"]


class TestTransactions:
    """Test suite for staged transactions."""

    @pytest.mark.asyncio
    async def test_writes_visible_inside_only_until_commit(self, repository):
        async with repository.transaction() as tx:
            await repository.insert(ExtensionRecord.create_custom("py"), tx=tx)

            assert await repository.exists_by_extension("py", tx=tx)
            assert not await repository.exists_by_extension("py")

        assert await repository.exists_by_extension("py")

    @pytest.mark.asyncio
    async def test_error_discards_staged_writes(self, repository):
        with pytest.raises(RuntimeError):
            async with repository.transaction() as tx:
                await repository.insert(ExtensionRecord.create_custom("py"), tx=tx)
                raise RuntimeError("abort")

        assert await repository.count_by_category(ExtensionCategory.CUSTOM) == 0

    @pytest.mark.asyncio
    async def test_commit_conflict_applies_nothing(self, repository):
        """A duplicate that appears after staging fails the whole commit."""
        with pytest.raises(DuplicateRecordError):
            async with repository.transaction() as tx:
                await repository.insert(ExtensionRecord.create_custom("go"), tx=tx)
                await repository.insert(ExtensionRecord.create_custom("rs"), tx=tx)
                await repository.insert(ExtensionRecord.create_custom("rs"))

        assert not await repository.exists_by_extension("go")
        assert await repository.count_by_category(ExtensionCategory.CUSTOM) == 1

    @pytest.mark.asyncio
    async def test_commit_preserves_outside_updates(self, repository):
        exe = await repository.insert(ExtensionRecord.create_fixed("exe"))

        async with repository.transaction() as tx:
            await repository.insert(ExtensionRecord.create_custom("py"), tx=tx)
            await repository.update_blocked_if_version(exe.id, True, 0)

        assert (await repository.find_by_id(exe.id)).blocked is True
        assert await repository.exists_by_extension("py")
