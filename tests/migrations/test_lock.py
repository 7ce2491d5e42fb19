"""Tests for lock managers."""

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from docmigrate.core.exceptions import LockHeldError, LockLostError
from docmigrate.migrations.lock import InMemoryLockManager, MongoLockManager, default_holder_id
from docmigrate.migrations.models import LockRecord


class TestInMemoryLockManager:
    """Tests for InMemoryLockManager."""

    @pytest.mark.asyncio
    async def test_acquire(self, clock):
        manager = InMemoryLockManager(clock=clock)

        lock = await manager.acquire("runner-a", 30)

        assert lock.holder_id == "runner-a"
        assert lock.lease_expires_at == clock() + timedelta(seconds=30)
        current = await manager.get_current()
        assert current.holder == "runner-a"
        assert current.acquired_at == clock()

    @pytest.mark.asyncio
    async def test_acquire_held(self, clock):
        manager = InMemoryLockManager(clock=clock)
        await manager.acquire("runner-a", 30)

        with pytest.raises(LockHeldError) as exc_info:
            await manager.acquire("runner-b", 30)

        assert exc_info.value.holder == "runner-a"

    @pytest.mark.asyncio
    async def test_stale_lease_takeover(self, clock):
        manager = InMemoryLockManager(clock=clock)
        stale = await manager.acquire("runner-a", 30)
        clock.advance(31)

        lock = await manager.acquire("runner-b", 30)

        assert lock.holder_id == "runner-b"
        assert not await stale.release()
        assert (await manager.get_current()).holder == "runner-b"

    @pytest.mark.asyncio
    async def test_release(self, clock):
        manager = InMemoryLockManager(clock=clock)
        lock = await manager.acquire("runner-a", 30)

        assert await lock.release()
        assert await manager.get_current() is None
        assert not await lock.release()

    @pytest.mark.asyncio
    async def test_context_manager_releases(self, clock):
        manager = InMemoryLockManager(clock=clock)

        async with await manager.acquire("runner-a", 30):
            assert await manager.get_current() is not None

        assert await manager.get_current() is None

    @pytest.mark.asyncio
    async def test_heartbeat_extends_lease(self, clock):
        manager = InMemoryLockManager(clock=clock)
        lock = await manager.acquire("runner-a", 30)

        clock.advance(20)
        await lock.heartbeat()
        clock.advance(20)

        with pytest.raises(LockHeldError):
            await manager.acquire("runner-b", 30)
        assert lock.lease_expires_at == clock() + timedelta(seconds=10)

    @pytest.mark.asyncio
    async def test_heartbeat_after_takeover(self, clock):
        manager = InMemoryLockManager(clock=clock)
        lock = await manager.acquire("runner-a", 30)
        clock.advance(60)
        await manager.acquire("runner-b", 30)

        with pytest.raises(LockLostError):
            await lock.heartbeat()

        assert lock.lost

    def test_default_holder_ids_are_unique(self):
        assert default_holder_id() != default_holder_id()


class TestMongoLockManager:
    """Tests for MongoLockManager."""

    @pytest.mark.asyncio
    async def test_initialize_creates_ttl_index(self, mock_db):
        db, _, lock_collection = mock_db
        lock_collection.create_index = AsyncMock()

        await MongoLockManager(db).initialize()

        lock_collection.create_index.assert_called_once_with(
            "lease_expires_at", expireAfterSeconds=0
        )

    @pytest.mark.asyncio
    async def test_acquire_is_single_conditional_write(self, mock_db, clock):
        db, _, lock_collection = mock_db
        lock_collection.find_one_and_update = AsyncMock(return_value=None)

        lock = await MongoLockManager(db, clock=clock).acquire("runner-a", 60)

        assert lock.holder_id == "runner-a"
        call = lock_collection.find_one_and_update.call_args
        assert call.args[0] == {"_id": "migration_lock", "lease_expires_at": {"$lte": clock()}}
        assert call.args[1] == {
            "$set": {
                "holder": "runner-a",
                "acquired_at": clock(),
                "lease_expires_at": clock() + timedelta(seconds=60),
            }
        }
        assert call.kwargs["upsert"] is True
        assert call.kwargs["return_document"] == ReturnDocument.BEFORE

    @pytest.mark.asyncio
    async def test_acquire_held(self, mock_db, clock):
        db, _, lock_collection = mock_db
        expires = clock() + timedelta(seconds=30)
        lock_collection.find_one_and_update = AsyncMock(
            side_effect=DuplicateKeyError("E11000 duplicate key error")
        )
        lock_collection.find_one = AsyncMock(
            return_value={
                "_id": "migration_lock",
                "holder": "runner-b",
                "acquired_at": clock(),
                "lease_expires_at": expires,
            }
        )

        with pytest.raises(LockHeldError) as exc_info:
            await MongoLockManager(db, clock=clock).acquire("runner-a", 60)

        assert exc_info.value.holder == "runner-b"
        assert exc_info.value.lease_expires_at == expires

    @pytest.mark.asyncio
    async def test_acquire_replaces_stale(self, mock_db, clock):
        db, _, lock_collection = mock_db
        lock_collection.find_one_and_update = AsyncMock(
            return_value={
                "_id": "migration_lock",
                "holder": "crashed",
                "acquired_at": clock() - timedelta(minutes=10),
                "lease_expires_at": clock() - timedelta(minutes=9),
            }
        )

        lock = await MongoLockManager(db, clock=clock).acquire("runner-a", 60)

        assert lock.holder_id == "runner-a"

    @pytest.mark.asyncio
    async def test_release_only_own_lock(self, mock_db, clock):
        db, _, lock_collection = mock_db
        lock_collection.find_one_and_update = AsyncMock(return_value=None)
        lock_collection.delete_one = AsyncMock(return_value=MagicMock(deleted_count=1))

        lock = await MongoLockManager(db, clock=clock).acquire("runner-a", 60)
        assert await lock.release()

        lock_collection.delete_one.assert_called_once_with(
            {"_id": "migration_lock", "holder": "runner-a"}
        )

    @pytest.mark.asyncio
    async def test_heartbeat(self, mock_db, clock):
        db, _, lock_collection = mock_db
        lock_collection.find_one_and_update = AsyncMock(return_value=None)
        lock_collection.update_one = AsyncMock(return_value=MagicMock(matched_count=1))

        lock = await MongoLockManager(db, clock=clock).acquire("runner-a", 60)
        clock.advance(15)
        await lock.heartbeat()

        lock_collection.update_one.assert_called_once_with(
            {"_id": "migration_lock", "holder": "runner-a"},
            {"$set": {"lease_expires_at": clock() + timedelta(seconds=60)}},
        )
        assert lock.lease_expires_at == clock() + timedelta(seconds=60)

    @pytest.mark.asyncio
    async def test_heartbeat_lost(self, mock_db, clock):
        db, _, lock_collection = mock_db
        lock_collection.find_one_and_update = AsyncMock(return_value=None)
        lock_collection.update_one = AsyncMock(return_value=MagicMock(matched_count=0))

        lock = await MongoLockManager(db, clock=clock).acquire("runner-a", 60)

        with pytest.raises(LockLostError):
            await lock.heartbeat()
        assert lock.lost

    @pytest.mark.asyncio
    async def test_get_current_empty(self, mock_db):
        db, _, lock_collection = mock_db
        lock_collection.find_one = AsyncMock(return_value=None)

        assert await MongoLockManager(db).get_current() is None


class TestLockRecord:
    """Tests for LockRecord."""

    def test_to_dict_uses_fixed_id(self, clock):
        record = LockRecord("runner-a", clock(), clock() + timedelta(seconds=5))

        assert record.to_dict()["_id"] == LockRecord.LOCK_ID

    def test_is_expired(self, clock):
        record = LockRecord("runner-a", clock(), clock() + timedelta(seconds=5))

        assert not record.is_expired(clock())
        assert record.is_expired(clock() + timedelta(seconds=5))
