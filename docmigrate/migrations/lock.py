"""
Leased mutual exclusion for migration runs.

A lock is a singleton document with a lease. Acquisition is one conditional
write that succeeds only when no lock exists or the existing lease has
lapsed; release and heartbeat only touch the document while the caller is
still its holder.
"""

import os
import socket
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Union

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from docmigrate.core.exceptions import LockHeldError, LockLostError
from docmigrate.log.logging import logger
from docmigrate.migrations.models import LockRecord

Clock = Callable[[], datetime]
LeaseDuration = Union[timedelta, float, int]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def default_holder_id() -> str:
    """Identifier unique to this process and runner instance."""
    return f"{socket.gethostname()}-{os.getpid()}-{uuid.uuid4().hex[:8]}"


def _as_timedelta(lease: LeaseDuration) -> timedelta:
    return lease if isinstance(lease, timedelta) else timedelta(seconds=lease)


class Lock:
    """
    Handle to an acquired lease.

    Usable as an async context manager; leaving the block releases the lock.
    """

    def __init__(self, manager: "LockManager", record: LockRecord, lease_duration: timedelta):
        self._manager = manager
        self._lease_duration = lease_duration
        self.record = record
        self.released = False
        self.lost = False

    @property
    def holder_id(self) -> str:
        return self.record.holder

    @property
    def lease_expires_at(self) -> datetime:
        return self.record.lease_expires_at

    async def heartbeat(self) -> None:
        """
        Extend the lease.

        Raises:
            LockLostError: If another holder has taken the lock over.
        """
        try:
            self.record.lease_expires_at = await self._manager._extend(
                self.holder_id, self._lease_duration
            )
        except LockLostError:
            self.lost = True
            raise

    async def release(self) -> bool:
        """
        Release the lock if this handle still holds it.

        Returns:
            True if the lock document was removed.
        """
        if self.released:
            return False
        self.released = True

        removed = await self._manager._delete(self.holder_id)
        if removed:
            logger.info(
                "Migration lock released",
                locked_by=self.holder_id,
                event_type="migration_lock_released",
            )
        else:
            logger.warning(
                "Migration lock was no longer held by {holder} at release",
                holder=self.holder_id,
                event_type="migration_lock_release_skipped",
            )
        return removed

    async def __aenter__(self) -> "Lock":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.release()


class LockManager(ABC):
    """Interface of a lease-based lock manager."""

    def __init__(self, clock: Clock = utcnow):
        self._clock = clock

    async def initialize(self) -> None:
        """Prepare the backing store (indexes etc.)."""

    async def acquire(self, holder_id: str, lease_duration: LeaseDuration) -> Lock:
        """
        Acquire the lock for ``holder_id``.

        Raises:
            LockHeldError: If an unexpired lease is held.
        """
        lease = _as_timedelta(lease_duration)
        now = self._clock()
        record = LockRecord(holder=holder_id, acquired_at=now, lease_expires_at=now + lease)

        previous = await self._try_acquire(record, now)
        if previous is not None:
            logger.warning(
                "Took over stale migration lock from {previous}",
                previous=previous.holder,
                expired_at=previous.lease_expires_at.isoformat(),
                event_type="migration_lock_takeover",
            )

        logger.info(
            "Migration lock acquired",
            locked_by=holder_id,
            lease_expires_at=record.lease_expires_at.isoformat(),
            event_type="migration_lock_acquired",
        )
        return Lock(self, record, lease)

    @abstractmethod
    async def get_current(self) -> Optional[LockRecord]:
        """Return the current lock record, expired or not."""

    @abstractmethod
    async def _try_acquire(self, record: LockRecord, now: datetime) -> Optional[LockRecord]:
        """
        Write ``record`` if the lock is free or stale.

        Returns:
            The stale record that was replaced, if any.
        """

    @abstractmethod
    async def _extend(self, holder_id: str, lease: timedelta) -> datetime:
        """Push the lease expiry forward; raise LockLostError if not held."""

    @abstractmethod
    async def _delete(self, holder_id: str) -> bool:
        """Delete the lock if held by ``holder_id``."""


class MongoLockManager(LockManager):
    """Lock stored as a singleton document in a MongoDB collection."""

    DEFAULT_COLLECTION = "_migration_locks"

    def __init__(
        self,
        db: AsyncIOMotorDatabase,
        collection_name: str = DEFAULT_COLLECTION,
        clock: Clock = utcnow,
    ):
        super().__init__(clock)
        self._collection = db[collection_name]

    async def initialize(self) -> None:
        # TTL index lets the server reap locks of crashed holders
        await self._collection.create_index("lease_expires_at", expireAfterSeconds=0)

    async def get_current(self) -> Optional[LockRecord]:
        doc = await self._collection.find_one({"_id": LockRecord.LOCK_ID})
        return LockRecord.from_dict(doc) if doc else None

    async def _try_acquire(self, record: LockRecord, now: datetime) -> Optional[LockRecord]:
        doc = record.to_dict()
        doc.pop("_id")

        try:
            # Matches only a stale lock; if a live one exists the upsert
            # collides on _id and the server rejects it.
            previous = await self._collection.find_one_and_update(
                {"_id": LockRecord.LOCK_ID, "lease_expires_at": {"$lte": now}},
                {"$set": doc},
                upsert=True,
                return_document=ReturnDocument.BEFORE,
            )
        except DuplicateKeyError as e:
            existing = await self.get_current()
            raise LockHeldError(
                existing.holder if existing else None,
                existing.lease_expires_at if existing else None,
            ) from e

        return LockRecord.from_dict(previous) if previous else None

    async def _extend(self, holder_id: str, lease: timedelta) -> datetime:
        expires_at = self._clock() + lease
        result = await self._collection.update_one(
            {"_id": LockRecord.LOCK_ID, "holder": holder_id},
            {"$set": {"lease_expires_at": expires_at}},
        )
        if result.matched_count == 0:
            raise LockLostError(holder_id)
        return expires_at

    async def _delete(self, holder_id: str) -> bool:
        result = await self._collection.delete_one(
            {"_id": LockRecord.LOCK_ID, "holder": holder_id}
        )
        return result.deleted_count > 0


class InMemoryLockManager(LockManager):
    """Process-local lock manager; share one instance between runners."""

    def __init__(self, clock: Clock = utcnow):
        super().__init__(clock)
        self._record: Optional[LockRecord] = None

    async def get_current(self) -> Optional[LockRecord]:
        return self._record

    async def _try_acquire(self, record: LockRecord, now: datetime) -> Optional[LockRecord]:
        previous = self._record
        if previous is not None and not previous.is_expired(now):
            raise LockHeldError(previous.holder, previous.lease_expires_at)
        self._record = record
        return previous

    async def _extend(self, holder_id: str, lease: timedelta) -> datetime:
        if self._record is None or self._record.holder != holder_id:
            raise LockLostError(holder_id)
        self._record.lease_expires_at = self._clock() + lease
        return self._record.lease_expires_at

    async def _delete(self, holder_id: str) -> bool:
        if self._record is None or self._record.holder != holder_id:
            return False
        self._record = None
        return True
