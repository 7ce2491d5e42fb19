"""
Ledger stores: durable record of which migration versions have been applied.

Every operation is a single-document write; no multi-document transaction
is assumed.
"""

from abc import ABC, abstractmethod
from datetime import datetime

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING
from pymongo.errors import DuplicateKeyError

from docmigrate.core.exceptions import RecordNotFoundError, WriteConflictError
from docmigrate.log.logging import logger
from docmigrate.migrations.models import AppliedRecord, version_key


class LedgerStore(ABC):
    """Interface of a ledger store."""

    async def initialize(self) -> None:
        """Prepare the backing store (indexes etc.)."""

    @abstractmethod
    async def load_all(self) -> list[AppliedRecord]:
        """Return every applied record sorted by version."""

    @abstractmethod
    async def record_applied(
        self,
        version: str,
        description: str,
        applied_at: datetime,
        checksum: str = "",
        execution_time_ms: int = 0,
    ) -> AppliedRecord:
        """
        Record a version as applied.

        Raises:
            WriteConflictError: If the version is already recorded.
        """

    @abstractmethod
    async def remove_applied(self, version: str) -> None:
        """
        Remove a version from the ledger.

        Raises:
            RecordNotFoundError: If the version is not recorded.
        """


class MongoLedgerStore(LedgerStore):
    """
    Ledger kept in a MongoDB collection keyed by version.

    Collections written by the earlier migration runner hold documents with an
    ObjectId `_id`, an integer `version` and a `status` field; only those with
    status `applied` count as applied.
    """

    DEFAULT_COLLECTION = "_migrations"
    APPLIED_FILTER = {"status": {"$in": [None, "applied"]}}

    def __init__(self, db: AsyncIOMotorDatabase, collection_name: str = DEFAULT_COLLECTION):
        self._collection = db[collection_name]

    async def initialize(self) -> None:
        await self._collection.create_index([("version", ASCENDING)], unique=True)

    async def load_all(self) -> list[AppliedRecord]:
        records = []
        async for doc in self._collection.find(self.APPLIED_FILTER):
            records.append(AppliedRecord.from_dict(doc))

        records.sort(key=lambda r: version_key(r.version))
        return records

    async def record_applied(
        self,
        version: str,
        description: str,
        applied_at: datetime,
        checksum: str = "",
        execution_time_ms: int = 0,
    ) -> AppliedRecord:
        record = AppliedRecord(
            version=version,
            description=description,
            applied_at=applied_at,
            checksum=checksum,
            execution_time_ms=execution_time_ms,
        )

        try:
            await self._collection.insert_one(record.to_dict())
        except DuplicateKeyError as e:
            logger.error(
                "Ledger already contains migration {version}",
                version=version,
                event_type="ledger_write_conflict",
            )
            raise WriteConflictError(version, cause=e) from e

        return record

    @classmethod
    def _version_filter(cls, version: str) -> dict:
        versions: list = [version]
        if version.isdigit():
            versions.append(int(version))
        return {"version": {"$in": versions}, **cls.APPLIED_FILTER}

    async def remove_applied(self, version: str) -> None:
        result = await self._collection.delete_one(self._version_filter(version))
        if result.deleted_count == 0:
            raise RecordNotFoundError(version)


class InMemoryLedgerStore(LedgerStore):
    """
    Process-local ledger.

    Used by tests and by embedding applications without a database; share one
    instance between runners to simulate a shared store.
    """

    def __init__(self, records: list[AppliedRecord] | None = None):
        self._records: dict[str, AppliedRecord] = {r.version: r for r in records or []}

    async def load_all(self) -> list[AppliedRecord]:
        return sorted(self._records.values(), key=lambda r: version_key(r.version))

    async def record_applied(
        self,
        version: str,
        description: str,
        applied_at: datetime,
        checksum: str = "",
        execution_time_ms: int = 0,
    ) -> AppliedRecord:
        if version in self._records:
            raise WriteConflictError(version)

        record = AppliedRecord(
            version=version,
            description=description,
            applied_at=applied_at,
            checksum=checksum,
            execution_time_ms=execution_time_ms,
        )
        self._records[version] = record
        return record

    async def remove_applied(self, version: str) -> None:
        if self._records.pop(version, None) is None:
            raise RecordNotFoundError(version)
