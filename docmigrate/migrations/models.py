"""
Migration data models and status tracking.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union

MigrationFn = Callable[[Any], Union[Awaitable[None], None]]

_VERSION_CHUNK = re.compile(r"(\d+)")


def version_key(version: str) -> tuple:
    """
    Sort key for migration versions.

    Digit runs compare numerically so that ``"9" < "10"`` and ``"001" == "1"``
    order the same way; other text compares as-is.
    """
    parts = _VERSION_CHUNK.split(str(version))
    return tuple((0, int(p), "") if p.isdigit() else (1, 0, p) for p in parts if p)


class RunState(str, Enum):
    """States of a single runner invocation."""

    IDLE = "idle"
    LOCK_ACQUIRED = "lock_acquired"
    APPLYING = "applying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    LOCK_RELEASED = "lock_released"


@dataclass(frozen=True)
class MigrationDefinition:
    """
    Represents a database migration shipped with the application.

    Attributes:
        version: Unique, sortable version identifier.
        description: Human-readable description of what the migration does.
        up: Function applying the migration; receives the database.
        down: Function reversing the migration, None if irreversible.
        name: Short name, usually taken from the file name.
        checksum: SHA256 hash of the migration file for change detection.
        file_path: Path to the migration file.
    """

    version: str
    description: str
    up: MigrationFn
    down: Optional[MigrationFn] = None
    name: str = ""
    checksum: str = ""
    file_path: str = ""

    @property
    def reversible(self) -> bool:
        return self.down is not None


@dataclass
class AppliedRecord:
    """
    Record of an applied migration stored in the ledger.

    Attributes:
        version: Migration version.
        description: Description snapshot taken at apply time.
        applied_at: When the migration was applied.
        checksum: Hash of the migration file when applied.
        execution_time_ms: How long the up operation took.
    """

    version: str
    description: str
    applied_at: datetime
    checksum: str = ""
    execution_time_ms: int = 0

    def to_dict(self) -> dict:
        """Convert to dictionary for MongoDB storage."""
        return {
            "_id": self.version,
            "version": self.version,
            "description": self.description,
            "applied_at": self.applied_at,
            "checksum": self.checksum,
            "execution_time_ms": self.execution_time_ms,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AppliedRecord":
        """Create from MongoDB document."""
        return cls(
            version=str(data["version"]),
            description=data.get("description", ""),
            applied_at=data["applied_at"],
            checksum=data.get("checksum", ""),
            execution_time_ms=data.get("execution_time_ms", 0),
        )


@dataclass
class LockRecord:
    """
    Leased lock preventing concurrent migration runs.

    Attributes:
        holder: Identifier of the process holding the lock.
        acquired_at: When the lock was acquired.
        lease_expires_at: When the lease lapses unless renewed.
    """

    LOCK_ID = "migration_lock"

    holder: str
    acquired_at: datetime
    lease_expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return self.lease_expires_at <= now

    def to_dict(self) -> dict:
        """Convert to dictionary for MongoDB storage."""
        return {
            "_id": self.LOCK_ID,
            "holder": self.holder,
            "acquired_at": self.acquired_at,
            "lease_expires_at": self.lease_expires_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "LockRecord":
        return cls(
            holder=data["holder"],
            acquired_at=data["acquired_at"],
            lease_expires_at=data["lease_expires_at"],
        )


@dataclass(frozen=True)
class MigrationStatusEntry:
    """Status of one registry migration."""

    version: str
    description: str
    applied: bool
    applied_at: Optional[datetime] = None
    reversible: bool = True


@dataclass
class MigrationStatusReport:
    """Registry merged with the ledger, plus ledger entries the registry no longer knows."""

    migrations: list[MigrationStatusEntry] = field(default_factory=list)
    orphaned: list[AppliedRecord] = field(default_factory=list)

    @property
    def applied(self) -> list[MigrationStatusEntry]:
        return [m for m in self.migrations if m.applied]

    @property
    def pending(self) -> list[MigrationStatusEntry]:
        return [m for m in self.migrations if not m.applied]

    @property
    def current_version(self) -> Optional[str]:
        applied = self.applied
        return applied[-1].version if applied else None

    @property
    def latest_version(self) -> Optional[str]:
        return self.migrations[-1].version if self.migrations else None
