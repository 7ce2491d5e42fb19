"""
Migration exception classes and error codes.

This module provides:
- Error codes for programmatic error handling
- A MigrationError base carrying the offending version and underlying cause
- Specific exception classes for registry, ledger, lock and runner failures
"""

from datetime import datetime
from typing import Optional


class ErrorCode:
    """Error codes for programmatic error handling."""

    # General errors (1xxx)
    INTERNAL_ERROR = "ERR_1000"

    # Registry errors (2xxx)
    DUPLICATE_VERSION = "ERR_2001"
    MIGRATION_LOAD_FAILED = "ERR_2002"

    # Lock errors (3xxx)
    LOCK_HELD = "ERR_3001"
    LOCK_CONTENTION = "ERR_3002"
    LOCK_LOST = "ERR_3003"

    # Ledger errors (4xxx)
    LEDGER_WRITE_CONFLICT = "ERR_4001"
    LEDGER_NOT_FOUND = "ERR_4002"

    # Runner errors (5xxx)
    MIGRATION_FAILED = "ERR_5001"
    ROLLBACK_FAILED = "ERR_5002"
    NOTHING_TO_ROLLBACK = "ERR_5003"
    IRREVERSIBLE = "ERR_5004"
    ORPHAN_MIGRATION = "ERR_5005"


class MigrationError(Exception):
    """Base exception for all migration errors."""

    error_code: str = ErrorCode.INTERNAL_ERROR

    def __init__(
        self,
        message: str,
        version: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.message = message
        self.version = version
        self.cause = cause

    def to_dict(self) -> dict:
        """Convert to dictionary for structured output."""
        return {
            "error": self.__class__.__name__,
            "code": self.error_code,
            "message": self.message,
            "version": self.version,
            "cause": repr(self.cause) if self.cause is not None else None,
        }


class DuplicateVersionError(MigrationError):
    """Raised when two migration definitions share a version."""

    error_code = ErrorCode.DUPLICATE_VERSION

    def __init__(self, version: str, existing: Optional[str] = None):
        detail = f" (conflicts with {existing!r})" if existing and existing != version else ""
        super().__init__(f"Duplicate migration version {version!r}{detail}", version=version)


class MigrationLoadError(MigrationError):
    """Raised when a migration file cannot be loaded."""

    error_code = ErrorCode.MIGRATION_LOAD_FAILED

    def __init__(self, file_path: str, reason: str, cause: Optional[BaseException] = None):
        super().__init__(f"Cannot load migration {file_path}: {reason}", cause=cause)
        self.file_path = file_path


class MigrationLockError(MigrationError):
    """Base exception for migration lock errors."""

    error_code = ErrorCode.LOCK_HELD


class LockHeldError(MigrationLockError):
    """Raised by a lock manager when an unexpired lease is held by someone else."""

    error_code = ErrorCode.LOCK_HELD

    def __init__(
        self,
        holder: Optional[str] = None,
        lease_expires_at: Optional[datetime] = None,
    ):
        who = holder or "another process"
        until = f" until {lease_expires_at.isoformat()}" if lease_expires_at else ""
        super().__init__(f"Migration lock is held by {who}{until}")
        self.holder = holder
        self.lease_expires_at = lease_expires_at


class LockContentionError(LockHeldError):
    """Raised by the runner when the lock could not be acquired within the wait policy."""

    error_code = ErrorCode.LOCK_CONTENTION


class LockLostError(MigrationLockError):
    """Raised when a held lease was taken over by another holder."""

    error_code = ErrorCode.LOCK_LOST

    def __init__(self, holder: str):
        super().__init__(f"Migration lock held by {holder} was lost")
        self.holder = holder


class WriteConflictError(MigrationError):
    """Raised when recording a version that is already in the ledger."""

    error_code = ErrorCode.LEDGER_WRITE_CONFLICT

    def __init__(self, version: str, cause: Optional[BaseException] = None):
        super().__init__(f"Migration {version} is already recorded as applied", version, cause)


class RecordNotFoundError(MigrationError):
    """Raised when removing a version that is not in the ledger."""

    error_code = ErrorCode.LEDGER_NOT_FOUND

    def __init__(self, version: str):
        super().__init__(f"Migration {version} is not recorded as applied", version)


class MigrationFailedError(MigrationError):
    """
    Raised when an up migration fails.

    Attributes:
        version: The version that failed.
        cause: The underlying exception.
        applied: Versions applied earlier in the same run.
    """

    error_code = ErrorCode.MIGRATION_FAILED

    def __init__(self, version: str, cause: BaseException, applied: Optional[list[str]] = None):
        self.applied = list(applied or [])
        reason = str(cause) or cause.__class__.__name__
        super().__init__(f"Migration {version} failed: {reason}", version, cause)

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["applied"] = self.applied
        return data


class RollbackFailedError(MigrationError):
    """Raised when a down migration fails; the ledger entry is left intact."""

    error_code = ErrorCode.ROLLBACK_FAILED

    def __init__(self, version: str, cause: BaseException):
        reason = str(cause) or cause.__class__.__name__
        super().__init__(f"Rollback of migration {version} failed: {reason}", version, cause)


class NothingToRollbackError(MigrationError):
    """Raised when rollback is requested against an empty ledger."""

    error_code = ErrorCode.NOTHING_TO_ROLLBACK

    def __init__(self):
        super().__init__("No applied migrations to rollback")


class IrreversibleMigrationError(MigrationError):
    """Raised when the last applied migration has no down operation."""

    error_code = ErrorCode.IRREVERSIBLE

    def __init__(self, version: str):
        super().__init__(f"Migration {version} is irreversible (no down operation)", version)


class OrphanMigrationError(MigrationError):
    """Raised when the last applied version has no definition in the registry."""

    error_code = ErrorCode.ORPHAN_MIGRATION

    def __init__(self, version: str):
        super().__init__(
            f"Migration {version} is recorded as applied but is not in the registry",
            version,
        )
