"""Tests for migration exceptions."""

from docmigrate.core.exceptions import (
    DuplicateVersionError,
    ErrorCode,
    LockContentionError,
    LockHeldError,
    MigrationError,
    MigrationFailedError,
    RollbackFailedError,
)


class TestMigrationErrors:
    """Tests for the exception hierarchy."""

    def test_migration_failed_names_version_and_progress(self):
        cause = ValueError("bad document")
        error = MigrationFailedError("003", cause, applied=["001", "002"])

        assert str(error) == "Migration 003 failed: bad document"
        assert error.version == "003"
        assert error.cause is cause
        assert error.to_dict()["applied"] == ["001", "002"]
        assert error.to_dict()["code"] == ErrorCode.MIGRATION_FAILED

    def test_empty_cause_message_uses_type(self):
        error = RollbackFailedError("002", TimeoutError())

        assert str(error) == "Rollback of migration 002 failed: TimeoutError"

    def test_lock_contention_is_lock_held(self):
        error = LockContentionError("host-1")

        assert isinstance(error, LockHeldError)
        assert isinstance(error, MigrationError)
        assert error.error_code == ErrorCode.LOCK_CONTENTION
        assert "host-1" in str(error)

    def test_duplicate_version(self):
        error = DuplicateVersionError("1", "001")

        assert error.version == "1"
        assert "'001'" in str(error)
