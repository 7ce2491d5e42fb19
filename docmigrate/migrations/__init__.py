"""
MongoDB Migration System for the travel content store.

This module provides a versioned migration framework for managing schema changes,
index creation, and data transformations in MongoDB, safe to run from several
application instances at once.
"""

from docmigrate.migrations.ledger import InMemoryLedgerStore, LedgerStore, MongoLedgerStore
from docmigrate.migrations.lock import InMemoryLockManager, Lock, LockManager, MongoLockManager
from docmigrate.migrations.models import (
    AppliedRecord,
    LockRecord,
    MigrationDefinition,
    MigrationStatusEntry,
    MigrationStatusReport,
    RunState,
)
from docmigrate.migrations.registry import MigrationRegistry
from docmigrate.migrations.runner import MigrationRunner

__all__ = [
    "AppliedRecord",
    "InMemoryLedgerStore",
    "InMemoryLockManager",
    "LedgerStore",
    "Lock",
    "LockManager",
    "LockRecord",
    "MigrationDefinition",
    "MigrationRegistry",
    "MigrationRunner",
    "MigrationStatusEntry",
    "MigrationStatusReport",
    "MongoLedgerStore",
    "MongoLockManager",
    "RunState",
]
