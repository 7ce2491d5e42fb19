import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from docmigrate.migrations.ledger import InMemoryLedgerStore
from docmigrate.migrations.lock import InMemoryLockManager
from docmigrate.migrations.models import MigrationDefinition
from docmigrate.migrations.registry import MigrationRegistry
from docmigrate.migrations.runner import MigrationRunner


class FakeClock:
    """Controllable UTC clock."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class AsyncIterator:
    """Async iterator over documents, standing in for a Motor cursor."""

    def __init__(self, docs):
        self.docs = docs
        self.index = 0

    def __aiter__(self):
        return self

    async def __anext__(self):
        if self.index >= len(self.docs):
            raise StopAsyncIteration
        doc = self.docs[self.index]
        self.index += 1
        return doc


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def ledger():
    return InMemoryLedgerStore()


@pytest.fixture
def lock_manager():
    return InMemoryLockManager()


@pytest.fixture
def calls():
    """Ordered log of ("up" | "down", version) invocations."""
    return []


@pytest.fixture
def make_migration(calls):
    """Factory for migration definitions that log their calls."""

    def _make(
        version,
        description=None,
        fail_up=None,
        fail_down=None,
        reversible=True,
        delay=0,
    ):
        async def up(db):
            calls.append(("up", version))
            if delay:
                await asyncio.sleep(delay)
            if fail_up:
                raise fail_up

        async def down(db):
            calls.append(("down", version))
            if fail_down:
                raise fail_down

        return MigrationDefinition(
            version=version,
            description=description or f"Migration {version}",
            up=up,
            down=down if reversible else None,
        )

    return _make


@pytest.fixture
def make_runner(ledger, lock_manager):
    """Factory for runners sharing the same ledger and lock manager."""

    def _make(definitions, **kwargs):
        kwargs.setdefault("lease_seconds", 5)
        kwargs.setdefault("heartbeat_interval", 1)
        return MigrationRunner(MigrationRegistry(definitions), ledger, lock_manager, **kwargs)

    return _make


@pytest.fixture
def mock_db():
    """Create a mock MongoDB database."""
    db = MagicMock()
    migrations_collection = MagicMock()
    lock_collection = MagicMock()

    def get_collection(name):
        if name == "_migrations":
            return migrations_collection
        else:
            return lock_collection

    db.__getitem__ = MagicMock(side_effect=get_collection)

    return db, migrations_collection, lock_collection


@pytest.fixture
def make_cursor():
    """Build an async cursor over the given documents."""
    return AsyncIterator
