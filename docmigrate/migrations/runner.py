"""
Migration runner for executing database migrations.
"""

import asyncio
import contextlib
import inspect
import time
from typing import Any, AsyncIterator, Optional

from docmigrate.core.config import settings
from docmigrate.core.exceptions import (
    IrreversibleMigrationError,
    LockContentionError,
    LockHeldError,
    LockLostError,
    MigrationFailedError,
    NothingToRollbackError,
    OrphanMigrationError,
    RollbackFailedError,
    WriteConflictError,
)
from docmigrate.log.logging import logger
from docmigrate.migrations.ledger import LedgerStore, MongoLedgerStore
from docmigrate.migrations.lock import (
    Clock,
    Lock,
    LockManager,
    MongoLockManager,
    default_holder_id,
    utcnow,
)
from docmigrate.migrations.models import (
    AppliedRecord,
    MigrationDefinition,
    MigrationFn,
    MigrationStatusEntry,
    MigrationStatusReport,
    RunState,
    version_key,
)
from docmigrate.migrations.registry import MigrationRegistry


class MigrationRunner:
    """
    Applies, rolls back and reports migrations.

    Features:
    - Applies pending migrations in ascending version order, stopping at the first failure
    - Rolls back exactly one migration (the highest applied version) per call
    - Leased distributed lock with heartbeat so concurrent instances never double-apply
    - Reports orphaned ledger entries instead of dropping them
    - Checksum verification to detect modified migrations

    Every locked invocation walks ``IDLE -> LOCK_ACQUIRED -> APPLYING ->
    SUCCEEDED | FAILED -> LOCK_RELEASED``; the transitions of the latest
    invocation are kept in ``last_states``.
    """

    DEFAULT_LEASE_SECONDS = 60
    DEFAULT_HEARTBEAT_INTERVAL = 15

    def __init__(
        self,
        registry: MigrationRegistry,
        ledger: LedgerStore,
        lock_manager: LockManager,
        db: Any = None,
        holder_id: Optional[str] = None,
        lease_seconds: float = DEFAULT_LEASE_SECONDS,
        heartbeat_interval: float = DEFAULT_HEARTBEAT_INTERVAL,
        lock_wait_seconds: float = 0,
        lock_poll_interval: float = 1.0,
        migration_timeout: Optional[float] = None,
        clock: Clock = utcnow,
    ):
        """
        Initialize the migration runner.

        Args:
            registry: Migrations shipped with the application.
            ledger: Store of applied versions.
            lock_manager: Lease-based lock shared by all instances.
            db: Object handed to every up/down call, usually the database.
            holder_id: Lock holder identity, generated if omitted.
            lease_seconds: Lease duration of the lock.
            heartbeat_interval: Seconds between lease renewals; must be below the lease.
            lock_wait_seconds: How long to wait for a held lock (0 fails fast).
            lock_poll_interval: Seconds between acquisition attempts while waiting.
            migration_timeout: Seconds before an up/down call is aborted.
            clock: Source of the current UTC time.
        """
        if heartbeat_interval >= lease_seconds:
            raise ValueError("heartbeat_interval must be shorter than lease_seconds")

        self._registry = registry
        self._ledger = ledger
        self._lock_manager = lock_manager
        self._db = db
        self.holder_id = holder_id or default_holder_id()
        self._lease_seconds = lease_seconds
        self._heartbeat_interval = heartbeat_interval
        self._lock_wait_seconds = lock_wait_seconds
        self._lock_poll_interval = lock_poll_interval
        self._migration_timeout = migration_timeout or None
        self._clock = clock

        self.state = RunState.IDLE
        self.last_states: list[RunState] = [RunState.IDLE]

    @classmethod
    def for_database(
        cls,
        db: Any,
        migrations_dir: Optional[str] = None,
        registry: Optional[MigrationRegistry] = None,
    ) -> "MigrationRunner":
        """Build a MongoDB-backed runner configured from settings."""
        registry = registry or MigrationRegistry.from_directory(
            migrations_dir or settings.migrations_dir
        )
        return cls(
            registry,
            MongoLedgerStore(db, settings.migrations_collection),
            MongoLockManager(db, settings.migrations_lock_collection),
            db=db,
            lease_seconds=settings.migrations_lock_lease_seconds,
            heartbeat_interval=settings.migrations_heartbeat_interval,
            lock_wait_seconds=settings.migrations_lock_wait_seconds,
            lock_poll_interval=settings.migrations_lock_poll_interval,
            migration_timeout=settings.migrations_timeout_seconds,
        )

    @property
    def registry(self) -> MigrationRegistry:
        return self._registry

    async def initialize(self) -> None:
        """Initialize migration collections and indexes."""
        await self._ledger.initialize()
        await self._lock_manager.initialize()

        logger.info(
            "Migration system initialized",
            migrations=len(self._registry),
            event_type="migration_initialized",
        )

    def _transition(self, state: RunState) -> None:
        self.state = state
        self.last_states.append(state)
        logger.debug(
            "Migration runner state: {state}",
            state=state.value,
            holder=self.holder_id,
            event_type="migration_state",
        )

    async def _acquire_lock(self) -> Lock:
        deadline = time.monotonic() + self._lock_wait_seconds

        while True:
            try:
                return await self._lock_manager.acquire(self.holder_id, self._lease_seconds)
            except LockHeldError as e:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    logger.warning(
                        "Migration lock is held by {holder}",
                        holder=e.holder,
                        event_type="migration_lock_contention",
                    )
                    raise LockContentionError(e.holder, e.lease_expires_at) from e

                logger.info(
                    "Waiting for migration lock held by {holder}",
                    holder=e.holder,
                    event_type="migration_lock_waiting",
                )
                await asyncio.sleep(min(self._lock_poll_interval, remaining))

    async def _keep_alive(self, lock: Lock) -> None:
        while True:
            await asyncio.sleep(self._heartbeat_interval)
            try:
                await lock.heartbeat()
            except LockLostError:
                logger.error(
                    "Migration lock lease was taken over",
                    locked_by=lock.holder_id,
                    event_type="migration_lock_lost",
                )
                return
            except Exception as e:
                logger.warning(
                    "Migration lock heartbeat failed: {error}",
                    error=str(e),
                    event_type="migration_lock_heartbeat_failed",
                )

    @contextlib.asynccontextmanager
    async def _exclusive(self) -> AsyncIterator[Lock]:
        """Hold the migration lock, with heartbeat, for the duration of the block."""
        self.state = RunState.IDLE
        self.last_states = [RunState.IDLE]

        try:
            lock = await self._acquire_lock()
        except BaseException:
            self._transition(RunState.FAILED)
            raise

        self._transition(RunState.LOCK_ACQUIRED)
        heartbeat = asyncio.create_task(self._keep_alive(lock))
        try:
            yield lock
        finally:
            heartbeat.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await heartbeat
            try:
                await lock.release()
            except Exception as e:
                # Lease expiry frees the lock eventually
                logger.error(
                    "Failed to release migration lock: {error}",
                    error=str(e),
                    locked_by=lock.holder_id,
                    event_type="migration_lock_release_failed",
                )
            self._transition(RunState.LOCK_RELEASED)

    async def _invoke(self, fn: MigrationFn) -> None:
        if inspect.iscoroutinefunction(fn):
            call = fn(self._db)
        else:
            # Blocking bodies run in a worker thread so the heartbeat keeps the lease
            call = asyncio.to_thread(fn, self._db)

        result = await asyncio.wait_for(call, self._migration_timeout)
        if inspect.isawaitable(result):
            await asyncio.wait_for(result, self._migration_timeout)

    def _pending(
        self, records: list[AppliedRecord], target_version: Optional[str] = None
    ) -> list[MigrationDefinition]:
        applied = {version_key(r.version) for r in records}
        target = version_key(target_version) if target_version is not None else None

        return [
            m
            for m in self._registry
            if version_key(m.version) not in applied
            and (target is None or version_key(m.version) <= target)
        ]

    def _orphans(self, records: list[AppliedRecord]) -> list[AppliedRecord]:
        orphaned = [r for r in records if r.version not in self._registry]
        for record in orphaned:
            logger.warning(
                "Applied migration {version} is not in the registry",
                version=record.version,
                event_type="migration_orphaned",
            )
        return orphaned

    async def get_pending_migrations(
        self, target_version: Optional[str] = None
    ) -> list[MigrationDefinition]:
        """
        Get list of migrations that haven't been applied.

        Args:
            target_version: Ignore migrations above this version.
        """
        records = await self._ledger.load_all()
        return self._pending(records, target_version)

    async def run(self, target_version: Optional[str] = None) -> list[AppliedRecord]:
        """
        Apply pending migrations in ascending version order.

        Args:
            target_version: Stop after this version (apply all if None).

        Returns:
            Records of the migrations applied by this call, empty if none were pending.

        Raises:
            LockContentionError: If another live runner holds the lock.
            MigrationFailedError: If a migration fails; earlier ones in the run stay applied.
        """
        applied: list[AppliedRecord] = []

        async with self._exclusive() as lock:
            self._transition(RunState.APPLYING)
            try:
                records = await self._ledger.load_all()
                self._orphans(records)
                pending = self._pending(records, target_version)

                if pending:
                    logger.info(
                        "Running {count} pending migration(s)",
                        count=len(pending),
                        event_type="migrations_starting",
                    )

                for migration in pending:
                    applied.append(await self._apply(migration, lock, applied))
            except BaseException:
                self._transition(RunState.FAILED)
                raise
            self._transition(RunState.SUCCEEDED)

        logger.info(
            "Applied {count} migration(s)",
            count=len(applied),
            versions=[r.version for r in applied],
            event_type="migrations_complete",
        )
        return applied

    async def _apply(
        self, migration: MigrationDefinition, lock: Lock, applied: list[AppliedRecord]
    ) -> AppliedRecord:
        version = migration.version
        done = [r.version for r in applied]

        if lock.lost:
            raise MigrationFailedError(version, LockLostError(lock.holder_id), done)

        logger.info(
            "Applying migration {version}: {description}",
            version=version,
            description=migration.description,
            event_type="migration_applying",
        )

        start_time = time.monotonic()
        try:
            await self._invoke(migration.up)
        except Exception as e:
            logger.error(
                "Migration {version} failed: {error}",
                version=version,
                error=str(e) or e.__class__.__name__,
                applied=done,
                event_type="migration_failed",
            )
            raise MigrationFailedError(version, e, done) from e
        execution_time_ms = int((time.monotonic() - start_time) * 1000)

        if lock.lost:
            # Another holder may be running this batch now; leave it unrecorded
            raise MigrationFailedError(version, LockLostError(lock.holder_id), done)

        try:
            record = await self._ledger.record_applied(
                version,
                migration.description,
                self._clock(),
                checksum=migration.checksum,
                execution_time_ms=execution_time_ms,
            )
        except WriteConflictError as e:
            raise MigrationFailedError(version, e, done) from e

        logger.info(
            "Migration {version} applied successfully",
            version=version,
            execution_time_ms=execution_time_ms,
            event_type="migration_applied",
        )
        return record

    async def rollback_last_migration(self) -> AppliedRecord:
        """
        Roll back the applied migration with the highest version.

        Returns:
            The ledger record that was removed.

        Raises:
            LockContentionError: If another live runner holds the lock.
            NothingToRollbackError: If nothing is applied.
            OrphanMigrationError: If the last applied version is not in the registry.
            IrreversibleMigrationError: If the migration has no down operation.
            RollbackFailedError: If down fails; the ledger entry is kept.
        """
        async with self._exclusive() as lock:
            self._transition(RunState.APPLYING)
            try:
                record = await self._rollback(lock)
            except BaseException:
                self._transition(RunState.FAILED)
                raise
            self._transition(RunState.SUCCEEDED)

        return record

    async def _rollback(self, lock: Lock) -> AppliedRecord:
        records = await self._ledger.load_all()
        if not records:
            logger.info("No migrations to rollback", event_type="migration_none")
            raise NothingToRollbackError()

        last = max(records, key=lambda r: version_key(r.version))
        version = last.version

        migration = self._registry.get(version)
        if migration is None:
            logger.error(
                "Cannot rollback {version}: no migration in the registry",
                version=version,
                event_type="migration_orphaned",
            )
            raise OrphanMigrationError(version)

        if migration.down is None:
            raise IrreversibleMigrationError(version)

        if lock.lost:
            raise RollbackFailedError(version, LockLostError(lock.holder_id))

        logger.info(
            "Rolling back migration {version}: {description}",
            version=version,
            description=migration.description,
            event_type="migration_rolling_back",
        )

        start_time = time.monotonic()
        try:
            await self._invoke(migration.down)
        except Exception as e:
            logger.error(
                "Rollback of migration {version} failed: {error}",
                version=version,
                error=str(e) or e.__class__.__name__,
                event_type="migration_rollback_failed",
            )
            raise RollbackFailedError(version, e) from e

        if lock.lost:
            raise RollbackFailedError(version, LockLostError(lock.holder_id))

        await self._ledger.remove_applied(version)

        logger.info(
            "Migration {version} rolled back successfully",
            version=version,
            execution_time_ms=int((time.monotonic() - start_time) * 1000),
            event_type="migration_rolled_back",
        )
        return last

    async def get_migration_status(self) -> MigrationStatusReport:
        """
        Merge the registry with the ledger.

        Lock-free and read-only. Ledger entries without a registry definition
        are reported in ``orphaned``.
        """
        records = await self._ledger.load_all()
        by_key = {version_key(r.version): r for r in records}

        entries = []
        for migration in self._registry:
            record = by_key.pop(version_key(migration.version), None)
            entries.append(
                MigrationStatusEntry(
                    version=migration.version,
                    description=migration.description,
                    applied=record is not None,
                    applied_at=record.applied_at if record else None,
                    reversible=migration.reversible,
                )
            )

        orphaned = sorted(by_key.values(), key=lambda r: version_key(r.version))
        return MigrationStatusReport(migrations=entries, orphaned=orphaned)

    async def verify_checksums(self) -> list[dict]:
        """
        Verify that applied migrations haven't been modified.

        Returns:
            List of migrations with checksum mismatches.
        """
        mismatches = []

        for record in await self._ledger.load_all():
            migration = self._registry.get(record.version)
            if (
                migration
                and migration.checksum
                and record.checksum
                and migration.checksum != record.checksum
            ):
                mismatches.append(
                    {
                        "version": record.version,
                        "description": record.description,
                        "expected_checksum": record.checksum,
                        "actual_checksum": migration.checksum,
                    }
                )

        return mismatches
