"""
Startup hook for applying migrations when an application instance boots.
"""

from typing import Any, Optional

from docmigrate.core.config import settings
from docmigrate.core.exceptions import LockContentionError
from docmigrate.log.logging import logger
from docmigrate.migrations.models import AppliedRecord
from docmigrate.migrations.runner import MigrationRunner


async def run_startup_migrations(
    db: Any, runner: Optional[MigrationRunner] = None
) -> list[AppliedRecord]:
    """
    Run pending database migrations if enabled.

    Several instances may boot at once; the one that wins the lock applies
    the batch and the others skip. A failing migration propagates so the
    instance does not start against a half-migrated store.
    """
    if not settings.migrations_enabled or not settings.migrations_auto_run:
        logger.info("Auto-migrations disabled, skipping", event_type="migrations_disabled")
        return []

    runner = runner or MigrationRunner.for_database(db)
    await runner.initialize()

    try:
        records = await runner.run()
    except LockContentionError as e:
        logger.info(
            "Another instance is running migrations ({holder}), skipping",
            holder=e.holder,
            event_type="migrations_skipped",
        )
        return []

    if not records:
        logger.info("No pending migrations", event_type="migrations_up_to_date")
    return records
