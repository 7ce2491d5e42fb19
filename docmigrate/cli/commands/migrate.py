"""
Migration CLI commands for managing database migrations.
"""

import asyncio
import os
import re
from datetime import datetime
from pathlib import Path
from typing import Annotated, NoReturn, Optional

import typer
from rich.markup import escape
from rich.table import Table

from docmigrate.cli.output import (
    console,
    print_error,
    print_info,
    print_json,
    print_success,
    print_warning,
)
from docmigrate.core.config import settings
from docmigrate.core.exceptions import MigrationError, MigrationFailedError
from docmigrate.migrations.runner import MigrationRunner
from docmigrate.migrations.status import build_status_table, format_status_lines, status_to_dict

migrate_app = typer.Typer(
    name="migrate",
    help="Database migration commands",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


def get_runner(ctx: typer.Context) -> MigrationRunner:
    """Get migration runner instance."""
    from docmigrate.core.mongo import create_client, get_database

    options = ctx.obj or {}
    db = get_database(create_client(options.get("mongodb")), options.get("database"))
    return MigrationRunner.for_database(db, migrations_dir=options.get("migrations_dir"))


def get_migrations_dir(ctx: typer.Context) -> Path:
    options = ctx.obj or {}
    return Path(options.get("migrations_dir") or settings.migrations_dir)


def _fail(error: Exception, prefix: str) -> NoReturn:
    if isinstance(error, MigrationError):
        print_error(f"{prefix}: {error.message}", {"code": error.error_code})
    else:
        print_error(f"{prefix}: {error}")
    raise typer.Exit(1)


@migrate_app.command("status")
def status(
    ctx: typer.Context,
    output_format: Annotated[
        str,
        typer.Option("--format", "-o", help="Output format (plain, table, json)"),
    ] = "plain",
):
    """Show current migration status."""

    if output_format not in ("plain", "table", "json"):
        print_error(f"Unknown output format: {output_format}")
        raise typer.Exit(1)

    async def _status(runner: MigrationRunner):
        return await runner.get_migration_status()

    try:
        runner = get_runner(ctx)
        report = asyncio.run(_status(runner))
    except Exception as e:
        _fail(e, "Failed to get migration status")

    if output_format == "json":
        print_json(status_to_dict(report))
        return

    if output_format == "table":
        console.print()
        console.print("[bold]Migration Status[/bold]")
        console.print(f"  Current Version: [cyan]{report.current_version or '-'}[/cyan]")
        console.print(f"  Latest Version:  [cyan]{report.latest_version or '-'}[/cyan]")
        console.print(f"  Applied:         [green]{len(report.applied)}[/green]")
        console.print(f"  Pending:         [yellow]{len(report.pending)}[/yellow]")
        console.print()
        console.print(build_status_table(report))
    else:
        console.print()
        console.print("Migration Status:", highlight=False)
        console.print("=================", highlight=False)
        for line in format_status_lines(report):
            console.print(line, markup=False, highlight=False, soft_wrap=True)

    if report.orphaned:
        console.print()
        print_warning(
            f"{len(report.orphaned)} orphaned migration(s) need operator attention."
        )


@migrate_app.command("up")
def up(
    ctx: typer.Context,
    target: Annotated[
        Optional[str],
        typer.Option("--target", "-t", help="Target version to migrate to"),
    ] = None,
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run", "-n", help="Show what would be done without applying"),
    ] = False,
):
    """Apply pending migrations."""

    async def _up(runner: MigrationRunner):
        await runner.initialize()
        return await runner.run(target_version=target)

    async def _pending(runner: MigrationRunner):
        return await runner.get_pending_migrations(target_version=target)

    try:
        runner = get_runner(ctx)

        if dry_run:
            console.print("[yellow]DRY RUN - No changes will be made[/yellow]")
            pending = asyncio.run(_pending(runner))
            if not pending:
                console.print("[green]No pending migrations to apply.[/green]")
                return
            console.print(f"Would apply {len(pending)} migration(s):")
            for m in pending:
                console.print(f"  • [cyan]{escape(m.version)}[/cyan] - {escape(m.description)}")
            return

        records = asyncio.run(_up(runner))
    except MigrationFailedError as e:
        for version in e.applied:
            console.print(f"  • [cyan]{escape(version)}[/cyan] applied")
        print_error(f"Migration failed: {e.message}", {"version": e.version, "code": e.error_code})
        raise typer.Exit(1)
    except Exception as e:
        _fail(e, "Migration failed")

    if not records:
        console.print("[green]No pending migrations to apply.[/green]")
        return

    console.print(f"[green]Successfully applied {len(records)} migration(s):[/green]")
    for r in records:
        console.print(
            f"  • [cyan]{escape(r.version)}[/cyan] - {escape(r.description)} ({r.execution_time_ms}ms)"
        )


@migrate_app.command("down")
def down(
    ctx: typer.Context,
    force: Annotated[
        bool,
        typer.Option("--force", "-f", help="Skip confirmation prompt"),
    ] = False,
):
    """Rollback the last applied migration."""

    if not force:
        confirm = typer.confirm(
            "Are you sure you want to rollback the last migration? This may cause data loss."
        )
        if not confirm:
            console.print("[yellow]Rollback cancelled.[/yellow]")
            raise typer.Exit(0)

    async def _down(runner: MigrationRunner):
        await runner.initialize()
        return await runner.rollback_last_migration()

    try:
        runner = get_runner(ctx)
        record = asyncio.run(_down(runner))
    except Exception as e:
        _fail(e, "Rollback failed")

    print_success(
        f"Rolled back migration [cyan]{escape(record.version)}[/cyan] - {escape(record.description)}"
    )


@migrate_app.command("verify")
def verify(ctx: typer.Context):
    """Verify migration checksums to detect modified files."""

    async def _verify(runner: MigrationRunner):
        return await runner.verify_checksums()

    try:
        runner = get_runner(ctx)
        mismatches = asyncio.run(_verify(runner))
    except Exception as e:
        _fail(e, "Verification failed")

    if not mismatches:
        print_success("All migration checksums are valid.")
        return

    console.print("[red]WARNING: Modified migrations detected![/red]")
    console.print()

    table = Table(title="Checksum Mismatches", show_header=True)
    table.add_column("Version", style="red")
    table.add_column("Description", style="white")
    table.add_column("Status", style="red")

    for m in mismatches:
        table.add_row(escape(m["version"]), escape(m["description"]), "MODIFIED")

    console.print(table)
    console.print()
    console.print("[yellow]Modifying applied migrations can cause inconsistencies.[/yellow]")

    raise typer.Exit(1)


MIGRATION_TEMPLATE = '''"""
Migration {version}: {description}
Created: {created}
"""

from motor.motor_asyncio import AsyncIOMotorDatabase

description = "{description}"


async def up(db: AsyncIOMotorDatabase) -> None:
    """Apply migration. Must be safe to run again if it was interrupted."""
    raise NotImplementedError


async def down(db: AsyncIOMotorDatabase) -> None:
    """Rollback migration. Delete this function if the change cannot be reversed."""
    raise NotImplementedError
'''


@migrate_app.command("create")
def create(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Name for the migration (use_underscores)")],
    description: Annotated[
        Optional[str],
        typer.Option("--description", "-d", help="Description of the migration"),
    ] = None,
):
    """Create a new migration file."""

    if not re.fullmatch(r"[A-Za-z0-9_]+", name):
        print_error("Migration name must be alphanumeric with underscores only")
        raise typer.Exit(1)

    migrations_dir = get_migrations_dir(ctx)
    migrations_dir.mkdir(parents=True, exist_ok=True)

    versions = []
    for f in os.listdir(migrations_dir):
        prefix = f.split("_", 1)[0]
        if f.endswith(".py") and prefix.isdigit():
            versions.append(int(prefix))

    next_version = f"{max(versions, default=0) + 1:03d}"
    filepath = migrations_dir / f"{next_version}_{name}.py"
    desc = description or name.replace("_", " ").capitalize()

    filepath.write_text(
        MIGRATION_TEMPLATE.format(
            version=next_version,
            description=desc.replace('"', '\\"'),
            created=datetime.now().strftime("%Y-%m-%d"),
        )
    )

    print_success(f"Created migration file: {filepath}")
    print_info("Edit the file to implement your migration.")
