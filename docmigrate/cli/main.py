"""CLI entry point for the migration runner."""

import sys
from typing import Annotated, Optional

import click
import typer

from docmigrate import __version__
from docmigrate.cli.commands.migrate import migrate_app
from docmigrate.cli.output import console, error_console

app = migrate_app


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"migrate version {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-v",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit",
        ),
    ] = False,
    mongodb: Annotated[
        Optional[str],
        typer.Option("--mongodb", envvar="MONGODB", help="MongoDB connection string"),
    ] = None,
    database: Annotated[
        Optional[str],
        typer.Option("--database", "-d", envvar="MONGODB_DATABASE", help="Database name"),
    ] = None,
    migrations_dir: Annotated[
        Optional[str],
        typer.Option("--migrations-dir", envvar="MIGRATIONS_DIR", help="Migration files directory"),
    ] = None,
) -> None:
    """
    Database migrations for the travel content store.

    [bold]Quick Start:[/bold]

        # Show which migrations are applied
        migrate status

        # Apply pending migrations
        migrate up

        # Roll back the last applied migration
        migrate down

    [bold]Environment Variables:[/bold]

        MONGODB           - MongoDB connection string
        MONGODB_DATABASE  - Database name
        MIGRATIONS_DIR    - Migration files directory
    """
    ctx.obj = {
        "mongodb": mongodb,
        "database": database,
        "migrations_dir": migrations_dir,
    }


def main(argv: Optional[list[str]] = None) -> None:
    """
    Run the CLI.

    Usage errors (unknown commands or options) print usage and exit 1.
    """
    command = typer.main.get_command(app)
    try:
        exit_code = command.main(args=argv, prog_name="migrate", standalone_mode=False)
    except click.UsageError as e:
        if e.ctx is not None:
            error_console.print(e.ctx.get_usage(), markup=False, highlight=False)
        error_console.print(f"Error: {e.format_message()}", markup=False, highlight=False)
        sys.exit(1)
    except click.Abort:
        error_console.print("Aborted.", markup=False)
        sys.exit(1)
    except click.ClickException as e:
        e.show()
        sys.exit(1)

    sys.exit(exit_code if isinstance(exit_code, int) else 0)


if __name__ == "__main__":
    main()
