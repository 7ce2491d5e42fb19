"""
Formatting of migration status reports.

Pure functions over MigrationStatusReport; nothing here performs I/O.
"""

from datetime import datetime
from typing import Any, Optional

from rich.markup import escape
from rich.table import Table

from docmigrate.migrations.models import MigrationStatusReport

APPLIED_MARKER = "✓"
PENDING_MARKER = "○"
ORPHAN_MARKER = "!"


def _iso(ts: Optional[datetime]) -> Optional[str]:
    return ts.isoformat() if ts else None


def format_status_lines(report: MigrationStatusReport) -> list[str]:
    """
    One line per registry migration, then one per orphaned ledger entry.

    ``✓ 001: Destination indexes (2025-01-01T12:00:00+00:00)``
    ``○ 002: Quote indexes``
    """
    lines = []
    for m in report.migrations:
        marker = APPLIED_MARKER if m.applied else PENDING_MARKER
        applied_at = f" ({_iso(m.applied_at)})" if m.applied_at else ""
        lines.append(f"{marker} {m.version}: {m.description}{applied_at}")

    for r in report.orphaned:
        lines.append(
            f"{ORPHAN_MARKER} {r.version}: {r.description} ({_iso(r.applied_at)}) [orphaned]"
        )

    return lines


def status_to_dict(report: MigrationStatusReport) -> dict[str, Any]:
    """Convert a report to a JSON-serializable dictionary."""
    return {
        "total_migrations": len(report.migrations),
        "applied_count": len(report.applied),
        "pending_count": len(report.pending),
        "current_version": report.current_version,
        "latest_version": report.latest_version,
        "migrations": [
            {
                "version": m.version,
                "description": m.description,
                "applied": m.applied,
                "applied_at": _iso(m.applied_at),
                "reversible": m.reversible,
            }
            for m in report.migrations
        ],
        "orphaned": [
            {
                "version": r.version,
                "description": r.description,
                "applied_at": _iso(r.applied_at),
            }
            for r in report.orphaned
        ],
    }


def build_status_table(report: MigrationStatusReport) -> Table:
    """Build a rich table of the report."""
    table = Table(title="Migrations", show_header=True)
    table.add_column("", width=1)
    table.add_column("Version", style="cyan")
    table.add_column("Description", style="white")
    table.add_column("Applied At", style="green")

    for m in report.migrations:
        marker = (
            f"[green]{APPLIED_MARKER}[/green]" if m.applied else f"[yellow]{PENDING_MARKER}[/yellow]"
        )
        applied_at = m.applied_at.strftime("%Y-%m-%d %H:%M:%S") if m.applied_at else "-"
        table.add_row(marker, escape(m.version), escape(m.description), applied_at)

    for r in report.orphaned:
        table.add_row(
            f"[red]{ORPHAN_MARKER}[/red]",
            f"[red]{escape(r.version)}[/red]",
            f"{escape(r.description)} [red](orphaned)[/red]",
            r.applied_at.strftime("%Y-%m-%d %H:%M:%S"),
        )

    return table
