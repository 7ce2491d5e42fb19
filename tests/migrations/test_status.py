"""Tests for status report formatting."""

import json
from datetime import datetime, timezone

from rich.console import Console

from docmigrate.migrations.models import (
    AppliedRecord,
    MigrationStatusEntry,
    MigrationStatusReport,
)
from docmigrate.migrations.status import build_status_table, format_status_lines, status_to_dict

APPLIED_AT = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def make_report():
    return MigrationStatusReport(
        migrations=[
            MigrationStatusEntry("001", "Destination indexes", True, APPLIED_AT),
            MigrationStatusEntry("002", "Quote indexes", False, reversible=False),
        ],
        orphaned=[AppliedRecord("000", "Legacy seed", APPLIED_AT)],
    )


class TestStatusFormatting:
    """Tests for the status reporter."""

    def test_format_status_lines(self):
        lines = format_status_lines(make_report())

        assert lines == [
            "✓ 001: Destination indexes (2025-01-01T12:00:00+00:00)",
            "○ 002: Quote indexes",
            "! 000: Legacy seed (2025-01-01T12:00:00+00:00) [orphaned]",
        ]

    def test_format_empty_report(self):
        assert format_status_lines(MigrationStatusReport()) == []

    def test_status_to_dict_is_json_serializable(self):
        data = status_to_dict(make_report())

        assert json.loads(json.dumps(data)) == data
        assert data["applied_count"] == 1
        assert data["pending_count"] == 1
        assert data["current_version"] == "001"
        assert data["latest_version"] == "002"
        assert data["migrations"][1] == {
            "version": "002",
            "description": "Quote indexes",
            "applied": False,
            "applied_at": None,
            "reversible": False,
        }
        assert data["orphaned"][0]["version"] == "000"

    def test_build_status_table(self):
        table = build_status_table(make_report())

        assert table.row_count == 3

        console = Console(record=True, width=120)
        console.print(table)
        text = console.export_text()
        assert "Destination indexes" in text
        assert "orphaned" in text
        assert "2025-01-01 12:00:00" in text

    def test_report_properties(self):
        report = make_report()

        assert [m.version for m in report.applied] == ["001"]
        assert [m.version for m in report.pending] == ["002"]
