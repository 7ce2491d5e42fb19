"""
Migration 001: Indexes for the destinations collection.

Creates:
- unique index on slug (destination pages are routed by slug)
- index on status + region for the admin listing
- index on updated_at for related-destination queries
"""

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import OperationFailure

description = "Destination slug, status and region indexes"

INDEX_NOT_FOUND = 27


async def up(db: AsyncIOMotorDatabase) -> None:
    """Apply migration: create destination indexes."""
    destinations = db["destinations"]

    await destinations.create_index(
        [("slug", ASCENDING)],
        name="idx_destinations_slug_unique",
        unique=True,
    )

    await destinations.create_index(
        [("status", ASCENDING), ("region", ASCENDING)],
        name="idx_destinations_status_region",
    )

    await destinations.create_index(
        [("updated_at", DESCENDING)],
        name="idx_destinations_updated_at",
    )


async def down(db: AsyncIOMotorDatabase) -> None:
    """Rollback migration: drop destination indexes."""
    destinations = db["destinations"]

    for name in (
        "idx_destinations_slug_unique",
        "idx_destinations_status_region",
        "idx_destinations_updated_at",
    ):
        try:
            await destinations.drop_index(name)
        except OperationFailure as e:
            if e.code != INDEX_NOT_FOUND:
                raise
