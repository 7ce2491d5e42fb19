"""
Migration 004: Backfill the published flag on destinations.

Destinations imported before the flag existed were all live, so they are
marked published. There is no down: once editors start unpublishing
destinations the backfilled values can no longer be told apart.
"""

from motor.motor_asyncio import AsyncIOMotorDatabase

description = "Backfill published flag on existing destinations"


async def up(db: AsyncIOMotorDatabase) -> None:
    """Apply migration: mark destinations without the flag as published."""
    await db["destinations"].update_many(
        {"published": {"$exists": False}},
        {"$set": {"published": True}},
    )
