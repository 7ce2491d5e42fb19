"""
Migration 003: Indexes for the enquiries collection.

Enquiries are listed newest first per status in the admin inbox and are
matched to existing quotes by email.
"""

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import OperationFailure

description = "Enquiry status and email indexes"

INDEX_NOT_FOUND = 27


async def up(db: AsyncIOMotorDatabase) -> None:
    enquiries = db["enquiries"]

    await enquiries.create_index(
        [("status", ASCENDING), ("created_at", DESCENDING)],
        name="idx_enquiries_status_created",
    )

    await enquiries.create_index(
        [("email", ASCENDING)],
        name="idx_enquiries_email",
    )

    await enquiries.create_index(
        [("destination_slug", ASCENDING)],
        name="idx_enquiries_destination_slug",
        sparse=True,
    )


async def down(db: AsyncIOMotorDatabase) -> None:
    enquiries = db["enquiries"]

    for name in (
        "idx_enquiries_status_created",
        "idx_enquiries_email",
        "idx_enquiries_destination_slug",
    ):
        try:
            await enquiries.drop_index(name)
        except OperationFailure as e:
            if e.code != INDEX_NOT_FOUND:
                raise
