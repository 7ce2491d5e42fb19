"""
Migration 002: Indexes for the quotes collection.
"""

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import OperationFailure

description = "Quote reference, destination and status indexes"

INDEX_NOT_FOUND = 27


async def up(db: AsyncIOMotorDatabase) -> None:
    """Apply migration: create quote indexes."""
    quotes = db["quotes"]

    # Customers look quotes up by their reference
    await quotes.create_index(
        [("reference", ASCENDING)],
        name="idx_quotes_reference_unique",
        unique=True,
    )

    await quotes.create_index(
        [("destination_id", ASCENDING), ("created_at", DESCENDING)],
        name="idx_quotes_destination_created",
    )

    await quotes.create_index(
        [("status", ASCENDING), ("created_at", DESCENDING)],
        name="idx_quotes_status_created",
    )

    await quotes.create_index(
        [("customer.email", ASCENDING)],
        name="idx_quotes_customer_email",
    )


async def down(db: AsyncIOMotorDatabase) -> None:
    """Rollback migration: drop quote indexes."""
    quotes = db["quotes"]

    for name in (
        "idx_quotes_reference_unique",
        "idx_quotes_destination_created",
        "idx_quotes_status_created",
        "idx_quotes_customer_email",
    ):
        try:
            await quotes.drop_index(name)
        except OperationFailure as e:
            if e.code != INDEX_NOT_FOUND:
                raise
