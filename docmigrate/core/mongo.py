# docmigrate/core/mongo.py
"""
MongoDB client configuration.

This module centralizes MongoDB connection setup for the migration
runner and the CLI.
"""
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from docmigrate.core.config import settings


def create_client(uri: Optional[str] = None) -> AsyncIOMotorClient:
    """
    Create a MongoDB client.

    Args:
        uri: Connection string, defaults to the configured one.

    Returns:
        A timezone-aware Motor client.
    """
    return AsyncIOMotorClient(
        uri or settings.mongodb,
        tz_aware=True,
        serverSelectionTimeoutMS=settings.mongo_server_selection_timeout_ms,
    )


def get_database(
    client: Optional[AsyncIOMotorClient] = None,
    name: Optional[str] = None,
) -> AsyncIOMotorDatabase:
    """
    Get the configured MongoDB database.

    Returns:
        The MongoDB database instance.
    """
    client = client or create_client()
    return client[name or settings.mongodb_database]
