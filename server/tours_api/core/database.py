"""MongoDB client lifecycle and database access."""

import logging
from typing import AsyncGenerator

from pymongo import ASCENDING, AsyncMongoClient
from pymongo.asynchronous.database import AsyncDatabase

from .config import settings

logger = logging.getLogger(__name__)

# Owned by the application lifespan, never by request handling
_client: AsyncMongoClient | None = None


def get_client() -> AsyncMongoClient:
    """Return the process-wide client, creating it on first use."""
    global _client
    if _client is None:
        _client = AsyncMongoClient(
            settings.mongo_uri,
            tz_aware=False,
            appname="tours-api",
        )
    return _client


def get_database() -> AsyncDatabase:
    """Return the configured database handle."""
    return get_client()[settings.database_name]


async def get_db() -> AsyncGenerator[AsyncDatabase, None]:
    """
    Dependency function that yields the database handle.

    Yields:
        AsyncDatabase: Database handle backed by the shared connection pool
    """
    yield get_database()


async def ensure_indexes(db: AsyncDatabase) -> None:
    """Create the indexes the tours collection relies on."""
    tours = db[settings.tours_collection]
    await tours.create_index([("name", ASCENDING)], unique=True)


async def init_db() -> None:
    """Connect to MongoDB and prepare the tours collection."""
    db = get_database()
    await db.command("ping")
    logger.info("DB connection successful", extra={"database": settings.database_name})
    await ensure_indexes(db)


async def close_db() -> None:
    """Close database connections."""
    global _client
    if _client is not None:
        await _client.close()
        _client = None
