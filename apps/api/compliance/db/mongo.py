"""MongoDB client construction."""

from pymongo import AsyncMongoClient
from pymongo.asynchronous.database import AsyncDatabase

from compliance.core.config import Settings, settings


def create_client(config: Settings = settings) -> AsyncMongoClient:
    """Build an async client; no connection is made until first use."""
    return AsyncMongoClient(
        config.MONGO_URI,
        tz_aware=True,
        serverSelectionTimeoutMS=config.MONGO_SERVER_SELECTION_TIMEOUT_MS,
    )


def get_database(client: AsyncMongoClient, config: Settings = settings) -> AsyncDatabase:
    return client[config.mongo_db_name]
