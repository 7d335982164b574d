"""
Document store connection setup.

Creates the Motor client for MongoDB. The client is owned by the service
container built in the application lifespan; nothing here is a module level
instance.
"""

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from server.src.core.config import Settings


def create_mongo_client(settings: Settings) -> AsyncIOMotorClient:
    """Create a Motor client for the configured MongoDB deployment."""
    return AsyncIOMotorClient(settings.MONGODB_URL, tz_aware=True)


def get_database(client: AsyncIOMotorClient, settings: Settings) -> AsyncIOMotorDatabase:
    """Return the configured database handle."""
    return client[settings.MONGODB_DATABASE]
