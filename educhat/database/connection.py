import logging
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from educhat.config import Config


logger = logging.getLogger(__name__)

_client: Optional[AsyncIOMotorClient] = None
_db: Optional[AsyncIOMotorDatabase] = None


async def connect_to_mongo(uri: str | None = None, db_name: str | None = None) -> AsyncIOMotorDatabase:
    global _client, _db
    _client = AsyncIOMotorClient(uri or Config.MONGODB_URI)
    _db = _client[db_name or Config.MONGODB_DB]
    logger.info("Connected to MongoDB database %s", _db.name)
    return _db


async def close_mongo_connection() -> None:
    global _client, _db
    if _client is not None:
        _client.close()
        logger.info("MongoDB connection closed")
    _client = None
    _db = None


def get_database() -> AsyncIOMotorDatabase:
    if _db is None:
        raise RuntimeError("MongoDB is not connected")
    return _db


async def mongo_db_dependency() -> AsyncIOMotorDatabase:
    return get_database()
