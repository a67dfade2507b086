# pocketpet/core/database.py
from typing import Optional

from pymongo import MongoClient
from pymongo.collection import Collection
from pymongo.errors import PyMongoError
from pocketpet.core.exceptions import StorageError
from pocketpet.core.settings import Settings, settings as default_settings
import structlog

log = structlog.get_logger(__name__)


class MongoDBConnection:
    client: Optional[MongoClient] = None
    collection: Optional[Collection] = None


db_connection = MongoDBConnection()


def connect_to_mongo(config: Settings = default_settings) -> Collection:
    log.info("Connecting to MongoDB...", database=config.MONGO_DATABASE_NAME)
    db_connection.client = MongoClient(config.MONGO_CONNECTION_URI)
    try:
        # The ping command is cheap and does not require auth.
        db_connection.client.admin.command("ping")
    except PyMongoError as e:
        log.error("Failed to connect to MongoDB", error=str(e))
        db_connection.client.close()
        db_connection.client = None
        raise StorageError(f"Could not connect to MongoDB: {e}") from e
    db_connection.collection = db_connection.client[config.MONGO_DATABASE_NAME][config.MONGO_COLLECTION_NAME]
    log.info("Successfully connected to MongoDB.")
    return db_connection.collection


def close_mongo_connection():
    if db_connection.client:
        log.info("Closing MongoDB connection...")
        db_connection.client.close()
        db_connection.client = None
        db_connection.collection = None
        log.info("MongoDB connection closed.")
