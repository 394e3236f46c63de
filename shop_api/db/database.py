# shop_api/db/database.py
from typing import Dict, Optional

import motor.motor_asyncio
from loguru import logger
from pymongo.errors import PyMongoError, ServerSelectionTimeoutError

from shop_api.core.config import MONGO_URI, DB_NAME, MONGO_TIMEOUT_MS, mask_mongo_uri
from shop_api.models.counter import SequenceCounter
from shop_api.models.item import Item
from shop_api.models.product import Product

# Models whose collections get indexes and a sequence counter
DOCUMENT_MODELS = (Product, Item)


class MongoStore:
    """Client, database and collection handles opened at startup."""

    def __init__(self, client, database):
        self.client = client
        self.database = database
        self.products = database[Product.Settings.name]
        self.items = database[Item.Settings.name]
        self.counters = database[SequenceCounter.Settings.name]

    def sequence_collections(self) -> Dict[str, object]:
        """Sequence key -> resource collection, for the allocator's max-id recovery scan."""
        return {model.Settings.sequence_key: self.database[model.Settings.name] for model in DOCUMENT_MODELS}

    async def ping(self) -> bool:
        await self.client.admin.command("ping")
        return True

    def close(self) -> None:
        self.client.close()


async def create_indexes(database) -> None:
    for model in DOCUMENT_MODELS:
        await database[model.Settings.name].create_indexes(model.Settings.indexes)
        logger.debug(f"Indexes ensured for collection '{model.Settings.name}'.")


async def init_db(client=None) -> MongoStore:
    """Connect to MongoDB, verify with a ping and create indexes."""
    logger.info(f"Connecting to MongoDB at {mask_mongo_uri(MONGO_URI)}...")
    if client is None:
        client = motor.motor_asyncio.AsyncIOMotorClient(
            MONGO_URI,
            serverSelectionTimeoutMS=MONGO_TIMEOUT_MS,
            connectTimeoutMS=MONGO_TIMEOUT_MS,
            maxPoolSize=10,
            retryWrites=True,
            w="majority",
            tz_aware=True,
        )

    try:
        await client.admin.command("ping")
        logger.info("MongoDB ping successful.")
        database = client[DB_NAME]
        logger.info(f"Using database: {DB_NAME}")
        await create_indexes(database)
    except ServerSelectionTimeoutError as e:
        logger.critical(f"Failed to connect to MongoDB: {e}")
        logger.critical(
            "Connection troubleshooting: check MONGO_URI, the server's IP allow list, "
            "the database credentials, and that the cluster is up."
        )
        client.close()
        raise
    except PyMongoError as e:
        logger.critical(f"MongoDB initialization failed: {e!r}")
        client.close()
        raise

    logger.info("Database initialization complete.")
    return MongoStore(client, database)


async def close_db(store: Optional[MongoStore]) -> None:
    if store is not None:
        store.close()
        logger.info("MongoDB connection closed.")
