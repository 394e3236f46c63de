# shop_api/db/seed.py
"""Sample catalogue loaded into empty collections in development."""
from loguru import logger
from pymongo.errors import PyMongoError

from shop_api.core.sequence import SequenceAllocator
from shop_api.db.database import MongoStore
from shop_api.models.item import Item
from shop_api.models.product import Product

SAMPLE_PRODUCTS = [
    {"name": "Wireless Keyboard", "price": 89.99, "category": "Electronics",
     "description": "Mechanical wireless keyboard with RGB lighting", "inStock": True},
    {"name": "Gaming Mouse", "price": 49.99, "category": "Electronics",
     "description": "High-precision gaming mouse with programmable buttons", "inStock": True},
    {"name": "USB-C Hub", "price": 29.99, "category": "Accessories",
     "description": "7-in-1 USB-C hub with HDMI and Ethernet", "inStock": True},
    {"name": "Laptop Stand", "price": 39.99, "category": "Accessories",
     "description": "Adjustable aluminum laptop stand for ergonomic use", "inStock": False},
    {"name": 'Monitor 27"', "price": 249.99, "category": "Electronics",
     "description": "27-inch 4K UHD monitor with IPS panel", "inStock": True},
]

SAMPLE_ITEMS = [
    {"name": "Notebook", "price": 5.99, "category": "Stationery",
     "description": "A simple notebook for notes", "inStock": True},
    {"name": "Coffee Mug", "price": 12.50, "category": "Kitchen",
     "description": "Ceramic coffee mug", "inStock": True},
    {"name": "Desk Lamp", "price": 29.99, "category": "Electronics",
     "description": "LED desk lamp with adjustable brightness", "inStock": False},
    {"name": "Wireless Mouse", "price": 24.99, "category": "Electronics",
     "description": "Bluetooth wireless mouse with long battery life", "inStock": True},
]


async def _seed_collection(collection, model, samples, sequences: SequenceAllocator) -> int:
    count = await collection.count_documents({})
    if count:
        logger.info(f"Found {count} existing documents in '{model.Settings.name}'. Skipping sample data.")
        return 0

    logger.info(f"No documents in '{model.Settings.name}'. Adding sample data...")
    records = [model(id=index, **sample).to_document() for index, sample in enumerate(samples, start=1)]
    # Counter first, so the next organic id continues after the last seeded one
    await sequences.set_sequence(model.Settings.sequence_key, len(records))
    result = await collection.insert_many(records)
    inserted = len(result.inserted_ids)
    logger.info(f"{inserted} sample documents added to '{model.Settings.name}'.")
    return inserted


async def seed_sample_data(store: MongoStore, sequences: SequenceAllocator) -> None:
    try:
        await _seed_collection(store.products, Product, SAMPLE_PRODUCTS, sequences)
        await _seed_collection(store.items, Item, SAMPLE_ITEMS, sequences)
    except PyMongoError as e:
        # sample data is a convenience; the API still serves without it
        logger.error(f"Error adding sample data: {e!r}")
