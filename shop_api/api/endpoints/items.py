# shop_api/api/endpoints/items.py
from typing import Optional

from fastapi import APIRouter, Body, Depends, Path, Query, Request, status
from loguru import logger
from pymongo import ASCENDING
from pymongo.errors import DuplicateKeyError, PyMongoError

from shop_api.api.deps import (
    build_catalog_filter,
    exact_name_filter,
    get_sequences,
    get_store,
    parse_resource_id,
)
from shop_api.core.errors import api_error
from shop_api.core.rate_limiter import limiter, WRITE_LIMIT
from shop_api.core.security import require_api_key
from shop_api.core.sequence import SequenceAllocator
from shop_api.db.database import MongoStore
from shop_api.models.base import round_price, utcnow
from shop_api.models.item import DEFAULT_ITEM_CATEGORY, Item

router = APIRouter(tags=["Items"])

DEFAULT_LIST_LIMIT = 50
HIDE_MONGO_ID = {"_id": 0}


def _not_found(item_id: int):
    return api_error(status.HTTP_404_NOT_FOUND, "Item not found", f"No item found with ID: {item_id}")


def _server_error(message: str):
    return api_error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error", message)


async def get_item_or_404(store: MongoStore, item_id: int) -> Item:
    try:
        doc = await store.items.find_one({"id": item_id}, projection=HIDE_MONGO_ID)
    except PyMongoError as e:
        logger.error(f"Error finding item {item_id}: {e!r}")
        raise _server_error("Failed to retrieve item") from e
    if not doc:
        raise _not_found(item_id)
    return Item.model_validate(doc)


async def _apply_update(store: MongoStore, item_id: int, fields: dict, success_message: str):
    try:
        result = await store.items.update_one({"id": item_id}, {"$set": fields})
        if result.modified_count == 0:
            return {"success": True, "message": "No changes made to the item", "itemId": item_id}
        updated = await store.items.find_one({"id": item_id}, projection=HIDE_MONGO_ID)
    except PyMongoError as e:
        logger.error(f"Error updating item {item_id}: {e!r}")
        raise _server_error("Failed to update item") from e
    if not updated:
        raise _not_found(item_id)
    logger.info(f"Item {item_id} updated: {sorted(fields)}")
    return {"success": True, "message": success_message, "item": Item.model_validate(updated)}


# --- GET /items ---
@router.get("", summary="List items")
async def read_items(
    category: Optional[str] = Query(None),
    min_price: Optional[float] = Query(None, alias="minPrice", allow_inf_nan=False),
    max_price: Optional[float] = Query(None, alias="maxPrice", allow_inf_nan=False),
    in_stock: Optional[str] = Query(None, alias="inStock"),
    limit: int = Query(DEFAULT_LIST_LIMIT, ge=1, le=1000),
    store: MongoStore = Depends(get_store),
):
    query = build_catalog_filter(category, min_price, max_price, in_stock)
    try:
        items = await store.items.find(query, HIDE_MONGO_ID).sort("id", ASCENDING).limit(limit).to_list(length=limit)
    except PyMongoError as e:
        logger.error(f"Error fetching items: {e!r}")
        raise _server_error("Failed to retrieve items") from e
    return {"success": True, "count": len(items), "items": items}


# --- GET /items/{item_id} ---
@router.get("/{item_id}", summary="Get an item by its integer ID")
async def read_item(
    item_id: str = Path(..., description="Positive integer item ID"),
    store: MongoStore = Depends(get_store),
):
    item = await get_item_or_404(store, parse_resource_id(item_id, "item"))
    return {"success": True, "item": item}


# --- POST /items ---
@router.post("", status_code=status.HTTP_201_CREATED, dependencies=[Depends(require_api_key)])
@limiter.limit(WRITE_LIMIT)
async def create_item(
    request: Request,
    item_in: Item.Create = Body(...),
    store: MongoStore = Depends(get_store),
    sequences: SequenceAllocator = Depends(get_sequences),
):
    """Create an item. Names are unique case-insensitively."""
    next_id = await sequences.allocate(Item.Settings.sequence_key)

    now = utcnow()
    item = Item(
        id=next_id,
        name=item_in.name,
        price=round_price(item_in.price),
        category=item_in.category,
        description=(item_in.description or "").strip(),
        in_stock=True if item_in.in_stock is None else item_in.in_stock,
        created_at=now,
        updated_at=now,
    )

    try:
        if await store.items.find_one(exact_name_filter(item.name), projection={"_id": 0, "id": 1}):
            raise api_error(
                status.HTTP_409_CONFLICT,
                "Duplicate item",
                f'An item with name "{item.name}" already exists',
            )
        await store.items.insert_one(item.to_document())
    except DuplicateKeyError as e:
        logger.error(f"Duplicate item ID {next_id} on insert: {e}")
        raise api_error(status.HTTP_409_CONFLICT, "Duplicate ID", "Item with this ID already exists") from e
    except PyMongoError as e:
        logger.error(f"Error creating item: {e!r}")
        raise _server_error("Failed to create item") from e

    logger.info(f"Item '{item.name}' created with ID {item.id}.")
    return {"success": True, "message": "Item created successfully", "item": item}


# --- PUT /items/{item_id} --- (full replacement, createdAt kept)
@router.put("/{item_id}", dependencies=[Depends(require_api_key)])
@limiter.limit(WRITE_LIMIT)
async def replace_item(
    request: Request,
    item_id: str = Path(...),
    item_in: Item.Replace = Body(...),
    store: MongoStore = Depends(get_store),
):
    iid = parse_resource_id(item_id, "item")
    existing = await get_item_or_404(store, iid)

    fields = {
        "name": item_in.name,
        "description": (item_in.description or "").strip(),
        "category": item_in.category or DEFAULT_ITEM_CATEGORY,
        "inStock": True if item_in.in_stock is None else item_in.in_stock,
        "createdAt": existing.created_at,
        "updatedAt": utcnow(),
    }
    if item_in.price is not None:
        fields["price"] = round_price(item_in.price)

    return await _apply_update(store, iid, fields, "Item updated successfully")


# --- PATCH /items/{item_id} --- (partial update)
@router.patch("/{item_id}", dependencies=[Depends(require_api_key)])
@limiter.limit(WRITE_LIMIT)
async def patch_item(
    request: Request,
    item_id: str = Path(...),
    item_in: Item.Patch = Body(...),
    store: MongoStore = Depends(get_store),
):
    iid = parse_resource_id(item_id, "item")
    await get_item_or_404(store, iid)

    fields = item_in.model_dump(exclude_unset=True, exclude_none=True, by_alias=True)
    if not fields:
        raise api_error(status.HTTP_400_BAD_REQUEST, "No valid updates", "No valid fields provided for update")
    if "price" in fields:
        fields["price"] = round_price(fields["price"])
    if "description" in fields:
        fields["description"] = fields["description"].strip()
    fields["updatedAt"] = utcnow()

    return await _apply_update(store, iid, fields, "Item partially updated successfully")


# --- DELETE /items/{item_id} ---
@router.delete("/{item_id}", dependencies=[Depends(require_api_key)])
@limiter.limit(WRITE_LIMIT)
async def delete_item(
    request: Request,
    item_id: str = Path(...),
    store: MongoStore = Depends(get_store),
):
    iid = parse_resource_id(item_id, "item")
    await get_item_or_404(store, iid)

    try:
        result = await store.items.delete_one({"id": iid})
    except PyMongoError as e:
        logger.error(f"Error deleting item {iid}: {e!r}")
        raise _server_error("Failed to delete item") from e

    if result.deleted_count == 0:
        raise api_error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Deletion failed", "Failed to delete the item")

    logger.warning(f"Item {iid} deleted.")
    return {"success": True, "message": "Item deleted successfully", "itemId": iid}
