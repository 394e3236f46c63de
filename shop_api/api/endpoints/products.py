# shop_api/api/endpoints/products.py
import math
from typing import Optional

from fastapi import APIRouter, Body, Depends, Path, Query, Request, status
from loguru import logger
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import DuplicateKeyError, PyMongoError

from shop_api.api.deps import build_catalog_filter, get_sequences, get_store, parse_resource_id
from shop_api.core.errors import api_error
from shop_api.core.rate_limiter import limiter, WRITE_LIMIT
from shop_api.core.security import require_api_key
from shop_api.core.sequence import SequenceAllocator
from shop_api.db.database import MongoStore
from shop_api.models.base import round_price, utcnow
from shop_api.models.product import Product

router = APIRouter(tags=["Products"])

DEFAULT_PAGE_SIZE = 10
HIDE_MONGO_ID = {"_id": 0}


def _not_found(product_id: int):
    return api_error(status.HTTP_404_NOT_FOUND, "Product not found", f"No product found with ID: {product_id}")


def _server_error(message: str):
    return api_error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error", message)


async def get_product_or_404(store: MongoStore, product_id: int) -> Product:
    try:
        doc = await store.products.find_one({"id": product_id}, projection=HIDE_MONGO_ID)
    except PyMongoError as e:
        logger.error(f"Error finding product {product_id}: {e!r}")
        raise _server_error("Failed to retrieve product") from e
    if not doc:
        logger.info(f"Product lookup failed for ID {product_id}.")
        raise _not_found(product_id)
    return Product.model_validate(doc)


# --- GET /products --- (filter, sort, project, paginate)
@router.get("", summary="List products")
async def read_products(
    category: Optional[str] = Query(None),
    min_price: Optional[float] = Query(None, alias="minPrice", allow_inf_nan=False),
    max_price: Optional[float] = Query(None, alias="maxPrice", allow_inf_nan=False),
    in_stock: Optional[str] = Query(None, alias="inStock"),
    sort_by: str = Query("id", alias="sortBy"),
    sort_order: str = Query("asc", alias="sortOrder"),
    fields: Optional[str] = Query(None, description="Comma-separated list of fields to return"),
    limit: Optional[int] = Query(None, ge=1, le=1000),
    page: int = Query(1, ge=1),
    store: MongoStore = Depends(get_store),
):
    query = build_catalog_filter(category, min_price, max_price, in_stock)

    projection = dict(HIDE_MONGO_ID)
    if fields:
        for field in fields.split(","):
            field = field.strip()
            if field and field != "_id":
                projection[field] = 1

    direction = DESCENDING if sort_order.lower() == "desc" else ASCENDING
    page_size = limit or DEFAULT_PAGE_SIZE
    skip = (page - 1) * page_size

    try:
        cursor = store.products.find(query, projection).sort(sort_by, direction).skip(skip).limit(page_size)
        products = await cursor.to_list(length=page_size)
        total_count = await store.products.count_documents(query)
    except PyMongoError as e:
        logger.error(f"Error fetching products: {e!r}")
        raise _server_error("Failed to retrieve products") from e

    return {
        "success": True,
        "count": len(products),
        "total": total_count,
        "page": page,
        "totalPages": math.ceil(total_count / page_size),
        "products": products,
        "filters": {
            "category": category,
            "minPrice": min_price,
            "maxPrice": max_price,
            "inStock": in_stock,
        },
    }


# --- GET /products/category/{category} ---
@router.get("/category/{category}", summary="List products in a category")
async def read_products_by_category(
    category: str = Path(...),
    min_price: Optional[float] = Query(None, alias="minPrice", allow_inf_nan=False),
    max_price: Optional[float] = Query(None, alias="maxPrice", allow_inf_nan=False),
    in_stock: Optional[str] = Query(None, alias="inStock"),
    store: MongoStore = Depends(get_store),
):
    query = build_catalog_filter(category, min_price, max_price, in_stock)
    try:
        products = await store.products.find(query, HIDE_MONGO_ID).sort("id", ASCENDING).to_list(length=None)
    except PyMongoError as e:
        logger.error(f"Error searching products by category '{category}': {e!r}")
        raise _server_error("Failed to retrieve products") from e

    return {"success": True, "count": len(products), "category": category, "products": products}


# --- GET /products/{product_id} ---
@router.get("/{product_id}", summary="Get a product by its integer ID")
async def read_product(
    product_id: str = Path(..., description="Positive integer product ID"),
    store: MongoStore = Depends(get_store),
):
    product = await get_product_or_404(store, parse_resource_id(product_id, "product"))
    return {"success": True, "product": product}


# --- POST /products ---
@router.post("", status_code=status.HTTP_201_CREATED, dependencies=[Depends(require_api_key)])
@limiter.limit(WRITE_LIMIT)
async def create_product(
    request: Request,
    product_in: Product.Create = Body(...),
    store: MongoStore = Depends(get_store),
    sequences: SequenceAllocator = Depends(get_sequences),
):
    """Create a product. The public ID is allocated before the duplicate-name check."""
    next_id = await sequences.allocate(Product.Settings.sequence_key)

    now = utcnow()
    product = Product(
        id=next_id,
        name=product_in.name,
        price=round_price(product_in.price),
        category=product_in.category,
        description=(product_in.description or "").strip(),
        in_stock=True if product_in.in_stock is None else product_in.in_stock,
        created_at=now,
        updated_at=now,
    )

    try:
        existing = await store.products.find_one({"name": product.name}, projection={"_id": 0, "id": 1})
        if existing:
            raise api_error(
                status.HTTP_409_CONFLICT,
                "Product already exists",
                f'A product with name "{product.name}" already exists',
                productId=existing.get("id"),
            )
        await store.products.insert_one(product.to_document())
    except DuplicateKeyError as e:
        logger.error(f"Duplicate product ID {next_id} on insert: {e}")
        raise api_error(status.HTTP_409_CONFLICT, "Duplicate ID", "Product with this ID already exists") from e
    except PyMongoError as e:
        logger.error(f"Error creating product: {e!r}")
        raise _server_error("Failed to create product") from e

    logger.info(f"Product '{product.name}' created with ID {product.id}.")
    return {"success": True, "message": "Product created successfully", "product": product}


# --- PUT /products/{product_id} --- (partial update)
@router.put("/{product_id}", dependencies=[Depends(require_api_key)])
@limiter.limit(WRITE_LIMIT)
async def update_product(
    request: Request,
    product_id: str = Path(...),
    product_in: Product.Update = Body(...),
    store: MongoStore = Depends(get_store),
):
    """Update only the fields present in the body."""
    pid = parse_resource_id(product_id, "product")
    await get_product_or_404(store, pid)

    update_data = product_in.model_dump(exclude_unset=True, exclude_none=True, by_alias=True)
    if "price" in update_data:
        update_data["price"] = round_price(update_data["price"])
    if "description" in update_data:
        update_data["description"] = update_data["description"].strip()
    update_data["updatedAt"] = utcnow()

    try:
        result = await store.products.update_one({"id": pid}, {"$set": update_data})
        if result.modified_count == 0:
            return {"success": True, "message": "No changes made to product", "productId": pid}
        updated = await store.products.find_one({"id": pid}, projection=HIDE_MONGO_ID)
    except PyMongoError as e:
        logger.error(f"Error updating product {pid}: {e!r}")
        raise _server_error("Failed to update product") from e

    if not updated:
        raise _not_found(pid)
    logger.info(f"Product {pid} updated: {sorted(update_data)}")
    return {"success": True, "message": "Product updated successfully", "product": Product.model_validate(updated)}


# --- DELETE /products/{product_id} ---
@router.delete("/{product_id}", dependencies=[Depends(require_api_key)])
@limiter.limit(WRITE_LIMIT)
async def delete_product(
    request: Request,
    product_id: str = Path(...),
    store: MongoStore = Depends(get_store),
):
    pid = parse_resource_id(product_id, "product")
    await get_product_or_404(store, pid)

    try:
        result = await store.products.delete_one({"id": pid})
    except PyMongoError as e:
        logger.error(f"Error deleting product {pid}: {e!r}")
        raise _server_error("Failed to delete product") from e

    logger.warning(f"Product {pid} deleted.")
    return {
        "success": True,
        "message": "Product deleted successfully",
        "productId": pid,
        "deletedCount": result.deleted_count,
    }
