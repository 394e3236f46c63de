# shop_api/api/deps.py
import re
from typing import Any, Dict, Optional

from fastapi import Request, status

from shop_api.core.errors import api_error
from shop_api.core.sequence import SequenceAllocator
from shop_api.db.database import MongoStore

_POSITIVE_INT = re.compile(r"^[0-9]{1,19}$")
# largest integer BSON can store
MAX_RESOURCE_ID = 2**63 - 1


def get_store(request: Request) -> MongoStore:
    """Database handles, or 503 while startup has not finished connecting."""
    store: Optional[MongoStore] = getattr(request.app.state, "store", None)
    if store is None:
        raise api_error(
            status.HTTP_503_SERVICE_UNAVAILABLE,
            "Service Unavailable",
            "Database is initializing. Please try again in a moment.",
        )
    return store


def get_sequences(request: Request) -> SequenceAllocator:
    return request.app.state.sequences


def parse_resource_id(raw: str, label: str) -> int:
    """Path ids must be positive integers written in plain digits that fit in 64 bits."""
    raw = raw.strip()
    if not _POSITIVE_INT.match(raw) or not 0 < int(raw) <= MAX_RESOURCE_ID:
        raise api_error(
            status.HTTP_400_BAD_REQUEST,
            f"Invalid {label} ID",
            "ID must be a positive integer",
        )
    return int(raw)


def build_catalog_filter(
    category: Optional[str] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    in_stock: Optional[str] = None,
) -> Dict[str, Any]:
    """Mongo filter for the list endpoints; category is a case-insensitive substring match."""
    query: Dict[str, Any] = {}
    if category:
        query["category"] = {"$regex": re.escape(category), "$options": "i"}
    if min_price is not None or max_price is not None:
        query["price"] = {}
        if min_price is not None:
            query["price"]["$gte"] = min_price
        if max_price is not None:
            query["price"]["$lte"] = max_price
    if in_stock is not None:
        query["inStock"] = in_stock.strip().lower() == "true"
    return query


def exact_name_filter(name: str) -> Dict[str, Any]:
    """Case-insensitive whole-name match."""
    return {"name": {"$regex": f"^{re.escape(name)}$", "$options": "i"}}
