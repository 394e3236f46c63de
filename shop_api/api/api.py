# shop_api/api/api.py
from fastapi import APIRouter

from shop_api.api.endpoints import items, products

api_router = APIRouter(prefix="/api")

api_router.include_router(products.router, prefix="/products")
api_router.include_router(items.router, prefix="/items")
