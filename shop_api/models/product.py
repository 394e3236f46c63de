# shop_api/models/product.py
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pymongo import IndexModel, ASCENDING

from .base import CatalogRecord


def _required_text(value: str, label: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError(f"{label} is required")
    return value


class Product(CatalogRecord):
    """A product document in the ``products`` collection."""

    price: float = Field(..., gt=0, allow_inf_nan=False)

    class Settings:
        name = "products"
        sequence_key = "productId"
        indexes = [
            IndexModel([("id", ASCENDING)], name="product_id_unique_index", unique=True),
            IndexModel([("name", ASCENDING)], name="product_name_index"),
        ]

    # --- Request schemas ---
    class Create(BaseModel):
        model_config = ConfigDict(populate_by_name=True)

        name: str = Field(..., max_length=200)
        # strict: "12.5" as a string is rejected, ints are accepted; Infinity and NaN are rejected
        price: float = Field(..., gt=0, strict=True, allow_inf_nan=False)
        category: str = Field(..., max_length=100)
        description: Optional[str] = None
        in_stock: Optional[bool] = Field(None, alias="inStock")

        @field_validator("name")
        @classmethod
        def _name(cls, v: str) -> str:
            return _required_text(v, "Name")

        @field_validator("category")
        @classmethod
        def _category(cls, v: str) -> str:
            return _required_text(v, "Category")

    class Update(BaseModel):
        """Partial update; only the fields sent are changed."""
        model_config = ConfigDict(populate_by_name=True)

        name: Optional[str] = Field(None, max_length=200)
        price: Optional[float] = Field(None, gt=0, strict=True, allow_inf_nan=False)
        category: Optional[str] = Field(None, max_length=100)
        description: Optional[str] = None
        in_stock: Optional[bool] = Field(None, alias="inStock")

        @field_validator("name")
        @classmethod
        def _name(cls, v: Optional[str]) -> Optional[str]:
            return None if v is None else _required_text(v, "Name")

        @field_validator("category")
        @classmethod
        def _category(cls, v: Optional[str]) -> Optional[str]:
            return None if v is None else _required_text(v, "Category")
