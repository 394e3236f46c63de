# shop_api/models/item.py
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pymongo import IndexModel, ASCENDING

from .base import CatalogRecord

DEFAULT_ITEM_CATEGORY = "General"


def _name_rule(value: str, min_length: int = 1) -> str:
    value = value.strip()
    if not value:
        raise ValueError("Name is required")
    if len(value) < min_length:
        raise ValueError(f"Name must be at least {min_length} characters long")
    return value


class Item(CatalogRecord):
    """An item document in the ``items`` collection."""

    class Settings:
        name = "items"
        sequence_key = "itemId"
        indexes = [
            IndexModel([("id", ASCENDING)], name="item_id_unique_index", unique=True),
            IndexModel([("name", ASCENDING)], name="item_name_index"),
        ]

    # --- Request schemas ---
    class Create(BaseModel):
        model_config = ConfigDict(populate_by_name=True)

        name: str = Field(..., max_length=200)
        price: float = Field(..., ge=0, strict=True, allow_inf_nan=False)
        category: str = Field(..., max_length=100)
        description: Optional[str] = None
        in_stock: Optional[bool] = Field(None, alias="inStock")

        @field_validator("name")
        @classmethod
        def _name(cls, v: str) -> str:
            return _name_rule(v)

        @field_validator("category")
        @classmethod
        def _category(cls, v: str) -> str:
            v = v.strip()
            if not v:
                raise ValueError("Category is required")
            return v

    class Replace(BaseModel):
        """PUT body: every field is rewritten, absent ones fall back to defaults."""
        model_config = ConfigDict(populate_by_name=True)

        name: str = Field(..., max_length=200)
        price: Optional[float] = Field(None, ge=0, strict=True, allow_inf_nan=False)
        category: Optional[str] = Field(None, max_length=100)
        description: Optional[str] = None
        in_stock: Optional[bool] = Field(None, alias="inStock")

        @field_validator("name")
        @classmethod
        def _name(cls, v: str) -> str:
            return _name_rule(v, min_length=2)

        @field_validator("category")
        @classmethod
        def _category(cls, v: Optional[str]) -> str:
            v = (v or "").strip()
            return v or DEFAULT_ITEM_CATEGORY

    class Patch(BaseModel):
        """PATCH body: only the fields sent are changed."""
        model_config = ConfigDict(populate_by_name=True)

        name: Optional[str] = Field(None, max_length=200)
        price: Optional[float] = Field(None, ge=0, strict=True, allow_inf_nan=False)
        category: Optional[str] = Field(None, max_length=100)
        description: Optional[str] = None
        in_stock: Optional[bool] = Field(None, alias="inStock")

        @field_validator("name")
        @classmethod
        def _name(cls, v: Optional[str]) -> Optional[str]:
            return None if v is None else _name_rule(v, min_length=2)

        @field_validator("category")
        @classmethod
        def _category(cls, v: Optional[str]) -> Optional[str]:
            if v is None:
                return None
            v = v.strip()
            if not v:
                raise ValueError("Category cannot be empty")
            return v
