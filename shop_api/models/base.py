# shop_api/models/base.py
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def round_price(value: float) -> float:
    return round(float(value), 2)


class CatalogRecord(BaseModel):
    """
    Fields shared by products and items as stored in MongoDB.

    ``id`` is the public integer identifier issued by the sequence allocator;
    MongoDB's own ``_id`` is ignored on load and never serialised.
    Aliases keep the camelCase names used on the wire and in the store.
    """
    model_config = ConfigDict(populate_by_name=True)

    id: int = Field(..., gt=0)
    name: str
    price: float = Field(..., ge=0, allow_inf_nan=False)
    category: str
    description: str = ""
    in_stock: bool = Field(default=True, alias="inStock")
    created_at: datetime = Field(default_factory=utcnow, alias="createdAt")
    updated_at: datetime = Field(default_factory=utcnow, alias="updatedAt")

    def to_document(self) -> dict:
        return self.model_dump(by_alias=True)
