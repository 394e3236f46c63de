# shop_api/models/counter.py
from pydantic import BaseModel, ConfigDict, Field

from shop_api.core.config import COUNTERS_COLLECTION


class SequenceCounter(BaseModel):
    """Last value handed out for a named sequence. ``_id`` is the sequence key."""
    model_config = ConfigDict(populate_by_name=True)

    key: str = Field(..., alias="_id")
    sequence_value: int = Field(..., ge=0)

    class Settings:
        name = COUNTERS_COLLECTION
