"""Item request/response schemas - catalog API contract."""

from datetime import datetime

from pydantic import BaseModel, Field

from studyswap.db.models.item import ItemCategory, ItemCondition, ItemStatus


class ItemBase(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    category: ItemCategory = ItemCategory.BOOKS
    condition: ItemCondition = ItemCondition.GOOD
    price_cents: int = Field(0, ge=0)


class ItemCreate(ItemBase):
    """Owner comes from the bearer token, never from the body."""


class ItemUpdate(BaseModel):
    title: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = None
    category: ItemCategory | None = None
    condition: ItemCondition | None = None
    price_cents: int | None = Field(None, ge=0)


class ItemStatusUpdate(BaseModel):
    status: ItemStatus


class ItemResponse(BaseModel):
    id: int
    title: str
    description: str | None = None
    category: str
    condition: str
    price_cents: int
    status: str
    owner_id: int
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ItemWithOwnerResponse(ItemResponse):
    owner_name: str | None = None  # Populated by service layer
