"""Barter request/response schemas. Responses are always expanded (items + parties)."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator


class BarterCreate(BaseModel):
    item_id: int = Field(..., alias="itemId")
    offer_item_id: int = Field(..., alias="offerItemId")
    message: str | None = Field(None, max_length=2000)

    model_config = {"populate_by_name": True}


class BarterReject(BaseModel):
    reason: str | None = Field(None, max_length=2000)


class BarterStatusUpdate(BaseModel):
    # "cancelled" is not reachable through the generic path; cancel/withdraw delete the record
    status: Literal["pending", "accepted", "rejected"]
    reason: str | None = Field(None, max_length=2000)

    @field_validator("status", mode="before")
    @classmethod
    def lower_status(cls, v):
        return v.strip().lower() if isinstance(v, str) else v


class BarterItemSummary(BaseModel):
    id: int
    title: str
    category: str
    condition: str
    price_cents: int
    status: str

    model_config = {"from_attributes": True}


class BarterParty(BaseModel):
    id: int
    name: str
    email: str

    model_config = {"from_attributes": True}


class BarterResponse(BaseModel):
    id: int
    status: str
    message: str
    rejection_reason: str | None = None
    item: BarterItemSummary
    offer_item: BarterItemSummary
    requester: BarterParty
    owner: BarterParty
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class BarterEnvelope(BaseModel):
    success: bool = True
    message: str
    barter: BarterResponse


class BarterListEnvelope(BaseModel):
    success: bool = True
    count: int
    data: list[BarterResponse]


class BarterDetailEnvelope(BaseModel):
    success: bool = True
    data: BarterResponse


class BarterMessage(BaseModel):
    success: bool = True
    message: str
