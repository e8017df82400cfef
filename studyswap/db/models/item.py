"""
Item model - a listed study material that can be sold or bartered.
"""

import enum
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import String, Text, DateTime, ForeignKey, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from studyswap.db.base import Base

if TYPE_CHECKING:
    from studyswap.db.models.user import User


class ItemStatus(str, enum.Enum):
    AVAILABLE = "Available"
    RESERVED = "Reserved"
    SOLD = "Sold"
    UNAVAILABLE = "Unavailable"


class ItemCategory(str, enum.Enum):
    BOOKS = "books"
    NOTES = "notes"
    ELECTRONICS = "electronics"
    STATIONERY = "stationery"
    LAB_REPORTS = "labreports"
    OTHER = "other"


class ItemCondition(str, enum.Enum):
    NEW = "new"
    LIKE_NEW = "like-new"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"


def status_is(value: str | None, expected: ItemStatus) -> bool:
    """Case-insensitive status check. Other subsystems may write 'available' in lower case."""
    return (value or "").strip().lower() == expected.value.lower()


class Item(Base):
    """Item entity. `version` is bumped on every UPDATE; a stale write raises StaleDataError."""

    __tablename__ = "items"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    description: Mapped[str] = mapped_column(Text, nullable=True)
    category: Mapped[str] = mapped_column(String(32), nullable=False, default=ItemCategory.BOOKS.value)
    condition: Mapped[str] = mapped_column(String(32), nullable=False, default=ItemCondition.GOOD.value)
    price_cents: Mapped[int] = mapped_column(nullable=False, default=0)
    status: Mapped[str] = mapped_column(
        String(32), nullable=False, default=ItemStatus.AVAILABLE.value, index=True
    )
    owner_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    version: Mapped[int] = mapped_column(nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    owner: Mapped["User"] = relationship("User", back_populates="items")

    __mapper_args__ = {"version_id_col": version}

    @property
    def is_available(self) -> bool:
        return status_is(self.status, ItemStatus.AVAILABLE)

    def __repr__(self) -> str:
        return f"<Item(id={self.id}, title={self.title}, status={self.status})>"
