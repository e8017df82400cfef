"""
BarterRequest model - one proposal to trade `offer_item` (requester's) for `item` (owner's).
"""

import enum
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import String, Text, DateTime, ForeignKey, Index, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from studyswap.db.base import Base

if TYPE_CHECKING:
    from studyswap.db.models.item import Item
    from studyswap.db.models.user import User


class BarterStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class BarterRequest(Base):
    """Negotiation record. Items are referenced, never owned; deleting a request leaves items untouched."""

    __tablename__ = "barter_requests"
    __table_args__ = (
        # Duplicate-submission lookup: (item, offer_item, requester, status)
        Index("ix_barter_requests_triple", "item_id", "offer_item_id", "requester_id", "status"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    item_id: Mapped[int] = mapped_column(ForeignKey("items.id"), nullable=False, index=True)
    offer_item_id: Mapped[int] = mapped_column(ForeignKey("items.id"), nullable=False, index=True)
    requester_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    owner_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=BarterStatus.PENDING.value)
    message: Mapped[str] = mapped_column(Text, nullable=False, default="")
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    item: Mapped["Item"] = relationship("Item", foreign_keys=[item_id])
    offer_item: Mapped["Item"] = relationship("Item", foreign_keys=[offer_item_id])
    requester: Mapped["User"] = relationship("User", foreign_keys=[requester_id])
    owner: Mapped["User"] = relationship("User", foreign_keys=[owner_id])

    def is_participant(self, user_id: int) -> bool:
        return user_id in (self.requester_id, self.owner_id)

    def __repr__(self) -> str:
        return f"<BarterRequest(id={self.id}, status={self.status})>"
