"""
Barter repository - the Negotiation Record Store.
Challenge: Always return records fully expanded (both items, both parties) without N+1 queries.
"""

from sqlalchemy import or_, select
from sqlalchemy.orm import selectinload

from studyswap.db.models.barter import BarterRequest, BarterStatus
from studyswap.db.repositories.base_repository import BaseRepository


def _expanded():
    return (
        selectinload(BarterRequest.item),
        selectinload(BarterRequest.offer_item),
        selectinload(BarterRequest.requester),
        selectinload(BarterRequest.owner),
    )


class BarterRepository(BaseRepository[BarterRequest]):
    def __init__(self, session):
        super().__init__(session, BarterRequest)

    async def get_expanded(self, id: int) -> BarterRequest | None:
        """Load one record with relations, refreshing anything already in the session."""
        result = await self.session.execute(
            select(BarterRequest)
            .where(BarterRequest.id == id)
            .options(*_expanded())
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_for_user(self, user_id: int) -> list[BarterRequest]:
        """All records where the user is requester or owner, newest first."""
        result = await self.session.execute(
            select(BarterRequest)
            .where(or_(BarterRequest.requester_id == user_id, BarterRequest.owner_id == user_id))
            .options(*_expanded())
            .order_by(BarterRequest.created_at.desc(), BarterRequest.id.desc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def find_pending_duplicate(
        self, item_id: int, offer_item_id: int, requester_id: int
    ) -> BarterRequest | None:
        result = await self.session.execute(
            select(BarterRequest)
            .where(
                BarterRequest.item_id == item_id,
                BarterRequest.offer_item_id == offer_item_id,
                BarterRequest.requester_id == requester_id,
                BarterRequest.status == BarterStatus.PENDING.value,
            )
            .limit(1)
        )
        return result.scalar_one_or_none()
