"""
Item repository - the Item Store used by the catalog endpoints and the barter core.
Challenge: Barter writes must be based on the row as it is now, not as it was loaded earlier.
"""

from sqlalchemy import or_, select
from sqlalchemy.orm import selectinload

from studyswap.db.models.barter import BarterRequest
from studyswap.db.models.item import Item
from studyswap.db.repositories.base_repository import BaseRepository


class ItemRepository(BaseRepository[Item]):
    def __init__(self, session):
        super().__init__(session, Item)

    async def get_by_id_with_owner(self, id: int) -> Item | None:
        """Fetch item with owner in one round trip (avoids N+1)."""
        result = await self.session.execute(
            select(Item)
            .where(Item.id == id)
            .options(selectinload(Item.owner))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_many_with_owner(self, skip: int = 0, limit: int = 20) -> list[Item]:
        result = await self.session.execute(
            select(Item)
            .options(selectinload(Item.owner))
            .offset(skip)
            .limit(limit)
            .order_by(Item.id)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def get_for_update(self, id: int) -> Item | None:
        """
        Re-read the item from the database, overwriting any copy in the identity map.
        Row lock on PostgreSQL; SQLite ignores FOR UPDATE and relies on the version check.
        """
        result = await self.session.execute(
            select(Item)
            .where(Item.id == id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def in_any_barter(self, id: int) -> bool:
        result = await self.session.execute(
            select(BarterRequest.id)
            .where(or_(BarterRequest.item_id == id, BarterRequest.offer_item_id == id))
            .limit(1)
        )
        return result.first() is not None

    def set_status(self, item: Item, status: str) -> Item:
        """Stage a status change. Written (version-checked) on the next flush."""
        item.status = status
        return item
