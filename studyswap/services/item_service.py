"""
Item service - catalog use cases the barter core depends on.
Challenge: Keep the Redis detail cache honest when item status changes underneath it.
Design: Reads may use the cache; anything that writes invalidates it.
"""

import json
import logging

from sqlalchemy.exc import IntegrityError

from studyswap.cache.redis_client import cache_get, cache_set, cache_delete
from studyswap.config import get_settings
from studyswap.core.errors import ConflictError, ForbiddenError, NotFoundError
from studyswap.core.security import Identity
from studyswap.db.models.item import Item
from studyswap.db.repositories.item_repository import ItemRepository
from studyswap.schemas.item import ItemCreate, ItemUpdate, ItemWithOwnerResponse

logger = logging.getLogger(__name__)
settings = get_settings()

CACHE_PREFIX = "item:"


def item_cache_key(item_id: int) -> str:
    return CACHE_PREFIX + str(item_id)


async def invalidate_item_cache(*item_ids: int) -> None:
    """Drop cached item details. Failures are already tolerated by cache_delete."""
    for item_id in item_ids:
        await cache_delete(item_cache_key(item_id))


def _item_to_response(item: Item) -> ItemWithOwnerResponse:
    """Map model to API response with owner name."""
    resp = ItemWithOwnerResponse.model_validate(item)
    resp.owner_name = getattr(item.owner, "name", None)
    return resp


class ItemService:
    """Catalog CRUD. Only the owner may change or delete an item."""

    def __init__(self, item_repo: ItemRepository):
        self.item_repo = item_repo

    async def create(self, owner_id: int, data: ItemCreate) -> ItemWithOwnerResponse:
        item = Item(
            title=data.title,
            description=data.description,
            category=data.category.value,
            condition=data.condition.value,
            price_cents=data.price_cents,
            owner_id=owner_id,
        )
        item = await self.item_repo.add(item)
        # Reload with owner loaded to avoid lazy load in async context (MissingGreenlet)
        item = await self.item_repo.get_by_id_with_owner(item.id)
        logger.info("Item %s created by user %s", item.id, owner_id)
        return _item_to_response(item)

    async def get_by_id(self, id: int, use_cache: bool = True) -> ItemWithOwnerResponse:
        if use_cache:
            cached = await cache_get(item_cache_key(id))
            if cached:
                return ItemWithOwnerResponse(**json.loads(cached))
        item = await self.item_repo.get_by_id_with_owner(id)
        if not item:
            raise NotFoundError("Item not found")
        resp = _item_to_response(item)
        if use_cache:
            await cache_set(item_cache_key(id), resp.model_dump(mode="json"), settings.item_cache_ttl)
        return resp

    async def list_items(self, skip: int = 0, limit: int = 20) -> list[ItemWithOwnerResponse]:
        items = await self.item_repo.get_many_with_owner(skip=skip, limit=limit)
        return [_item_to_response(i) for i in items]

    async def _get_owned(self, identity: Identity, id: int) -> Item:
        item = await self.item_repo.get_by_id_with_owner(id)
        if not item:
            raise NotFoundError("Item not found")
        if item.owner_id != identity.user_id:
            raise ForbiddenError("Only the owner can modify this item")
        return item

    async def update(self, identity: Identity, id: int, data: ItemUpdate) -> ItemWithOwnerResponse:
        item = await self._get_owned(identity, id)
        for field, value in data.model_dump(exclude_unset=True, exclude_none=True).items():
            setattr(item, field, value.value if hasattr(value, "value") else value)
        await self.item_repo.session.flush()
        item = await self.item_repo.get_by_id_with_owner(id)
        await invalidate_item_cache(id)
        return _item_to_response(item)

    async def set_status(self, identity: Identity, id: int, status: str) -> ItemWithOwnerResponse:
        """Catalog-side status change (e.g. marking an item Sold). Not version-guarded beyond the ORM check."""
        item = await self._get_owned(identity, id)
        self.item_repo.set_status(item, status)
        await self.item_repo.session.flush()
        item = await self.item_repo.get_by_id_with_owner(id)
        await invalidate_item_cache(id)
        logger.info("Item %s status set to %s by owner", id, status)
        return _item_to_response(item)

    async def delete(self, identity: Identity, id: int) -> None:
        """Items referenced by a barter request stay; the request must be resolved first."""
        item = await self._get_owned(identity, id)
        if await self.item_repo.in_any_barter(id):
            raise ConflictError("Item is part of a barter request and cannot be deleted")
        try:
            await self.item_repo.delete(item)
        except IntegrityError as exc:
            logger.info("Item %s delete blocked by a reference: %s", id, exc.orig)
            raise ConflictError("Item is part of a barter request and cannot be deleted") from exc
        await invalidate_item_cache(id)
