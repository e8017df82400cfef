"""
Item endpoints - the catalog surface the barter core works against.
Challenge: Pagination, auth, owner-only writes.
Design: Thin controller; service layer holds business logic.
"""

from fastapi import APIRouter, Query, status

from studyswap.config import get_settings
from studyswap.core.dependencies import CurrentIdentity
from studyswap.db.repositories.item_repository import ItemRepository
from studyswap.db.session import DbSession
from studyswap.schemas.item import ItemCreate, ItemStatusUpdate, ItemUpdate, ItemWithOwnerResponse
from studyswap.services.item_service import ItemService

router = APIRouter()
settings = get_settings()


def _get_item_service(session: DbSession) -> ItemService:
    return ItemService(ItemRepository(session))


@router.get("", response_model=list[ItemWithOwnerResponse])
async def list_items(
    session: DbSession,
    skip: int = Query(0, ge=0),
    limit: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size),
):
    """List items with pagination. REST: GET /items?skip=0&limit=20."""
    return await _get_item_service(session).list_items(skip=skip, limit=limit)


@router.get("/{item_id}", response_model=ItemWithOwnerResponse)
async def get_item(session: DbSession, item_id: int):
    """Get single item. Uses Redis cache when available."""
    return await _get_item_service(session).get_by_id(item_id)


@router.post("", response_model=ItemWithOwnerResponse, status_code=status.HTTP_201_CREATED)
async def create_item(session: DbSession, data: ItemCreate, identity: CurrentIdentity):
    """Create item owned by the caller."""
    return await _get_item_service(session).create(identity.user_id, data)


@router.put("/{item_id}", response_model=ItemWithOwnerResponse)
async def update_item(session: DbSession, item_id: int, data: ItemUpdate, identity: CurrentIdentity):
    return await _get_item_service(session).update(identity, item_id, data)


@router.put("/{item_id}/status", response_model=ItemWithOwnerResponse)
async def set_item_status(session: DbSession, item_id: int, data: ItemStatusUpdate, identity: CurrentIdentity):
    """Owner marks an item Sold / Unavailable / Available outside of a barter."""
    return await _get_item_service(session).set_status(identity, item_id, data.status.value)


@router.delete("/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_item(session: DbSession, item_id: int, identity: CurrentIdentity):
    await _get_item_service(session).delete(identity, item_id)
