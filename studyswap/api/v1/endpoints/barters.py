"""
Barter endpoints - propose, decide, withdraw and list barter requests.
Design: Thin controller; BarterService holds the state machine. Domain errors are
rendered by the handler registered in main.py.
"""

from typing import Annotated

from fastapi import APIRouter, Body, Depends, status

from studyswap.core.dependencies import CurrentIdentity
from studyswap.db.repositories.barter_repository import BarterRepository
from studyswap.db.repositories.item_repository import ItemRepository
from studyswap.db.session import DbSession
from studyswap.schemas.barter import (
    BarterCreate,
    BarterDetailEnvelope,
    BarterEnvelope,
    BarterListEnvelope,
    BarterMessage,
    BarterReject,
    BarterResponse,
    BarterStatusUpdate,
)
from studyswap.services.barter_service import BarterService
from studyswap.services.notification_sink import NotificationSink, get_notification_sink

router = APIRouter()


def _get_barter_service(
    session: DbSession,
    sink: Annotated[NotificationSink, Depends(get_notification_sink)],
) -> BarterService:
    """Factory for service with repository injection (Dependency Inversion)."""
    return BarterService(BarterRepository(session), ItemRepository(session), sink)


Service = Annotated[BarterService, Depends(_get_barter_service)]


def _envelope(message: str, barter) -> BarterEnvelope:
    return BarterEnvelope(message=message, barter=BarterResponse.model_validate(barter))


@router.post("", response_model=BarterEnvelope, status_code=status.HTTP_201_CREATED)
async def create_barter(svc: Service, identity: CurrentIdentity, data: BarterCreate):
    barter = await svc.propose(identity, data)
    return _envelope("Barter request sent successfully", barter)


@router.get("/my", response_model=BarterListEnvelope)
async def my_barters(svc: Service, identity: CurrentIdentity):
    """Requests the caller sent or received, newest first."""
    barters = await svc.get_my_barters(identity)
    return BarterListEnvelope(count=len(barters), data=[BarterResponse.model_validate(b) for b in barters])


@router.get("/{barter_id}", response_model=BarterDetailEnvelope)
async def get_barter(svc: Service, identity: CurrentIdentity, barter_id: int):
    barter = await svc.get_by_id(identity, barter_id)
    return BarterDetailEnvelope(data=BarterResponse.model_validate(barter))


@router.put("/{barter_id}/accept", response_model=BarterEnvelope)
async def accept_barter(svc: Service, identity: CurrentIdentity, barter_id: int):
    barter = await svc.accept(identity, barter_id)
    return _envelope("Barter request accepted successfully. Both items are now reserved.", barter)


@router.put("/{barter_id}/reject", response_model=BarterEnvelope)
async def reject_barter(
    svc: Service,
    identity: CurrentIdentity,
    barter_id: int,
    data: Annotated[BarterReject | None, Body()] = None,
):
    barter = await svc.reject(identity, barter_id, data.reason if data else None)
    return _envelope("Barter request rejected", barter)


@router.put("/{barter_id}/cancel", response_model=BarterMessage)
async def cancel_barter(svc: Service, identity: CurrentIdentity, barter_id: int):
    await svc.cancel(identity, barter_id)
    return BarterMessage(message="Barter request cancelled successfully")


@router.put("/{barter_id}", response_model=BarterEnvelope)
async def update_barter_status(svc: Service, identity: CurrentIdentity, barter_id: int, data: BarterStatusUpdate):
    """Owner-only generic update; the only way to reverse an accepted barter."""
    barter = await svc.update_status(identity, barter_id, data.status, data.reason)
    return _envelope(f"Barter request {data.status}", barter)


@router.delete("/{barter_id}", response_model=BarterMessage)
async def withdraw_barter(svc: Service, identity: CurrentIdentity, barter_id: int):
    await svc.withdraw(identity, barter_id)
    return BarterMessage(message="Barter request withdrawn successfully")
