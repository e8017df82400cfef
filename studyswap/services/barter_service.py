"""
Barter service - negotiation lifecycle and item reservation.
Challenge: Two items and one negotiation record change together; the owner and the
requester have different rights; notifications must follow every committed change but never block it.
Design: Validate everything first, then stage all writes and flush them in one go inside the
request transaction. Item rows are re-read right before reserving and carry a version
counter, so a concurrent change turns into a Conflict instead of a double reservation.
"""

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from studyswap.core.errors import (
    ConflictError,
    ForbiddenError,
    InvalidOperationError,
    NotFoundError,
    ReservationError,
)
from studyswap.core.metrics import barter_transitions_total
from studyswap.core.security import Identity
from studyswap.db.models.barter import BarterRequest, BarterStatus
from studyswap.db.models.item import ItemStatus, status_is
from studyswap.db.repositories.barter_repository import BarterRepository
from studyswap.db.repositories.item_repository import ItemRepository
from studyswap.schemas.barter import BarterCreate
from studyswap.schemas.notification import NotificationIntent
from studyswap.services import barter_rules
from studyswap.services.barter_rules import Effect
from studyswap.services.item_service import invalidate_item_cache
from studyswap.services.notification_sink import NotificationSink, defer_until_commit

logger = logging.getLogger(__name__)


class BarterService:
    """Propose, accept, reject, update, cancel, withdraw and query barter requests."""

    def __init__(self, barter_repo: BarterRepository, item_repo: ItemRepository, sink: NotificationSink):
        self.barter_repo = barter_repo
        self.item_repo = item_repo
        self.sink = sink

    @property
    def session(self):
        return self.barter_repo.session

    # --- commands ---

    async def propose(self, identity: Identity, data: BarterCreate) -> BarterRequest:
        item = await self.item_repo.get_by_id(data.item_id)
        if not item:
            raise NotFoundError("Item not found")
        offer_item = await self.item_repo.get_by_id(data.offer_item_id)
        if not offer_item:
            raise NotFoundError("Offer item not found")

        if offer_item.owner_id != identity.user_id:
            raise ForbiddenError("You can only offer your own items for barter")
        if item.owner_id == identity.user_id:
            raise InvalidOperationError("Cannot barter with your own item")
        if not offer_item.is_available:
            raise ConflictError("Your offer item is not available for barter")
        if not item.is_available:
            raise ConflictError("This item is not available for barter")

        duplicate = await self.barter_repo.find_pending_duplicate(item.id, offer_item.id, identity.user_id)
        if duplicate:
            raise ConflictError("You already have a pending barter request with these items")

        barter = BarterRequest(
            item_id=item.id,
            offer_item_id=offer_item.id,
            requester_id=identity.user_id,
            owner_id=item.owner_id,
            status=BarterStatus.PENDING.value,
            message=data.message or f'I\'d like to exchange my "{offer_item.title}" for your "{item.title}"',
        )
        barter = await self.barter_repo.add(barter)
        barter = await self.barter_repo.get_expanded(barter.id)
        barter_transitions_total.labels(transition="propose").inc()
        logger.info(
            "Barter %s proposed: user %s offers item %s for item %s",
            barter.id, identity.user_id, offer_item.id, item.id,
        )

        self._notify(
            NotificationIntent(
                recipient_id=barter.owner_id,
                title="New Barter Request",
                body=f'{barter.requester.name} wants to trade "{offer_item.title}" for your "{item.title}"',
                related_item_id=item.id,
                related_user_id=identity.user_id,
                related_barter_id=barter.id,
            )
        )
        return barter

    async def accept(self, identity: Identity, barter_id: int) -> BarterRequest:
        barter = await self._get_or_404(barter_id)
        self._require_owner(identity, barter, "accept")
        barter_rules.resolve(barter.status, BarterStatus.ACCEPTED, "accept", pending_only=True)

        await self._reserve(barter)
        self._notify_requester(
            barter,
            title="Barter Request Accepted!",
            body=(
                f'Great news! {barter.owner.name} has accepted your barter request for '
                f'"{barter.item.title}". Both items are now reserved.'
            ),
        )
        return await self.barter_repo.get_expanded(barter_id)

    async def reject(self, identity: Identity, barter_id: int, reason: str | None = None) -> BarterRequest:
        barter = await self._get_or_404(barter_id)
        self._require_owner(identity, barter, "reject")
        barter_rules.resolve(barter.status, BarterStatus.REJECTED, "reject", pending_only=True)

        await self._reject(barter, reason)
        suffix = f": {reason}" if reason else ""
        self._notify_requester(
            barter,
            title="Barter Request Rejected",
            body=f'{barter.owner.name} has rejected your barter request for "{barter.item.title}"{suffix}',
        )
        return await self.barter_repo.get_expanded(barter_id)

    async def update_status(
        self, identity: Identity, barter_id: int, status: str, reason: str | None = None
    ) -> BarterRequest:
        """
        Generic owner-side status change. Same transition table as the dedicated
        operations, plus the correction path accepted -> rejected which releases
        any item still Reserved.
        """
        target = barter_rules.parse_status(status)
        if target not in barter_rules.UPDATABLE_STATUSES:
            raise InvalidOperationError(f"Status must be one of: pending, accepted, rejected (got {target.value})")

        barter = await self._get_or_404(barter_id)
        self._require_owner(identity, barter, "update")
        effect = barter_rules.resolve(barter.status, target, "update")

        if effect is Effect.RESERVE:
            await self._reserve(barter)
        elif effect is Effect.REJECT:
            await self._reject(barter, reason)
        elif effect is Effect.REVERT:
            await self._revert(barter, reason)

        self._notify_requester(
            barter,
            title="Barter Request Updated",
            body=f'Your barter request for "{barter.item.title}" was {target.value} by {barter.owner.name}.',
        )
        return await self.barter_repo.get_expanded(barter_id)

    async def cancel(self, identity: Identity, barter_id: int) -> None:
        """Either party removes a pending request. The other party is told."""
        barter = await self._get_or_404(barter_id)
        if not barter.is_participant(identity.user_id):
            raise ForbiddenError("Only the owner or the requester can cancel this barter request")
        barter_rules.resolve(barter.status, BarterStatus.CANCELLED, "cancel", pending_only=True)

        by_requester = identity.user_id == barter.requester_id
        actor = barter.requester if by_requester else barter.owner
        recipient_id = barter.owner_id if by_requester else barter.requester_id
        whose = "their" if by_requester else "the"
        intent = NotificationIntent(
            recipient_id=recipient_id,
            title="Barter Request Cancelled",
            body=f'{actor.name} has cancelled {whose} barter request for "{barter.item.title}"',
            related_item_id=barter.item_id,
            related_user_id=identity.user_id,
        )
        await self._delete(barter, "cancel")
        self._notify(intent)

    async def withdraw(self, identity: Identity, barter_id: int) -> None:
        """Requester pulls back their own pending request."""
        barter = await self._get_or_404(barter_id)
        if barter.requester_id != identity.user_id:
            raise ForbiddenError("Only the requester can withdraw this barter request")
        barter_rules.resolve(barter.status, BarterStatus.CANCELLED, "withdraw", pending_only=True)

        intent = NotificationIntent(
            recipient_id=barter.owner_id,
            title="Barter Request Withdrawn",
            body=f'{barter.requester.name} has withdrawn their barter request for "{barter.item.title}"',
            related_item_id=barter.item_id,
            related_user_id=identity.user_id,
        )
        await self._delete(barter, "withdraw")
        self._notify(intent)

    # --- queries ---

    async def get_my_barters(self, identity: Identity) -> list[BarterRequest]:
        return await self.barter_repo.list_for_user(identity.user_id)

    async def get_by_id(self, identity: Identity, barter_id: int) -> BarterRequest:
        barter = await self._get_or_404(barter_id)
        if not barter.is_participant(identity.user_id):
            raise ForbiddenError("Not authorized to view this barter request")
        return barter

    # --- internals ---

    async def _get_or_404(self, barter_id: int) -> BarterRequest:
        barter = await self.barter_repo.get_expanded(barter_id)
        if not barter:
            raise NotFoundError("Barter request not found")
        return barter

    @staticmethod
    def _require_owner(identity: Identity, barter: BarterRequest, verb: str) -> None:
        if barter.owner_id != identity.user_id:
            raise ForbiddenError(f"Not authorized to {verb} this barter request")

    async def _reserve(self, barter: BarterRequest) -> None:
        """pending -> accepted. Both items must still be available right now."""
        item = await self.item_repo.get_for_update(barter.item_id)
        offer_item = await self.item_repo.get_for_update(barter.offer_item_id)
        for label, current in (("Target", item), ("Offer", offer_item)):
            if current is None:
                raise NotFoundError(f"{label} item no longer exists")
            if not current.is_available:
                raise ConflictError(f"{label} item is no longer available (status: {current.status})")

        self.item_repo.set_status(item, ItemStatus.RESERVED.value)
        self.item_repo.set_status(offer_item, ItemStatus.RESERVED.value)
        barter.status = BarterStatus.ACCEPTED.value
        await self._flush(barter, "accept")
        await invalidate_item_cache(item.id, offer_item.id)

    async def _reject(self, barter: BarterRequest, reason: str | None) -> None:
        barter.status = BarterStatus.REJECTED.value
        barter.rejection_reason = reason
        await self._flush(barter, "reject")

    async def _revert(self, barter: BarterRequest, reason: str | None) -> None:
        """accepted -> rejected. Only items still Reserved go back to Available."""
        released = []
        for item_id in (barter.item_id, barter.offer_item_id):
            current = await self.item_repo.get_for_update(item_id)
            if current is not None and status_is(current.status, ItemStatus.RESERVED):
                self.item_repo.set_status(current, ItemStatus.AVAILABLE.value)
                released.append(current.id)
            elif current is not None:
                logger.info("Barter %s revert: item %s left as %s", barter.id, item_id, current.status)

        barter.status = BarterStatus.REJECTED.value
        if reason:
            barter.rejection_reason = reason
        await self._flush(barter, "revert")
        await invalidate_item_cache(*released)

    async def _delete(self, barter: BarterRequest, transition: str) -> None:
        await self.session.delete(barter)
        await self._flush(barter, transition)

    async def _flush(self, barter: BarterRequest, transition: str) -> None:
        """Write every staged change at once. The request scope rolls back on failure."""
        try:
            await self.session.flush()
        except StaleDataError as exc:
            logger.info("Barter %s %s lost a concurrent update race: %s", barter.id, transition, exc)
            raise ConflictError("An item in this barter changed while it was being processed; please retry") from exc
        except SQLAlchemyError as exc:
            logger.exception("Barter %s %s failed while writing", barter.id, transition)
            raise ReservationError("Barter request could not be updated; no changes were saved") from exc
        barter_transitions_total.labels(transition=transition).inc()
        logger.info("Barter %s %s written", barter.id, transition)

    def _notify_requester(self, barter: BarterRequest, title: str, body: str) -> None:
        self._notify(
            NotificationIntent(
                recipient_id=barter.requester_id,
                title=title,
                body=body,
                related_item_id=barter.item_id,
                related_user_id=barter.owner_id,
                related_barter_id=barter.id,
            )
        )

    def _notify(self, intent: NotificationIntent) -> None:
        """Sent by the session's after_commit hook; a rollback discards it."""
        defer_until_commit(self.session, self.sink, intent)
