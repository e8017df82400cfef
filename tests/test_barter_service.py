"""
Barter service tests - the negotiation state machine against a real (SQLite) session.
"""

import pytest
from prometheus_client import REGISTRY
from sqlalchemy import update
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from studyswap.core.errors import (
    ConflictError,
    ForbiddenError,
    InvalidOperationError,
    NotFoundError,
    ReservationError,
)
from studyswap.db.models import Item
from studyswap.db.repositories import BarterRepository, ItemRepository
from studyswap.db.session import get_db
from studyswap.schemas.barter import BarterCreate
from studyswap.services.barter_service import BarterService

from helpers import FailingNotificationSink, current_status, identity_of


def offer(target: Item, offered: Item, message: str | None = None) -> BarterCreate:
    return BarterCreate(item_id=target.id, offer_item_id=offered.id, message=message)


# --- propose ---


@pytest.mark.asyncio
async def test_propose_creates_pending_request(service, sink, session, alice, bob, textbook, notes):
    barter = await service.propose(identity_of(alice), offer(textbook, notes))

    assert barter.status == "pending"
    assert barter.requester_id == alice.id
    assert barter.owner_id == bob.id
    assert barter.item.title == "Calculus Textbook"
    assert barter.offer_item.title == "Physics Notes"
    assert barter.message == 'I\'d like to exchange my "Physics Notes" for your "Calculus Textbook"'
    # Proposing reserves nothing
    assert await current_status(session, textbook) == "Available"
    assert await current_status(session, notes) == "Available"

    await session.commit()
    [notification] = sink.for_user(bob.id)
    assert notification.title == "New Barter Request"
    assert "Alice" in notification.body
    assert notification.related_barter_id == barter.id


@pytest.mark.asyncio
async def test_propose_keeps_custom_message(service, alice, textbook, notes):
    barter = await service.propose(identity_of(alice), offer(textbook, notes, "Swap after finals?"))
    assert barter.message == "Swap after finals?"


@pytest.mark.asyncio
async def test_propose_accepts_lowercase_available_marker(service, make_item, alice, bob, notes):
    target = await make_item(bob, "Old Notes", status="available")
    barter = await service.propose(identity_of(alice), offer(target, notes))
    assert barter.status == "pending"


@pytest.mark.asyncio
async def test_propose_missing_target_item(service, alice, notes):
    with pytest.raises(NotFoundError, match="Item not found"):
        await service.propose(identity_of(alice), BarterCreate(item_id=9999, offer_item_id=notes.id))


@pytest.mark.asyncio
async def test_propose_missing_offer_item(service, alice, textbook):
    with pytest.raises(NotFoundError, match="Offer item not found"):
        await service.propose(identity_of(alice), BarterCreate(item_id=textbook.id, offer_item_id=9999))


@pytest.mark.asyncio
async def test_propose_offer_item_must_belong_to_requester(service, make_item, alice, bob, textbook):
    bobs_other = await make_item(bob, "Bob's Stapler")
    with pytest.raises(ForbiddenError):
        await service.propose(identity_of(alice), offer(textbook, bobs_other))


@pytest.mark.asyncio
async def test_propose_own_item_is_invalid(service, make_item, alice, notes):
    """Scenario C: Alice offers one of her items for another of her items."""
    lab_report = await make_item(alice, "Chemistry Lab Report")
    with pytest.raises(InvalidOperationError, match="own item"):
        await service.propose(identity_of(alice), offer(lab_report, notes))


@pytest.mark.asyncio
async def test_propose_unavailable_offer_item(service, make_item, alice, textbook):
    reserved = await make_item(alice, "Reserved Notes", status="Reserved")
    with pytest.raises(ConflictError, match="offer item is not available"):
        await service.propose(identity_of(alice), offer(textbook, reserved))


@pytest.mark.asyncio
async def test_propose_unavailable_target_item(service, make_item, alice, bob, notes):
    sold = await make_item(bob, "Sold Book", status="Sold")
    with pytest.raises(ConflictError, match="This item is not available"):
        await service.propose(identity_of(alice), offer(sold, notes))


@pytest.mark.asyncio
async def test_duplicate_pending_proposal_is_conflict(service, alice, textbook, notes):
    """Scenario B."""
    await service.propose(identity_of(alice), offer(textbook, notes))
    with pytest.raises(ConflictError, match="already have a pending"):
        await service.propose(identity_of(alice), offer(textbook, notes))


@pytest.mark.asyncio
async def test_same_pair_can_be_proposed_again_after_rejection(service, alice, bob, textbook, notes):
    first = await service.propose(identity_of(alice), offer(textbook, notes))
    await service.reject(identity_of(bob), first.id)
    second = await service.propose(identity_of(alice), offer(textbook, notes))
    assert second.id != first.id


# --- accept ---


@pytest.mark.asyncio
async def test_accept_reserves_both_items(service, sink, session, alice, bob, textbook, notes):
    """Scenario A."""
    barter = await service.propose(identity_of(alice), offer(textbook, notes))

    assert len(await service.get_my_barters(identity_of(alice))) == 1
    assert len(await service.get_my_barters(identity_of(bob))) == 1

    accepted = await service.accept(identity_of(bob), barter.id)

    assert accepted.status == "accepted"
    assert accepted.item.status == "Reserved"
    assert await current_status(session, textbook) == "Reserved"
    assert await current_status(session, notes) == "Reserved"
    await session.commit()
    assert sink.for_user(alice.id)[-1].title == "Barter Request Accepted!"


@pytest.mark.asyncio
async def test_accept_twice_is_conflict(service, alice, bob, textbook, notes):
    barter = await service.propose(identity_of(alice), offer(textbook, notes))
    await service.accept(identity_of(bob), barter.id)
    with pytest.raises(ConflictError, match="already accepted"):
        await service.accept(identity_of(bob), barter.id)


@pytest.mark.asyncio
async def test_only_owner_can_accept(service, session, alice, textbook, notes):
    barter = await service.propose(identity_of(alice), offer(textbook, notes))
    with pytest.raises(ForbiddenError):
        await service.accept(identity_of(alice), barter.id)
    assert await current_status(session, textbook) == "Available"


@pytest.mark.asyncio
async def test_accept_unknown_barter(service, bob):
    with pytest.raises(NotFoundError):
        await service.accept(identity_of(bob), 4242)


@pytest.mark.asyncio
async def test_accept_refuses_item_changed_since_proposal(service, session, alice, bob, textbook, notes):
    barter = await service.propose(identity_of(alice), offer(textbook, notes))
    # Catalog marks the book sold before Bob decides
    textbook.status = "Sold"
    await session.flush()

    with pytest.raises(ConflictError, match="no longer available"):
        await service.accept(identity_of(bob), barter.id)

    assert await current_status(session, notes) == "Available"
    assert (await service.get_by_id(identity_of(bob), barter.id)).status == "pending"


@pytest.mark.asyncio
async def test_competing_proposal_cannot_double_reserve(service, session, make_user, make_item, alice, bob, textbook, notes):
    carol = await make_user("Carol")
    carols_item = await make_item(carol, "Graphing Calculator")
    from_alice = await service.propose(identity_of(alice), offer(textbook, notes))
    from_carol = await service.propose(identity_of(carol), offer(textbook, carols_item))

    await service.accept(identity_of(bob), from_alice.id)
    with pytest.raises(ConflictError):
        await service.accept(identity_of(bob), from_carol.id)

    assert await current_status(session, carols_item) == "Available"
    assert (await service.get_by_id(identity_of(carol), from_carol.id)).status == "pending"


@pytest.mark.asyncio
async def test_accept_lost_race_on_item_version_is_conflict(service, session, alice, bob, textbook, notes):
    """Another writer bumps the item row between our read and our write."""
    barter = await service.propose(identity_of(alice), offer(textbook, notes))
    original = service.item_repo.get_for_update

    async def racing_get_for_update(item_id):
        item = await original(item_id)
        await session.execute(
            update(Item.__table__).where(Item.__table__.c.id == item_id).values(version=Item.__table__.c.version + 1)
        )
        return item

    service.item_repo.get_for_update = racing_get_for_update
    with pytest.raises(ConflictError, match="changed while it was being processed"):
        await service.accept(identity_of(bob), barter.id)


# --- reject ---


@pytest.mark.asyncio
async def test_reject_stores_reason_and_leaves_items(service, sink, session, alice, bob, textbook, notes):
    barter = await service.propose(identity_of(alice), offer(textbook, notes))
    rejected = await service.reject(identity_of(bob), barter.id, "Cover is torn")

    assert rejected.status == "rejected"
    assert rejected.rejection_reason == "Cover is torn"
    assert await current_status(session, textbook) == "Available"
    assert await current_status(session, notes) == "Available"
    await session.commit()
    assert sink.for_user(alice.id)[-1].body.endswith(": Cover is torn")


@pytest.mark.asyncio
async def test_reject_accepted_barter_is_conflict(service, session, alice, bob, textbook, notes):
    barter = await service.propose(identity_of(alice), offer(textbook, notes))
    await service.accept(identity_of(bob), barter.id)
    with pytest.raises(ConflictError):
        await service.reject(identity_of(bob), barter.id)
    assert await current_status(session, textbook) == "Reserved"


@pytest.mark.asyncio
async def test_only_owner_can_reject(service, alice, textbook, notes):
    barter = await service.propose(identity_of(alice), offer(textbook, notes))
    with pytest.raises(ForbiddenError):
        await service.reject(identity_of(alice), barter.id)


# --- update_status ---


@pytest.mark.asyncio
async def test_update_status_pending_to_accepted_reserves(service, session, alice, bob, textbook, notes):
    barter = await service.propose(identity_of(alice), offer(textbook, notes))
    updated = await service.update_status(identity_of(bob), barter.id, "accepted")
    assert updated.status == "accepted"
    assert await current_status(session, textbook) == "Reserved"
    assert await current_status(session, notes) == "Reserved"


@pytest.mark.asyncio
async def test_update_status_reverts_accepted_barter(service, sink, session, alice, bob, textbook, notes):
    """Scenario D."""
    barter = await service.propose(identity_of(alice), offer(textbook, notes))
    await service.accept(identity_of(bob), barter.id)

    reverted = await service.update_status(identity_of(bob), barter.id, "rejected")

    assert reverted.status == "rejected"
    assert await current_status(session, textbook) == "Available"
    assert await current_status(session, notes) == "Available"
    await session.commit()
    assert sink.for_user(alice.id)[-1].title == "Barter Request Updated"


@pytest.mark.asyncio
async def test_revert_leaves_items_moved_on_by_other_processes(service, session, alice, bob, textbook, notes):
    barter = await service.propose(identity_of(alice), offer(textbook, notes))
    await service.accept(identity_of(bob), barter.id)
    notes.status = "Sold"
    await session.flush()

    await service.update_status(identity_of(bob), barter.id, "rejected")

    assert await current_status(session, textbook) == "Available"
    assert await current_status(session, notes) == "Sold"


@pytest.mark.asyncio
async def test_update_status_never_reserves_from_rejected(service, session, alice, bob, textbook, notes):
    barter = await service.propose(identity_of(alice), offer(textbook, notes))
    await service.reject(identity_of(bob), barter.id)
    with pytest.raises(ConflictError):
        await service.update_status(identity_of(bob), barter.id, "accepted")
    assert await current_status(session, textbook) == "Available"


@pytest.mark.asyncio
async def test_update_status_accepted_back_to_pending_is_conflict(service, alice, bob, textbook, notes):
    barter = await service.propose(identity_of(alice), offer(textbook, notes))
    await service.accept(identity_of(bob), barter.id)
    with pytest.raises(ConflictError):
        await service.update_status(identity_of(bob), barter.id, "pending")


@pytest.mark.asyncio
async def test_update_status_rejects_cancelled_target(service, alice, bob, textbook, notes):
    barter = await service.propose(identity_of(alice), offer(textbook, notes))
    with pytest.raises(InvalidOperationError):
        await service.update_status(identity_of(bob), barter.id, "cancelled")


@pytest.mark.asyncio
async def test_update_status_owner_only(service, alice, textbook, notes):
    barter = await service.propose(identity_of(alice), offer(textbook, notes))
    with pytest.raises(ForbiddenError):
        await service.update_status(identity_of(alice), barter.id, "rejected")


# --- cancel / withdraw ---


@pytest.mark.asyncio
async def test_requester_cancel_deletes_and_notifies_owner(service, sink, session, alice, bob, textbook, notes):
    barter = await service.propose(identity_of(alice), offer(textbook, notes))
    await service.cancel(identity_of(alice), barter.id)

    with pytest.raises(NotFoundError):
        await service.get_by_id(identity_of(alice), barter.id)
    await session.commit()
    assert sink.for_user(bob.id)[-1].title == "Barter Request Cancelled"


@pytest.mark.asyncio
async def test_owner_cancel_notifies_requester(service, sink, session, alice, bob, textbook, notes):
    barter = await service.propose(identity_of(alice), offer(textbook, notes))
    await service.cancel(identity_of(bob), barter.id)

    assert await service.get_my_barters(identity_of(alice)) == []
    await session.commit()
    assert sink.for_user(alice.id)[-1].title == "Barter Request Cancelled"


@pytest.mark.asyncio
async def test_cancel_by_outsider_is_forbidden(service, make_user, alice, textbook, notes):
    carol = await make_user("Carol")
    barter = await service.propose(identity_of(alice), offer(textbook, notes))
    with pytest.raises(ForbiddenError):
        await service.cancel(identity_of(carol), barter.id)


@pytest.mark.asyncio
async def test_cancel_accepted_barter_is_conflict(service, session, alice, bob, textbook, notes):
    barter = await service.propose(identity_of(alice), offer(textbook, notes))
    await service.accept(identity_of(bob), barter.id)
    with pytest.raises(ConflictError, match="Cannot cancel. Barter is already accepted"):
        await service.cancel(identity_of(alice), barter.id)
    assert await current_status(session, textbook) == "Reserved"


@pytest.mark.asyncio
async def test_withdraw_removes_request_for_both_parties(service, sink, session, alice, bob, textbook, notes):
    """Scenario E."""
    barter = await service.propose(identity_of(alice), offer(textbook, notes))
    await service.withdraw(identity_of(alice), barter.id)

    assert await service.get_my_barters(identity_of(alice)) == []
    assert await service.get_my_barters(identity_of(bob)) == []
    await session.commit()
    [withdrawn] = [n for n in sink.for_user(bob.id) if n.title == "Barter Request Withdrawn"]
    assert "Alice" in withdrawn.body


@pytest.mark.asyncio
async def test_withdraw_is_requester_only(service, alice, bob, textbook, notes):
    barter = await service.propose(identity_of(alice), offer(textbook, notes))
    with pytest.raises(ForbiddenError):
        await service.withdraw(identity_of(bob), barter.id)


@pytest.mark.asyncio
async def test_withdraw_rejected_barter_is_conflict(service, alice, bob, textbook, notes):
    barter = await service.propose(identity_of(alice), offer(textbook, notes))
    await service.reject(identity_of(bob), barter.id)
    with pytest.raises(ConflictError):
        await service.withdraw(identity_of(alice), barter.id)


# --- queries ---


@pytest.mark.asyncio
async def test_get_my_barters_newest_first(service, make_item, alice, bob, textbook, notes):
    second_book = await make_item(bob, "Linear Algebra")
    first = await service.propose(identity_of(alice), offer(textbook, notes))
    second = await service.propose(identity_of(alice), offer(second_book, notes))

    mine = await service.get_my_barters(identity_of(alice))
    assert [b.id for b in mine] == [second.id, first.id]


@pytest.mark.asyncio
async def test_get_by_id_requires_participant(service, make_user, alice, bob, textbook, notes):
    carol = await make_user("Carol")
    barter = await service.propose(identity_of(alice), offer(textbook, notes))

    assert (await service.get_by_id(identity_of(bob), barter.id)).id == barter.id
    with pytest.raises(ForbiddenError):
        await service.get_by_id(identity_of(carol), barter.id)


# --- notifications ---


@pytest.mark.asyncio
async def test_failing_sink_never_blocks_transition(session, alice, bob, textbook, notes):
    service = BarterService(BarterRepository(session), ItemRepository(session), FailingNotificationSink())

    barter = await service.propose(identity_of(alice), offer(textbook, notes))
    accepted = await service.accept(identity_of(bob), barter.id)
    failures_before = REGISTRY.get_sample_value("barter_notifications_failed_total")
    await session.commit()

    assert accepted.status == "accepted"
    assert await current_status(session, textbook) == "Reserved"
    assert REGISTRY.get_sample_value("barter_notifications_failed_total") == failures_before + 2


@pytest.mark.asyncio
async def test_status_changes_invalidate_item_cache(service, no_redis, alice, bob, textbook, notes):
    barter = await service.propose(identity_of(alice), offer(textbook, notes))
    no_redis.reset_mock()
    await service.accept(identity_of(bob), barter.id)
    invalidated = {call.args[0] for call in no_redis.await_args_list}
    assert invalidated == {f"item:{textbook.id}", f"item:{notes.id}"}


@pytest.mark.asyncio
async def test_notifications_wait_for_commit(service, sink, session, alice, bob, textbook, notes):
    barter = await service.propose(identity_of(alice), offer(textbook, notes))
    await service.accept(identity_of(bob), barter.id)
    assert sink.sent == []

    await session.commit()
    assert [n.title for n in sink.sent] == ["New Barter Request", "Barter Request Accepted!"]


@pytest.mark.asyncio
async def test_rolled_back_accept_sends_nothing(service, sink, session, alice, bob, textbook, notes):
    barter = await service.propose(identity_of(alice), offer(textbook, notes))
    await session.commit()
    sink.sent.clear()

    await service.accept(identity_of(bob), barter.id)
    await session.rollback()
    await session.commit()

    assert sink.sent == []
    assert await current_status(session, textbook) == "Available"
    assert await current_status(session, notes) == "Available"


@pytest.mark.asyncio
async def test_failed_request_commit_sends_nothing(
    engine, service, sink, session, monkeypatch, alice, bob, textbook, notes
):
    """get_db rolls back when COMMIT fails; the requester is never told about the reservation."""
    barter = await service.propose(identity_of(alice), offer(textbook, notes))
    await session.commit()
    sink.sent.clear()

    monkeypatch.setattr(
        "studyswap.db.session.async_session_maker",
        async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False),
    )
    request_scope = get_db()
    request_session = await request_scope.__anext__()
    request_service = BarterService(BarterRepository(request_session), ItemRepository(request_session), sink)
    accepted = await request_service.accept(identity_of(bob), barter.id)
    assert accepted.status == "accepted"

    async def failing_commit(self):
        raise OperationalError("COMMIT", {}, Exception("disk I/O error"))

    with monkeypatch.context() as m:
        m.setattr(AsyncSession, "commit", failing_commit)
        with pytest.raises(OperationalError):
            await request_scope.__anext__()

    assert sink.sent == []
    assert await current_status(session, textbook) == "Available"
    assert await current_status(session, notes) == "Available"


# --- write failures ---


@pytest.mark.asyncio
async def test_write_failure_during_accept_is_internal_error(
    service, sink, session, monkeypatch, alice, bob, textbook, notes
):
    barter = await service.propose(identity_of(alice), offer(textbook, notes))
    await session.commit()
    sink.sent.clear()

    async def failing_flush(self, objects=None):
        raise OperationalError("UPDATE items", {}, Exception("database is locked"))

    owner, barter_id = identity_of(bob), barter.id
    with monkeypatch.context() as m:
        m.setattr(AsyncSession, "flush", failing_flush)
        with pytest.raises(ReservationError) as excinfo:
            await service.accept(owner, barter_id)
    await session.rollback()

    assert excinfo.value.kind == "InternalError"
    assert excinfo.value.status_code == 500
    assert await current_status(session, textbook) == "Available"
    assert await current_status(session, notes) == "Available"
    assert (await service.get_by_id(owner, barter_id)).status == "pending"
    assert sink.sent == []
