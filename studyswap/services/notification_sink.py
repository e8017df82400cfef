"""
Notification sink - fire-and-forget side channel for barter events.
Challenge: A slow or broken broker must never block or undo a negotiation transition, and
nobody may hear about a transition that was rolled back.
Design: The barter service stages intents on the database session; they are emitted from
the session's after_commit hook and dropped on rollback. Emit failures are logged and counted.
"""

import logging
from typing import Protocol

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

from studyswap.config import get_settings
from studyswap.core.metrics import barter_notifications_failed_total
from studyswap.queue.tasks import deliver_notification_task
from studyswap.schemas.notification import NotificationIntent

logger = logging.getLogger(__name__)

PENDING_KEY = "studyswap.pending_notifications"


class NotificationSink(Protocol):
    def emit(self, intent: NotificationIntent) -> None: ...


class QueuedNotificationSink:
    """Publishes intents to Celery; the worker persists them (see queue/tasks.py)."""

    def __init__(self, enabled: bool | None = None):
        self.enabled = get_settings().notifications_enabled if enabled is None else enabled

    def emit(self, intent: NotificationIntent) -> None:
        if not self.enabled:
            logger.debug("Notifications disabled; dropping %r for user %s", intent.title, intent.recipient_id)
            return
        deliver_notification_task.delay(intent.model_dump(mode="json"))


def get_notification_sink() -> NotificationSink:
    """FastAPI dependency. Overridden in tests."""
    return QueuedNotificationSink()


def defer_until_commit(session: AsyncSession, sink: NotificationSink, intent: NotificationIntent) -> None:
    """Queue an intent on the session; it goes out only if the transaction commits."""
    session.sync_session.info.setdefault(PENDING_KEY, []).append((sink, intent))


def emit_safely(sink: NotificationSink, intent: NotificationIntent) -> None:
    try:
        sink.emit(intent)
    except Exception:
        barter_notifications_failed_total.inc()
        logger.exception("Could not emit %r notification for user %s", intent.title, intent.recipient_id)


@event.listens_for(Session, "after_commit")
def _emit_committed(session: Session) -> None:
    for sink, intent in session.info.pop(PENDING_KEY, []):
        emit_safely(sink, intent)


@event.listens_for(Session, "after_soft_rollback")
def _drop_rolled_back(session: Session, previous_transaction) -> None:
    dropped = session.info.pop(PENDING_KEY, [])
    if dropped:
        logger.info("Transaction rolled back; dropping %d pending notification(s)", len(dropped))
