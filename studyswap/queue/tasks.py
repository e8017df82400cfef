"""
Celery tasks - notification delivery off the request path.
Challenge: Retries on transient DB errors; a bad payload is dropped, not retried forever.
Each task run opens its own event loop, so it also opens its own unpooled engine:
pooled asyncpg connections cannot cross loops.
"""

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from studyswap.config import get_settings
from studyswap.db.models.notification import Notification
from studyswap.queue.celery_app import celery_app
from studyswap.schemas.notification import NotificationIntent

logger = logging.getLogger(__name__)
settings = get_settings()


def _run_async(coro):
    """Run async function from sync Celery task.

    An eager task (task_always_eager) is called from inside the API's running loop;
    that loop cannot be re-entered, so the coroutine gets a fresh loop in a helper thread.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)
    with ThreadPoolExecutor(max_workers=1) as pool:
        return pool.submit(asyncio.run, coro).result()


async def store_notification(intent: NotificationIntent, session_maker) -> int:
    """Persist one notification row and return its id."""
    async with session_maker() as session:
        notification = Notification(
            user_id=intent.recipient_id,
            category=intent.category,
            title=intent.title,
            body=intent.body,
            related_item_id=intent.related_item_id,
            related_user_id=intent.related_user_id,
            related_barter_id=intent.related_barter_id,
            link=intent.resolved_link(),
        )
        session.add(notification)
        await session.commit()
        return notification.id


async def _store_with_own_engine(intent: NotificationIntent) -> int:
    engine = create_async_engine(settings.database_url, poolclass=NullPool)
    try:
        return await store_notification(intent, async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False))
    finally:
        await engine.dispose()


@celery_app.task(bind=True, max_retries=3)
def deliver_notification_task(self, payload: dict):
    """
    Persist a notification for its recipient.
    Fired after every committed barter transition (event-driven: API publishes, worker consumes).
    """
    try:
        intent = NotificationIntent.model_validate(payload)
    except ValidationError:
        logger.error("Dropping malformed notification payload: %r", payload)
        return None
    try:
        return _run_async(_store_with_own_engine(intent))
    except Exception as exc:
        logger.warning("Notification for user %s failed, retrying: %s", intent.recipient_id, exc)
        raise self.retry(exc=exc, countdown=5)

