"""Shared test helpers: notification sinks and identity/auth shortcuts."""

from sqlalchemy.ext.asyncio import AsyncSession

from studyswap.core.security import Identity, create_access_token
from studyswap.db.models import Item, User
from studyswap.schemas.notification import NotificationIntent


class RecordingNotificationSink:
    """Keeps emitted intents in memory instead of queueing them."""

    def __init__(self):
        self.sent: list[NotificationIntent] = []

    def emit(self, intent: NotificationIntent) -> None:
        self.sent.append(intent)

    def for_user(self, user_id: int) -> list[NotificationIntent]:
        return [n for n in self.sent if n.recipient_id == user_id]


class FailingNotificationSink:
    def emit(self, intent: NotificationIntent) -> None:
        raise ConnectionError("broker unreachable")


def identity_of(user: User) -> Identity:
    return Identity(user_id=user.id, role=user.role)


def auth_headers_for(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


async def current_status(session: AsyncSession, item: Item) -> str:
    """Status as stored, not as last seen by the test."""
    await session.refresh(item)
    return item.status
