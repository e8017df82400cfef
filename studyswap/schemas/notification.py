"""NotificationIntent - value object handed to the notification sink. Produced, never consumed, by the core."""

from pydantic import BaseModel


class NotificationIntent(BaseModel):
    recipient_id: int
    category: str = "barter"
    title: str
    body: str
    related_item_id: int | None = None
    related_user_id: int | None = None
    related_barter_id: int | None = None
    link: str | None = None

    def resolved_link(self) -> str:
        """Explicit link wins; otherwise point at the barter page for the related item."""
        if self.link:
            return self.link
        if self.related_item_id is not None:
            return f"/barter/{self.related_item_id}"
        return "/barter-requests"
