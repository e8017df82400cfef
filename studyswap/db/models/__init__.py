from studyswap.db.models.user import User
from studyswap.db.models.item import Item, ItemStatus
from studyswap.db.models.barter import BarterRequest, BarterStatus
from studyswap.db.models.notification import Notification

__all__ = ["User", "Item", "ItemStatus", "BarterRequest", "BarterStatus", "Notification"]
