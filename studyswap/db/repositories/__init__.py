# Repository pattern: abstract data access (SOLID - Dependency Inversion)

from studyswap.db.repositories.barter_repository import BarterRepository
from studyswap.db.repositories.item_repository import ItemRepository
from studyswap.db.repositories.user_repository import UserRepository

__all__ = ["UserRepository", "ItemRepository", "BarterRepository"]
