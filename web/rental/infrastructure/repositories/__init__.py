from .booking_repository import BookingRepository
from .item_repository import ItemRepository
from .user_repository import UserRepository
from .notification_repository import NotificationRepository
from .log_repository import LogRepository

__all__ = [
    "BookingRepository",
    "ItemRepository",
    "UserRepository",
    "NotificationRepository",
    "LogRepository",
]
