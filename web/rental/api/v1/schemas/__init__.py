from .booking_schemas import (
    BookingIn, BookingUpdate, BookingStatusUpdate, RentalNoteIn, BlockSlotsIn, BlockSlotsOut,
    BookingOut, TeamBookingOut,
)
from .availability_schemas import AvailabilitySlot, CapacityOut
from .notification_schemas import NotificationMessage, NotificationOut, ClearedOut
from .cron_schemas import CronJobResult, CronReport

__all__ = [
    # Booking schemas
    "BookingIn",
    "BookingUpdate",
    "BookingStatusUpdate",
    "RentalNoteIn",
    "BlockSlotsIn",
    "BlockSlotsOut",
    "BookingOut",
    "TeamBookingOut",

    # Availability schemas
    "AvailabilitySlot",
    "CapacityOut",

    # Notification schemas
    "NotificationMessage",
    "NotificationOut",
    "ClearedOut",

    # Cron schemas
    "CronJobResult",
    "CronReport",
]
