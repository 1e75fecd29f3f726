from datetime import datetime

from rental.booking_states import BookingStatus
from .booking_schemas import CamelOut


class AvailabilitySlot(CamelOut):
    """One occupied interval on an item's calendar"""
    id: str
    start_date: datetime
    end_date: datetime
    status: BookingStatus
    quantity: int


class CapacityOut(CamelOut):
    total_quantity: int
    used: int
    available: int
    fits: bool
