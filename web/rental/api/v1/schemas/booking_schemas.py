from typing import Optional, List
from datetime import datetime
from pydantic import AliasGenerator, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from rental.booking_states import BookingStatus
from rental.services.booking_service import Frequency


class CamelOut(BaseModel):
    """Response models serialise with camelCase keys"""
    model_config = ConfigDict(
        from_attributes=True,
        alias_generator=AliasGenerator(serialization_alias=to_camel),
    )


class BookingIn(BaseModel):
    """Schema for requesting a booking"""
    item_id: str
    start: datetime
    end: datetime
    quantity: int = Field(1, ge=1)
    notes: Optional[str] = None


class BookingUpdate(BaseModel):
    """Schema for the owner editing a pending request"""
    start: datetime
    end: datetime
    notes: Optional[str] = None


class BookingStatusUpdate(BaseModel):
    """Schema for a rental team status change"""
    status: BookingStatus


class RentalNoteIn(BaseModel):
    note: str = Field(..., min_length=1)


class BlockSlotsIn(BaseModel):
    """Schema for administrative capacity blocks"""
    item_id: str
    start: datetime
    end: datetime
    quantity: Optional[int] = Field(None, ge=1)
    reason: Optional[str] = None
    frequency: Frequency = Frequency.NONE
    until: Optional[datetime] = None


class SkippedSlot(CamelOut):
    start: datetime
    end: datetime
    conflicting_booking_id: str


class BlockSlotsOut(CamelOut):
    created_count: int
    skipped_count: int
    skipped: List[SkippedSlot]
    title: str


class PersonOut(CamelOut):
    id: str
    name: Optional[str] = None
    email: Optional[str] = None


class ItemBrief(CamelOut):
    id: str
    title: str
    total_quantity: int


class BookingOut(CamelOut):
    """Schema for booking responses"""
    id: str
    item_id: str
    user_id: str
    assigned_to_id: Optional[str] = None
    start_date: datetime
    end_date: datetime
    quantity: int
    status: BookingStatus
    notes: Optional[str] = None
    updated_at: datetime


class TeamBookingOut(BookingOut):
    """Booking with the people and item the desk needs to act on it"""
    item: ItemBrief
    user: PersonOut
    assigned_to: Optional[PersonOut] = None
    is_block: bool = False
    block_reason: Optional[str] = None
