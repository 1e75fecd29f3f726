"""Capacity resolution over an item's shared quantity pool.

Two half-open intervals ``[a, b)`` and ``[c, d)`` overlap iff ``a < d`` and
``c < b``. A reservation fits when the summed quantity of counted bookings
intersecting its interval, plus its own quantity, does not exceed the item's
``total_quantity``. Pending requests only count when ``BLOCK_ON_PENDING`` is
enabled.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from ..core import BaseService, NotFoundError, ValidationError, CapacityExceededError, Settings, get_settings
from ..booking_states import BookingStatus, CAPACITY_STATUSES, OPEN_STATUSES, to_utc_naive
from ..infrastructure.repositories import BookingRepository, ItemRepository
from ..models import Booking, Item

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CapacityReport:
    total: int
    used: int
    requested: int

    @property
    def available(self) -> int:
        return max(self.total - self.used, 0)

    @property
    def fits(self) -> bool:
        return self.used + self.requested <= self.total


def validate_interval(
    start: datetime,
    end: datetime,
    *,
    max_range_days: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Tuple[datetime, datetime]:
    """Normalise to naive UTC and reject malformed ranges.

    ``max_range_days`` counts calendar days between the two dates, so a limit
    of 1 allows a booking to span two consecutive dates.
    """
    start, end = to_utc_naive(start), to_utc_naive(end)
    if end <= start:
        raise ValidationError("End date must be after start date.", field="end")
    if now is not None and start < now:
        raise ValidationError("Cannot book a time in the past.", field="start")
    if max_range_days is not None and (end.date() - start.date()).days > max_range_days:
        raise ValidationError(f"Booking range cannot exceed {max_range_days + 1} days.", field="end")
    return start, end


def validate_notes(notes: Optional[str], limit: int) -> Optional[str]:
    if notes is None:
        return None
    if len(notes) > limit:
        raise ValidationError(f"Notes cannot exceed {limit} characters.", field="notes")
    return notes


class AvailabilityService(BaseService):
    def __init__(self, session: AsyncSession, settings: Optional[Settings] = None):
        super().__init__(session)
        self.settings = settings or get_settings()
        self.bookings = BookingRepository(session)
        self.items = ItemRepository(session)

    @property
    def counted_statuses(self) -> Tuple[BookingStatus, ...]:
        if self.settings.BLOCK_ON_PENDING:
            return (BookingStatus.REQUESTED, *CAPACITY_STATUSES)
        return CAPACITY_STATUSES

    async def _item(self, item_id: str) -> Item:
        item = await self.items.get(item_id)
        if not item:
            raise NotFoundError("Item", item_id)
        return item

    async def used_quantity(
        self,
        item_id: str,
        start: datetime,
        end: datetime,
        *,
        exclude_id: Optional[str] = None,
    ) -> int:
        return await self.bookings.sum_overlapping_quantity(
            item_id, start, end, self.counted_statuses, exclude_id=exclude_id
        )

    async def check(
        self,
        item_id: str,
        start: datetime,
        end: datetime,
        quantity: int = 1,
        *,
        exclude_id: Optional[str] = None,
    ) -> CapacityReport:
        start, end = validate_interval(start, end)
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1.", field="quantity")
        item = await self._item(item_id)
        used = await self.used_quantity(item_id, start, end, exclude_id=exclude_id)
        return CapacityReport(total=item.total_quantity, used=used, requested=quantity)

    async def ensure_capacity(
        self,
        item_id: str,
        start: datetime,
        end: datetime,
        quantity: int = 1,
        *,
        exclude_id: Optional[str] = None,
    ) -> CapacityReport:
        """Raise :class:`CapacityExceededError` unless the reservation fits."""
        report = await self.check(item_id, start, end, quantity, exclude_id=exclude_id)
        if not report.fits:
            logger.info(
                "Capacity exceeded on item %s: used=%d requested=%d total=%d",
                item_id, report.used, report.requested, report.total,
            )
            raise CapacityExceededError(report.requested, report.used, report.total)
        return report

    async def list_availability(self, item_id: str, start: datetime, end: datetime) -> List[Booking]:
        """Open bookings on the item intersecting ``[start, end)``, ordered by start."""
        start, end = validate_interval(start, end)
        await self._item(item_id)
        return await self.bookings.list_overlapping(item_id, start, end, OPEN_STATUSES)
