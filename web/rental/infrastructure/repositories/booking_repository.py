from typing import Optional, List, Iterable, Sequence
from datetime import datetime
from sqlalchemy import select, update, func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from rental.core import BaseRepository
from rental.models import Booking
from rental.booking_states import BookingStatus, ADMIN_BLOCK_PREFIX


def _values(statuses: Iterable[BookingStatus]) -> List[str]:
    return [BookingStatus(s).value for s in statuses]


# Relationships needed to build notification recipients
WITH_PEOPLE = (
    selectinload(Booking.user),
    selectinload(Booking.assigned_to),
    selectinload(Booking.item),
)


class BookingRepository(BaseRepository[Booking]):
    """Booking repository implementation"""

    def __init__(self, session: AsyncSession):
        super().__init__(Booking, session)

    async def get_with_people(self, booking_id: str) -> Optional[Booking]:
        """Get booking with owner, assignee and item loaded"""
        query = (
            select(Booking)
            .options(*WITH_PEOPLE)
            .where(Booking.id == booking_id)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def sum_overlapping_quantity(
        self,
        item_id: str,
        start: datetime,
        end: datetime,
        statuses: Iterable[BookingStatus],
        *,
        exclude_id: Optional[str] = None,
    ) -> int:
        """Sum quantity of bookings whose interval intersects [start, end)"""
        query = select(func.coalesce(func.sum(Booking.quantity), 0)).where(
            Booking.item_id == item_id,
            Booking.status.in_(_values(statuses)),
            Booking.start_date < end,
            Booking.end_date > start,
        )
        if exclude_id is not None:
            query = query.where(Booking.id != exclude_id)
        return int(await self.session.scalar(query) or 0)

    async def list_overlapping(
        self,
        item_id: str,
        start: datetime,
        end: datetime,
        statuses: Iterable[BookingStatus],
    ) -> List[Booking]:
        """Bookings on the item intersecting [start, end), ordered by start"""
        return await self.list_where(
            Booking.item_id == item_id,
            Booking.status.in_(_values(statuses)),
            Booking.start_date < end,
            Booking.end_date > start,
            order_by=(Booking.start_date, Booking.id),
        )

    async def find_conflict(
        self,
        item_id: str,
        start: datetime,
        end: datetime,
        statuses: Iterable[BookingStatus],
    ) -> Optional[Booking]:
        found = await self.list_where(
            Booking.item_id == item_id,
            Booking.status.in_(_values(statuses)),
            Booking.start_date < end,
            Booking.end_date > start,
            order_by=(Booking.start_date,),
            limit=1,
        )
        return found[0] if found else None

    async def list_for_user(self, user_id: str) -> List[Booking]:
        return await self.list_where(
            Booking.user_id == user_id,
            order_by=(Booking.start_date,),
            options=(selectinload(Booking.item),),
        )

    async def list_for_team(
        self,
        statuses: Sequence[BookingStatus],
        *,
        include_blocks: bool = False,
        limit: int = 100,
    ) -> List[Booking]:
        criteria = [Booking.status.in_(_values(statuses))]
        if not include_blocks:
            criteria.append(or_(Booking.notes.is_(None), ~Booking.notes.startswith(ADMIN_BLOCK_PREFIX, autoescape=True)))
        return await self.list_where(
            *criteria,
            order_by=(Booking.start_date, Booking.id),
            options=WITH_PEOPLE,
            limit=limit,
            fresh=True,
        )

    async def list_due_for_borrow(self, now: datetime, soon: datetime) -> List[Booking]:
        """Accepted bookings starting by *soon* that have not ended yet"""
        return await self.list_where(
            Booking.status == BookingStatus.ACCEPTED.value,
            Booking.start_date <= soon,
            Booking.end_date >= now,
            options=WITH_PEOPLE,
            fresh=True,
        )

    async def list_expired_open(self, now: datetime) -> List[Booking]:
        """Requested or accepted bookings whose end has passed"""
        return await self.list_where(
            Booking.status.in_(_values((BookingStatus.REQUESTED, BookingStatus.ACCEPTED))),
            Booking.end_date < now,
            options=WITH_PEOPLE,
            fresh=True,
        )

    async def list_stale_borrowed_ids(self, threshold: datetime) -> List[str]:
        result = await self.session.scalars(
            select(Booking.id).where(
                Booking.status == BookingStatus.BORROWED.value,
                Booking.updated_at <= threshold,
            )
        )
        return list(result.all())

    async def set_status(
        self,
        ids: Iterable[str],
        status: BookingStatus,
        *,
        from_statuses: Optional[Iterable[BookingStatus]] = None,
    ) -> List[str]:
        """Batch status write keyed by id set; returns the ids actually moved.

        With *from_statuses*, rows that moved elsewhere since the scan are
        left alone so a late write can never move a booking backwards.
        """
        ids = list(ids)
        if not ids:
            return []
        stmt = (
            update(Booking)
            .where(Booking.id.in_(ids))
            .values(status=BookingStatus(status).value, updated_at=datetime.utcnow())
            .returning(Booking.id)
            .execution_options(synchronize_session=False)
        )
        if from_statuses is not None:
            stmt = stmt.where(Booking.status.in_(_values(from_statuses)))
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def transition(
        self,
        booking_id: str,
        from_statuses: Iterable[BookingStatus],
        values: dict,
    ) -> bool:
        """Single-row conditional write; False when the row is no longer in *from_statuses*"""
        values = dict(values)
        if "status" in values:
            values["status"] = BookingStatus(values["status"]).value
        values.setdefault("updated_at", datetime.utcnow())
        touched = await self.update_ids(
            [booking_id], values, Booking.status.in_(_values(from_statuses))
        )
        return touched == 1

    async def delete_ended_before(self, threshold: datetime) -> int:
        return await self.delete_where(Booking.end_date < threshold)

    async def delete_for_users(self, user_ids: Sequence[str]) -> int:
        if not user_ids:
            return 0
        return await self.delete_where(Booking.user_id.in_(list(user_ids)))

    async def unassign_users(self, user_ids: Sequence[str]) -> int:
        """Clear the assignee without touching ``updated_at``, which drives the
        stale-borrow clock."""
        if not user_ids:
            return 0
        ids = await self.session.scalars(
            select(Booking.id).where(Booking.assigned_to_id.in_(list(user_ids)))
        )
        return await self.update_ids(ids.all(), {"assigned_to_id": None, "updated_at": Booking.updated_at})
