"""
Time-driven reconciliation jobs.

Each job scans for rows matching a wall-clock predicate and then writes by id.
Writes are conditional on the row still being in the scanned status, so a job
may be re-run, interrupted or raced by another trigger and still converge on
the same end state. Zero matches is a no-op.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ..core import BaseService, Settings, get_settings
from ..booking_states import BookingStatus
from ..infrastructure.repositories import BookingRepository, NotificationRepository, UserRepository
from ..models import Booking
from .audit_service import AuditService
from .notification_service import NotificationService, StatusChange, booking_recipients

logger = logging.getLogger(__name__)

AUTO_CANCEL_REASON = "This booking was automatically cancelled because the booking end time has passed."


def stamp_note(notes: Optional[str], author: str, text: str, when: datetime) -> str:
    """Append ``<author> (YYYY-MM-DD HH:MM):\\n<text>`` after a blank line."""
    entry = f"{author} ({when.strftime('%Y-%m-%d %H:%M')}):\n{text}"
    return f"{notes}\n\n{entry}" if notes else entry


class ReconciliationService(BaseService):
    def __init__(
        self,
        session: AsyncSession,
        notifications: NotificationService,
        settings: Optional[Settings] = None,
    ):
        super().__init__(session)
        self.settings = settings or get_settings()
        self.bookings = BookingRepository(session)
        self.users = UserRepository(session)
        self.inbox = NotificationRepository(session)
        self.audit = AuditService(session)
        self.notifications = notifications

    async def _announce(self, booking: Booking, status: BookingStatus, *, notes=None, reason=None) -> None:
        await self.notifications.notify_status_change(
            StatusChange(
                booking_id=booking.id,
                status=status,
                item_title=booking.item.title,
                start_date=booking.start_date,
                end_date=booking.end_date,
                notes=notes,
                recipients=booking_recipients(booking),
                email_reason=reason,
            )
        )

    async def mark_upcoming_bookings_borrowed(self, now: Optional[datetime] = None) -> int:
        """Accepted bookings starting within the lead window become borrowed."""
        now = now or datetime.utcnow()
        soon = now + timedelta(minutes=self.settings.AUTO_BORROW_LEAD_MINUTES)
        due = await self.bookings.list_due_for_borrow(now, soon)

        moved: List[Booking] = []
        for booking in due:
            if await self.bookings.transition(
                booking.id, (BookingStatus.ACCEPTED,), {"status": BookingStatus.BORROWED}
            ):
                moved.append(booking)
        if not moved:
            return 0

        await self.audit.record_many([b.id for b in moved], f"status:{BookingStatus.BORROWED.value}")
        for booking in moved:
            await self._announce(booking, BookingStatus.BORROWED)
        logger.info("Auto-borrowed %d booking(s)", len(moved))
        return len(moved)

    async def cancel_expired_bookings(self, now: Optional[datetime] = None) -> int:
        """Requested or accepted bookings whose end has passed are cancelled."""
        now = now or datetime.utcnow()
        expired = await self.bookings.list_expired_open(now)

        cancelled = []
        for booking in expired:
            notes = stamp_note(booking.notes, "System", AUTO_CANCEL_REASON, now)
            if await self.bookings.transition(
                booking.id,
                (BookingStatus.REQUESTED, BookingStatus.ACCEPTED),
                {"status": BookingStatus.CANCELLED, "notes": notes},
            ):
                cancelled.append((booking, notes))
        if not cancelled:
            return 0

        await self.audit.record_many([b.id for b, _ in cancelled], f"status:{BookingStatus.CANCELLED.value}")
        for booking, notes in cancelled:
            await self._announce(booking, BookingStatus.CANCELLED, notes=notes, reason=AUTO_CANCEL_REASON)
        logger.info("Auto-cancelled %d expired booking(s)", len(cancelled))
        return len(cancelled)

    async def auto_complete_borrowed_bookings(self, now: Optional[datetime] = None) -> int:
        """Borrowed bookings untouched for the stale window are completed silently."""
        now = now or datetime.utcnow()
        threshold = now - timedelta(days=self.settings.STALE_BORROW_DAYS)
        ids = await self.bookings.list_stale_borrowed_ids(threshold)
        if not ids:
            return 0
        moved = await self.bookings.set_status(
            ids, BookingStatus.COMPLETED, from_statuses=(BookingStatus.BORROWED,)
        )
        if not moved:
            return 0
        await self.audit.record_many(moved, f"status:{BookingStatus.COMPLETED.value}")
        logger.info("Auto-completed %d stale booking(s)", len(moved))
        return len(moved)

    async def delete_old_bookings(self, now: Optional[datetime] = None) -> int:
        now = now or datetime.utcnow()
        threshold = now - timedelta(days=self.settings.BOOKING_RETENTION_DAYS)
        count = await self.bookings.delete_ended_before(threshold)
        if count:
            logger.info("Purged %d booking(s) that ended before %s", count, threshold.isoformat())
        return count

    async def delete_inactive_users(self, now: Optional[datetime] = None) -> int:
        """Users who have not logged in within the inactivity window are removed
        together with their bookings and notifications."""
        now = now or datetime.utcnow()
        threshold = now - timedelta(days=self.settings.INACTIVE_USER_DAYS)
        ids = await self.users.list_inactive_ids(threshold)
        if not ids:
            return 0
        await self.inbox.delete_for_users(ids)
        await self.bookings.unassign_users(ids)
        await self.bookings.delete_for_users(ids)
        count = await self.users.delete_ids(ids)
        logger.info("Deleted %d inactive user(s)", count)
        return count
