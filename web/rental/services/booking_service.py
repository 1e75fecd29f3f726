from __future__ import annotations

import calendar
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from ..core import (
    BaseService,
    NotFoundError,
    ValidationError,
    AuthorizationError,
    PreconditionFailedError,
    Settings,
    get_settings,
)
from ..booking_states import (
    BookingStatus,
    CANCELLABLE_STATUSES,
    OPEN_STATUSES,
    admin_block_notes,
    as_status,
    ensure_cancellable,
    ensure_transition,
    to_utc_naive,
)
from ..infrastructure.repositories import BookingRepository, ItemRepository, UserRepository
from ..models import Booking, User
from ..roles import Actor
from .audit_service import AuditService
from .availability_service import AvailabilityService, validate_interval, validate_notes
from .notification_service import NotificationService, Recipient, StatusChange, booking_recipients
from .reconciliation_service import ReconciliationService, stamp_note

logger = logging.getLogger(__name__)

RENTAL_NOTE_AUTHOR = "Rental Team"


class Frequency(str, Enum):
    NONE = "NONE"
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    BIWEEKLY = "BIWEEKLY"
    MONTHLY = "MONTHLY"


def add_months(value: datetime, months: int) -> datetime:
    """Same day next month, clamped to the month's last day."""
    month_index = value.month - 1 + months
    year, month = value.year + month_index // 12, month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def advance(value: datetime, frequency: Frequency) -> datetime:
    if frequency is Frequency.DAILY:
        return value + timedelta(days=1)
    if frequency is Frequency.WEEKLY:
        return value + timedelta(weeks=1)
    if frequency is Frequency.BIWEEKLY:
        return value + timedelta(weeks=2)
    if frequency is Frequency.MONTHLY:
        return add_months(value, 1)
    return value


def expand_occurrences(
    start: datetime,
    end: datetime,
    frequency: Frequency,
    until: Optional[datetime],
    limit: int,
) -> List[tuple]:
    """Repeat ``[start, end)`` at *frequency* while the start is not after *until*."""
    until = until or start
    duration = end - start
    occurrences = []
    current = start
    while len(occurrences) < limit:
        occurrences.append((current, current + duration))
        if frequency is Frequency.NONE:
            break
        current = advance(current, frequency)
        if current > until:
            break
    return occurrences


@dataclass
class BlockResult:
    title: str
    created: List[str] = field(default_factory=list)
    skipped: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def created_count(self) -> int:
        return len(self.created)

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)


class BookingService(BaseService):
    """User and rental-team operations on bookings.

    Every status change goes through the transition table, is written with
    a conditional single-row update and is audited in the same transaction.
    """

    def __init__(
        self,
        session: AsyncSession,
        notifications: NotificationService,
        settings: Optional[Settings] = None,
    ):
        super().__init__(session)
        self.settings = settings or get_settings()
        self.bookings = BookingRepository(session)
        self.items = ItemRepository(session)
        self.users = UserRepository(session)
        self.availability = AvailabilityService(session, self.settings)
        self.audit = AuditService(session)
        self.notifications = notifications
        self.reconciler = ReconciliationService(session, notifications, self.settings)

    # ---------- helpers ----------

    async def _get(self, booking_id: str) -> Booking:
        booking = await self.bookings.get_with_people(booking_id)
        if not booking:
            raise NotFoundError("Booking", booking_id)
        return booking

    async def _user(self, user_id: str) -> User:
        user = await self.users.get(user_id)
        if not user:
            raise NotFoundError("User", user_id)
        return user

    def _max_range_days(self, actor: Actor) -> int:
        return self.settings.TEAM_MAX_RANGE_DAYS if actor.is_team_member else self.settings.USER_MAX_RANGE_DAYS

    @staticmethod
    def _require_team(actor: Actor) -> None:
        if not actor.is_team_member:
            raise AuthorizationError("Access denied.")

    async def _write_transition(
        self,
        booking: Booking,
        from_statuses: Sequence[BookingStatus],
        values: Dict[str, Any],
    ) -> Booking:
        """Apply *values* only if the row is still in *from_statuses*; reload it either way."""
        written = await self.bookings.transition(booking.id, from_statuses, values)
        fresh = await self._get(booking.id)
        if not written:
            raise PreconditionFailedError(
                f'Booking status changed to "{fresh.status}" before the update was applied.',
                status=fresh.status,
            )
        return fresh

    async def _announce(self, booking: Booking, status: BookingStatus, performed_by: Optional[User] = None) -> None:
        await self.notifications.notify_status_change(
            StatusChange(
                booking_id=booking.id,
                status=status,
                item_title=booking.item.title,
                start_date=booking.start_date,
                end_date=booking.end_date,
                notes=booking.notes,
                recipients=booking_recipients(booking),
                performed_by=Recipient.from_user(performed_by) if performed_by else None,
            )
        )

    # ---------- user operations ----------

    async def create_booking(
        self,
        actor: Actor,
        item_id: str,
        start: datetime,
        end: datetime,
        quantity: int = 1,
        notes: Optional[str] = None,
        *,
        now: Optional[datetime] = None,
    ) -> Booking:
        start, end = validate_interval(
            start, end, max_range_days=self._max_range_days(actor), now=now or datetime.utcnow()
        )
        notes = validate_notes(notes, self.settings.NOTES_MAX_LENGTH)
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1.", field="quantity")

        item = await self.items.get_with_members(item_id)
        if not item:
            raise NotFoundError("Item", item_id)
        requester = await self._user(actor.id)
        await self.availability.ensure_capacity(item_id, start, end, quantity)

        booking = await self.bookings.create(obj_in={
            "user_id": actor.id,
            "item_id": item_id,
            "quantity": quantity,
            "start_date": start,
            "end_date": end,
            "status": BookingStatus.REQUESTED.value,
            "notes": notes,
        })
        await self.audit.record(booking.id, f"status:{BookingStatus.REQUESTED.value}", user_id=actor.id)
        await self.notifications.notify_booking_request(
            booking,
            item_title=item.title,
            members=item.responsible_members,
            requester=Recipient.from_user(requester),
        )
        logger.info("Booking %s requested on item %s by %s", booking.id, item_id, actor.id)
        return booking

    async def update_booking(
        self,
        actor: Actor,
        booking_id: str,
        start: datetime,
        end: datetime,
        notes: Optional[str] = None,
        *,
        now: Optional[datetime] = None,
    ) -> Booking:
        """Owner edits the interval and notes of a request still awaiting review."""
        booking = await self._get(booking_id)
        if booking.user_id != actor.id:
            raise AuthorizationError("You can only update your own bookings.")
        if as_status(booking.status) is not BookingStatus.REQUESTED:
            raise PreconditionFailedError(
                f'Bookings with status "{booking.status}" cannot be updated by user.',
                status=booking.status,
            )
        start, end = validate_interval(
            start, end, max_range_days=self._max_range_days(actor), now=now or datetime.utcnow()
        )
        notes = validate_notes(notes, self.settings.NOTES_MAX_LENGTH)
        await self.availability.ensure_capacity(
            booking.item_id, start, end, booking.quantity, exclude_id=booking.id
        )

        values: Dict[str, Any] = {"start_date": start, "end_date": end}
        if notes is not None:
            values["notes"] = notes
        booking = await self._write_transition(booking, (BookingStatus.REQUESTED,), values)
        await self.audit.record(booking.id, "updated", user_id=actor.id)
        return booking

    async def cancel_booking(self, actor: Actor, booking_id: str) -> Booking:
        booking = await self._get(booking_id)
        if booking.user_id != actor.id and not actor.is_team_member:
            raise AuthorizationError("Action not allowed.")
        ensure_cancellable(booking.status)

        try:
            booking = await self._write_transition(
                booking, tuple(CANCELLABLE_STATUSES), {"status": BookingStatus.CANCELLED}
            )
        except PreconditionFailedError as exc:
            ensure_cancellable(exc.details.get("status", booking.status))
            raise
        await self.audit.record(booking.id, f"status:{BookingStatus.CANCELLED.value}", user_id=actor.id)

        performed_by = None
        if booking.user_id != actor.id:
            performed_by = await self._user(actor.id)
        await self._announce(booking, BookingStatus.CANCELLED, performed_by)
        return booking

    async def list_for_user(self, actor: Actor) -> List[Booking]:
        return await self.bookings.list_for_user(actor.id)

    # ---------- rental team operations ----------

    async def update_status_by_team(
        self,
        actor: Actor,
        booking_id: str,
        new_status: "str | BookingStatus",
        *,
        now: Optional[datetime] = None,
    ) -> Booking:
        self._require_team(actor)
        booking = await self._get(booking_id)
        target = ensure_transition(booking.status, new_status)
        now = now or datetime.utcnow()

        if target is BookingStatus.COMPLETED and booking.start_date > now:
            raise ValidationError("Cannot mark booking as completed before it begins.", field="status")
        if target is BookingStatus.ACCEPTED:
            await self.availability.ensure_capacity(
                booking.item_id, booking.start_date, booking.end_date, booking.quantity,
                exclude_id=booking.id,
            )

        values: Dict[str, Any] = {"status": target}
        if target is BookingStatus.BORROWED and not booking.assigned_to_id:
            values["assigned_to_id"] = actor.id

        booking = await self._write_transition(booking, (as_status(booking.status),), values)
        await self.audit.record(booking.id, f"status:{target.value}", user_id=actor.id)
        await self._announce(booking, target, await self._user(actor.id))
        return booking

    async def add_rental_note(
        self,
        actor: Actor,
        booking_id: str,
        note: str,
        *,
        now: Optional[datetime] = None,
    ) -> Booking:
        self._require_team(actor)
        text = (note or "").strip()
        if not text:
            raise ValidationError("Note cannot be empty.", field="note")
        booking = await self._get(booking_id)

        notes = stamp_note(booking.notes, RENTAL_NOTE_AUTHOR, text, now or datetime.utcnow())
        validate_notes(notes, self.settings.NOTES_MAX_LENGTH)
        await self.bookings.update_ids([booking.id], {"notes": notes, "updated_at": datetime.utcnow()})
        await self.audit.record(booking.id, "notes:added", user_id=actor.id)
        return await self._get(booking.id)

    async def block_slots(
        self,
        actor: Actor,
        item_id: str,
        start: datetime,
        end: datetime,
        *,
        quantity: Optional[int] = None,
        reason: Optional[str] = None,
        frequency: "str | Frequency" = Frequency.NONE,
        until: Optional[datetime] = None,
    ) -> BlockResult:
        """Reserve capacity with administrative blocks, skipping occurrences
        that collide with an open booking."""
        if not actor.is_admin:
            raise AuthorizationError("Only admins can block slots.")
        start, end = validate_interval(start, end)
        if reason is not None and len(reason) > self.settings.BLOCK_REASON_MAX_LENGTH:
            raise ValidationError(
                f"Reason cannot exceed {self.settings.BLOCK_REASON_MAX_LENGTH} characters.", field="reason"
            )
        try:
            frequency = Frequency(frequency)
        except ValueError:
            raise ValidationError(f"Unknown recurrence frequency {frequency!r}.", field="frequency") from None

        item = await self.items.get(item_id)
        if not item:
            raise NotFoundError("Item", item_id)
        quantity = quantity or item.total_quantity
        if quantity > item.total_quantity:
            raise ValidationError("Block quantity cannot exceed available quantity.", field="quantity")

        occurrences = expand_occurrences(
            start,
            end,
            frequency,
            to_utc_naive(until) if until else None,
            self.settings.MAX_BLOCK_OCCURRENCES,
        )
        result = BlockResult(title=item.title)
        notes = admin_block_notes(reason)
        for occ_start, occ_end in occurrences:
            conflict = await self.bookings.find_conflict(item_id, occ_start, occ_end, OPEN_STATUSES)
            if conflict:
                result.skipped.append(
                    {"start": occ_start, "end": occ_end, "conflicting_booking_id": conflict.id}
                )
                continue
            block = await self.bookings.create(obj_in={
                "user_id": actor.id,
                "assigned_to_id": actor.id,
                "item_id": item_id,
                "quantity": quantity,
                "start_date": occ_start,
                "end_date": occ_end,
                "status": BookingStatus.ACCEPTED.value,
                "notes": notes,
            })
            await self.audit.record(block.id, "blocked:create", user_id=actor.id)
            result.created.append(block.id)

        logger.info(
            "Admin %s blocked item %s: %d created, %d skipped",
            actor.id, item_id, result.created_count, result.skipped_count,
        )
        return result

    async def list_for_team(
        self,
        actor: Actor,
        *,
        status: Optional["str | BookingStatus"] = None,
        include_blocks: bool = False,
        limit: int = 100,
    ) -> List[Booking]:
        """Actionable bookings for the desk, refreshed by an auto-borrow pass first."""
        self._require_team(actor)
        await self.reconciler.mark_upcoming_bookings_borrowed()
        statuses = (as_status(status),) if status else OPEN_STATUSES
        return await self.bookings.list_for_team(statuses, include_blocks=include_blocks, limit=limit)
