from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from functools import partial
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from ..core import BaseService, NotFoundError, Settings, get_settings
from ..booking_states import BookingStatus, as_status
from ..infrastructure.event_bus import NotificationBus, NotificationEvent
from ..infrastructure.repositories import NotificationRepository
from ..infrastructure.tasks import BackgroundTaskSet
from ..infrastructure.transactions import on_commit
from ..models import Notification
from .email_service import BookingEmailService, BookingSummary

logger = logging.getLogger(__name__)

BOOKING_REQUEST = "BOOKING_REQUEST"
BOOKING_RESPONSE = "BOOKING_RESPONSE"

REQUEST_KEY = "notifications.bookingRequest"
AUTO_BORROWED_KEY = "notifications.autoBorrowed"

# Transitions that also produce an email
EMAIL_STATUSES = frozenset({BookingStatus.ACCEPTED, BookingStatus.CANCELLED})


def status_key(status: "str | BookingStatus", *, with_actor: bool) -> str:
    base = f"notifications.status.{as_status(status).value.lower()}"
    return f"{base}By" if with_actor else base


def encode_message(key: str, vars: Optional[Dict[str, Any]] = None) -> str:
    payload: Dict[str, Any] = {"key": key}
    if vars:
        payload["vars"] = vars
    return json.dumps(payload, ensure_ascii=False)


def decode_message(message: str) -> Dict[str, Any]:
    """Parse a stored payload; legacy plain-text rows come back as a bare key."""
    try:
        payload = json.loads(message)
    except (TypeError, ValueError):
        return {"key": message}
    if not isinstance(payload, dict) or "key" not in payload:
        return {"key": message}
    return payload


@dataclass(frozen=True)
class Recipient:
    id: str
    email: Optional[str] = None
    name: Optional[str] = None
    wants_email: bool = True

    @classmethod
    def from_user(cls, user) -> "Recipient":
        return cls(
            id=user.id,
            email=user.email,
            name=user.name,
            wants_email=bool(getattr(user, "email_booking_notifications", True)),
        )


@dataclass(frozen=True)
class StatusChange:
    """Everything the fan-out needs about one booking transition."""

    booking_id: str
    status: BookingStatus
    item_title: str
    start_date: datetime
    end_date: datetime
    notes: Optional[str] = None
    recipients: Sequence[Recipient] = field(default_factory=tuple)
    performed_by: Optional[Recipient] = None
    email_reason: Optional[str] = None


def dedupe_recipients(recipients: Iterable[Optional[Recipient]]) -> List[Recipient]:
    """First occurrence wins; entries without an id are dropped."""
    seen: Dict[str, Recipient] = {}
    for recipient in recipients:
        if recipient is None or not recipient.id:
            continue
        seen.setdefault(recipient.id, recipient)
    return list(seen.values())


def booking_recipients(booking) -> List[Recipient]:
    """Owner and assignee of a booking loaded with its people."""
    people = [booking.user, booking.assigned_to]
    return dedupe_recipients(Recipient.from_user(p) for p in people if p is not None)


class NotificationService(BaseService):
    """Turns booking events into per-recipient notification rows.

    Rows are written in the caller's transaction. Live delivery through the
    bus and emails are held until that transaction commits, then run as
    background tasks that never fail the caller.
    """

    def __init__(
        self,
        session: AsyncSession,
        bus: NotificationBus,
        emails: BookingEmailService,
        tasks: BackgroundTaskSet,
        settings: Optional[Settings] = None,
    ):
        super().__init__(session)
        self.repository = NotificationRepository(session)
        self.bus = bus
        self.emails = emails
        self.tasks = tasks
        self.settings = settings or get_settings()

    def actor_label(self, performed_by: Optional[Recipient]) -> Optional[str]:
        if performed_by is None:
            return None
        if performed_by.name and performed_by.name.strip():
            return performed_by.name.strip()
        if performed_by.email and performed_by.email.strip():
            return performed_by.email.strip()
        return self.settings.SENDER_LABEL

    def _spawn_after_commit(self, name: str, send, *args) -> None:
        # the coroutine is created only once the commit has happened
        on_commit(self.session, lambda: self.tasks.spawn(send(*args), name=name))

    def _publish(self, events: List[NotificationEvent]) -> None:
        for e in events:
            self.bus.publish(e)

    async def _persist(
        self,
        recipients: Sequence[Recipient],
        *,
        booking_id: str,
        type: str,
        message: str,
    ) -> List[Notification]:
        rows = [
            Notification(user_id=r.id, booking_id=booking_id, type=type, message=message)
            for r in recipients
        ]
        self.session.add_all(rows)
        await self.session.flush()
        events = [NotificationEvent.from_model(row) for row in rows]
        on_commit(self.session, partial(self._publish, events))
        return rows

    async def notify_status_change(self, change: StatusChange) -> List[Notification]:
        recipients = dedupe_recipients(change.recipients)
        if not recipients:
            return []

        status = as_status(change.status)
        actor = self.actor_label(change.performed_by)
        if status is BookingStatus.BORROWED and actor is None:
            key = AUTO_BORROWED_KEY
        else:
            key = status_key(status, with_actor=actor is not None)
        vars: Dict[str, Any] = {"item": change.item_title}
        if actor:
            vars["actor"] = actor

        rows = await self._persist(
            recipients,
            booking_id=change.booking_id,
            type=BOOKING_RESPONSE,
            message=encode_message(key, vars),
        )

        if status in EMAIL_STATUSES:
            summary = BookingSummary(change.item_title, change.start_date, change.end_date, change.notes)
            for recipient in recipients:
                if not recipient.email:
                    continue
                self._spawn_after_commit(
                    f"mail:{change.booking_id}:{recipient.id}",
                    self._send_status_email, recipient, summary, status, change.email_reason, actor,
                )
        return rows

    async def _send_status_email(
        self,
        recipient: Recipient,
        summary: BookingSummary,
        status: BookingStatus,
        reason: Optional[str],
        actor: Optional[str],
    ) -> None:
        try:
            await self.emails.send_status_email(
                to=recipient.email,
                name=recipient.name,
                booking=summary,
                status=status,
                reason=reason,
                performed_by=actor,
            )
        except Exception:
            logger.exception("Failed to send booking status email to %s", recipient.email)

    async def notify_booking_request(
        self,
        booking,
        *,
        item_title: str,
        members: Iterable,
        requester: Recipient,
    ) -> List[Notification]:
        """Tell the item's responsible staff that a new request arrived."""
        recipients = dedupe_recipients(Recipient.from_user(m) for m in members)
        if not recipients:
            return []
        rows = await self._persist(
            recipients,
            booking_id=booking.id,
            type=BOOKING_REQUEST,
            message=encode_message(REQUEST_KEY, {"item": item_title}),
        )
        summary = BookingSummary(item_title, booking.start_date, booking.end_date, booking.notes)
        for recipient in recipients:
            if not (recipient.email and recipient.wants_email):
                continue
            self._spawn_after_commit(
                f"mail:{booking.id}:{recipient.id}",
                self._send_request_email, recipient, requester, summary,
            )
        return rows

    async def _send_request_email(self, recipient: Recipient, requester: Recipient, summary: BookingSummary) -> None:
        try:
            await self.emails.send_request_email(
                to=recipient.email,
                name=recipient.name,
                requester_name=requester.name,
                requester_email=requester.email,
                booking=summary,
            )
        except Exception:
            logger.exception("Failed to send booking request email to %s", recipient.email)

    # ---------- Inbox ----------

    async def list_for_user(self, user_id: str, limit: int = 20) -> List[Notification]:
        return await self.repository.list_for_user(user_id, limit=limit)

    async def mark_read(self, user_id: str, notification_id: str) -> Notification:
        notification = await self.repository.get_for_user(notification_id, user_id)
        if not notification:
            raise NotFoundError("Notification", notification_id)
        notification.read = True
        await self.session.flush()
        return notification

    async def delete(self, user_id: str, notification_id: str) -> None:
        notification = await self.repository.get_for_user(notification_id, user_id)
        if not notification:
            raise NotFoundError("Notification", notification_id)
        await self.session.delete(notification)
        await self.session.flush()

    async def clear(self, user_id: str) -> int:
        return await self.repository.clear_for_user(user_id)
