from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from jinja2 import Environment, PackageLoader, StrictUndefined, select_autoescape

from ..booking_states import BookingStatus, as_status
from ..core import Settings, get_settings
from ..infrastructure.mailer import Mailer, OutgoingEmail

logger = logging.getLogger(__name__)

_env = Environment(
    loader=PackageLoader("rental", "templates"),
    autoescape=select_autoescape(enabled_extensions=("html",), default_for_string=False),
    undefined=StrictUndefined,
    keep_trailing_newline=True,
)

STATUS_LABELS = {
    BookingStatus.REQUESTED: "requested",
    BookingStatus.ACCEPTED: "accepted",
    BookingStatus.DECLINED: "declined",
    BookingStatus.BORROWED: "borrowed",
    BookingStatus.COMPLETED: "completed",
    BookingStatus.CANCELLED: "cancelled",
}


def format_moment(value: datetime) -> str:
    return value.strftime("%b %d, %Y, %H:%M UTC")


def first_name(name: Optional[str]) -> Optional[str]:
    name = (name or "").strip()
    return name.split(" ")[0] if name else None


@dataclass(frozen=True)
class BookingSummary:
    item_title: str
    start_date: datetime
    end_date: datetime
    notes: Optional[str] = None


class BookingEmailService:
    """Renders booking emails from templates and hands them to the mailer."""

    def __init__(self, mailer: Mailer, settings: Optional[Settings] = None):
        self.mailer = mailer
        self.settings = settings or get_settings()

    def render_status_email(
        self,
        *,
        to: str,
        name: Optional[str],
        booking: BookingSummary,
        status: "str | BookingStatus",
        reason: Optional[str] = None,
        performed_by: Optional[str] = None,
    ) -> OutgoingEmail:
        label = STATUS_LABELS.get(as_status(status), "updated")
        text = _env.get_template("email/booking_status.txt").render(
            first_name=first_name(name),
            item_title=booking.item_title,
            status_label=label,
            start_label=format_moment(booking.start_date),
            end_label=format_moment(booking.end_date),
            reason=reason,
            performed_by=performed_by,
            notes=(booking.notes or "").strip() or None,
            sender_label=self.settings.SENDER_LABEL,
        )
        return OutgoingEmail(to=to, subject=f"Booking {label}: {booking.item_title}", text=text)

    def render_request_email(
        self,
        *,
        to: str,
        name: Optional[str],
        requester_name: Optional[str],
        requester_email: Optional[str],
        booking: BookingSummary,
    ) -> OutgoingEmail:
        context = dict(
            first_name=first_name(name),
            requester_label=(requester_name or "").strip() or requester_email or "A resident",
            item_title=booking.item_title,
            start_label=format_moment(booking.start_date),
            end_label=format_moment(booking.end_date),
            notes=(booking.notes or "").strip() or None,
            sender_label=self.settings.SENDER_LABEL,
        )
        return OutgoingEmail(
            to=to,
            subject=f"New booking request: {booking.item_title}",
            text=_env.get_template("email/booking_request.txt").render(**context),
            html=_env.get_template("email/booking_request.html").render(**context),
        )

    async def send_status_email(self, **kwargs) -> None:
        email = self.render_status_email(**kwargs)
        await self.mailer.send(email)
        logger.info("Sent booking status email to %s", email.to)

    async def send_request_email(self, **kwargs) -> None:
        email = self.render_request_email(**kwargs)
        await self.mailer.send(email)
        logger.info("Sent booking request email to %s", email.to)
