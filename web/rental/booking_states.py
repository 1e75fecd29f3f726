"""Booking lifecycle rules.

State transitions::

    REQUESTED -> ACCEPTED | DECLINED | CANCELLED
    ACCEPTED  -> BORROWED | CANCELLED
    BORROWED  -> COMPLETED

DECLINED, COMPLETED and CANCELLED are terminal. Status only ever moves
forward along these edges.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from .core.exceptions import PreconditionFailedError


class BookingStatus(str, Enum):
    REQUESTED = "REQUESTED"
    ACCEPTED = "ACCEPTED"
    DECLINED = "DECLINED"
    BORROWED = "BORROWED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.REQUESTED: frozenset(
        {BookingStatus.ACCEPTED, BookingStatus.DECLINED, BookingStatus.CANCELLED}
    ),
    BookingStatus.ACCEPTED: frozenset({BookingStatus.BORROWED, BookingStatus.CANCELLED}),
    BookingStatus.BORROWED: frozenset({BookingStatus.COMPLETED}),
    BookingStatus.DECLINED: frozenset(),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
}

TERMINAL_STATUSES = frozenset(s for s, targets in TRANSITIONS.items() if not targets)
CANCELLABLE_STATUSES = frozenset({BookingStatus.REQUESTED, BookingStatus.ACCEPTED})

# Bookings that hold units of the item's pool
CAPACITY_STATUSES = (BookingStatus.ACCEPTED, BookingStatus.BORROWED)
# Bookings shown on the availability calendar and treated as block conflicts
OPEN_STATUSES = (BookingStatus.REQUESTED, BookingStatus.ACCEPTED, BookingStatus.BORROWED)

ADMIN_BLOCK_PREFIX = "[ADMIN_BLOCK]"


def as_status(value: "str | BookingStatus") -> BookingStatus:
    return value if isinstance(value, BookingStatus) else BookingStatus(value)


def is_legal_transition(current: "str | BookingStatus", target: "str | BookingStatus") -> bool:
    return as_status(target) in TRANSITIONS[as_status(current)]


def ensure_transition(current: "str | BookingStatus", target: "str | BookingStatus") -> BookingStatus:
    """Return *target* as a status or raise if the edge does not exist."""
    current, target = as_status(current), as_status(target)
    if target not in TRANSITIONS[current]:
        raise PreconditionFailedError(
            f'Bookings with status "{current.value}" cannot be moved to "{target.value}".',
            status=current.value,
        )
    return target


def ensure_cancellable(current: "str | BookingStatus") -> None:
    current = as_status(current)
    if current not in CANCELLABLE_STATUSES:
        raise PreconditionFailedError(
            f'Bookings with status "{current.value}" cannot be cancelled.',
            status=current.value,
        )


def intervals_overlap(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """Half-open ``[a_start, a_end)`` and ``[b_start, b_end)`` share an instant."""
    return a_start < b_end and b_start < a_end


def fits_capacity(used: int, requested: int, total: int) -> bool:
    return used + requested <= total


def is_admin_block(notes: Optional[str]) -> bool:
    return bool(notes and notes.startswith(ADMIN_BLOCK_PREFIX))


def admin_block_reason(notes: Optional[str]) -> Optional[str]:
    if not is_admin_block(notes):
        return None
    reason = notes[len(ADMIN_BLOCK_PREFIX):].strip()
    return reason or None


def admin_block_notes(reason: Optional[str]) -> str:
    reason = (reason or "").strip()
    return f"{ADMIN_BLOCK_PREFIX} {reason}" if reason else ADMIN_BLOCK_PREFIX


def to_utc_naive(value: datetime) -> datetime:
    """Timestamps are stored as naive UTC."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value
