from datetime import datetime
import uuid

from sqlalchemy import (
    String, Integer, ForeignKey, DateTime, Text, Boolean, Index, CheckConstraint,
)
from sqlalchemy.orm import mapped_column, relationship, DeclarativeBase

from .roles import Role
from .booking_states import BookingStatus, admin_block_reason, is_admin_block


def _gen_id() -> str:
    """Return a random opaque identifier."""
    return uuid.uuid4().hex


class Base(DeclarativeBase): ...


# Staff members responsible for handling requests on an item
class ItemResponsibleMember(Base):
    __tablename__ = "item_responsible_members"
    item_id = mapped_column(ForeignKey("items.id", ondelete="CASCADE"), primary_key=True)
    user_id = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)


# ---------- Actors ----------
class User(Base):
    __tablename__ = "users"
    id        = mapped_column(String(32), primary_key=True, default=_gen_id)
    email     = mapped_column(String(128), unique=True, nullable=True)
    name      = mapped_column(String(120), nullable=True)
    role      = mapped_column(String(16), default=Role.user.value, nullable=False)
    email_booking_notifications = mapped_column(Boolean, default=True, nullable=False)
    last_login_at = mapped_column(DateTime, nullable=True)
    created   = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    bookings  = relationship("Booking", back_populates="user", foreign_keys="Booking.user_id")


# ---------- Inventory ----------
class Item(Base):
    __tablename__ = "items"
    id             = mapped_column(String(32), primary_key=True, default=_gen_id)
    title          = mapped_column(String(200), nullable=False)
    total_quantity = mapped_column(Integer, default=1, nullable=False)

    responsible_members = relationship(
        "User",
        secondary="item_responsible_members",
    )
    bookings = relationship("Booking", back_populates="item")

    __table_args__ = (
        CheckConstraint("total_quantity > 0", name="ck_items_total_quantity_positive"),
    )


# ---------- Bookings ----------
class Booking(Base):
    __tablename__ = "bookings"
    id             = mapped_column(String(32), primary_key=True, default=_gen_id)
    user_id        = mapped_column(ForeignKey("users.id"), nullable=False)
    assigned_to_id = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    item_id        = mapped_column(ForeignKey("items.id"), nullable=False)
    # Half-open interval [start_date, end_date), naive UTC
    start_date     = mapped_column(DateTime, nullable=False)
    end_date       = mapped_column(DateTime, nullable=False)
    quantity       = mapped_column(Integer, default=1, nullable=False)
    status         = mapped_column(String(16), default=BookingStatus.REQUESTED.value, nullable=False)
    # User notes are bounded on input; system and staff entries are appended
    notes          = mapped_column(Text, nullable=True)
    created_at     = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at     = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    user        = relationship("User", back_populates="bookings", foreign_keys=[user_id])
    assigned_to = relationship("User", foreign_keys=[assigned_to_id])
    item        = relationship("Item", back_populates="bookings")

    __table_args__ = (
        CheckConstraint("start_date < end_date", name="ck_bookings_interval"),
        CheckConstraint("quantity > 0", name="ck_bookings_quantity_positive"),
        Index("ix_bookings_item_interval", "item_id", "start_date", "end_date"),
        Index("ix_bookings_status_start", "status", "start_date"),
        Index("ix_bookings_end_date", "end_date"),
    )

    @property
    def is_block(self) -> bool:
        return is_admin_block(self.notes)

    @property
    def block_reason(self):
        return admin_block_reason(self.notes)


# ---------- Notifications ----------
class Notification(Base):
    __tablename__ = "notifications"
    id         = mapped_column(String(32), primary_key=True, default=_gen_id)
    user_id    = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    booking_id = mapped_column(ForeignKey("bookings.id", ondelete="SET NULL"), nullable=True)
    type       = mapped_column(String(32), nullable=False)  # BOOKING_REQUEST | BOOKING_RESPONSE
    # JSON text: {"key": <translation key>, "vars": {...}}
    message    = mapped_column(Text, nullable=False)
    read       = mapped_column(Boolean, default=False, nullable=False)
    created_at = mapped_column(DateTime, default=datetime.utcnow, nullable=False)


# ---------- Audit ----------
class Log(Base):
    __tablename__ = "logs"
    id         = mapped_column(Integer, primary_key=True, autoincrement=True)
    type       = mapped_column(String(16), nullable=False)  # BOOKING
    user_id    = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    # Plain reference so audit rows outlive purged bookings
    booking_id = mapped_column(String(32), nullable=True, index=True)
    message    = mapped_column(String(255), nullable=False)
    created_at = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
