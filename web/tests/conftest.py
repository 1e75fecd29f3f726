"""Shared fixtures: in-memory SQLite database, fake mailer and factories."""

from __future__ import annotations

import os

# Settings are read at import time by the database module
os.environ["DB_DSN"] = "sqlite+aiosqlite://"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["CRON_SECRET"] = "cron-test-secret"
os.environ["MAIL_ENABLED"] = "false"

from datetime import datetime, timedelta
from typing import List, Optional

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from rental.booking_states import BookingStatus
from rental.core import Settings
from rental.infrastructure import BackgroundTaskSet, NotificationBus, build_session_factory
from rental.infrastructure.mailer import Mailer, OutgoingEmail
from rental.models import Base, Booking, Item, Notification, User
from rental.roles import Actor
from rental.services import (
    BookingEmailService,
    BookingService,
    NotificationService,
    ReconciliationService,
)


class FakeMailer(Mailer):
    """Records outgoing emails; addresses in ``fail_for`` raise instead."""

    def __init__(self) -> None:
        self.sent: List[OutgoingEmail] = []
        self.fail_for: set = set()

    async def send(self, email: OutgoingEmail) -> None:
        if email.to in self.fail_for:
            raise ConnectionError(f"SMTP refused {email.to}")
        self.sent.append(email)


class Factory:
    def __init__(self, session):
        self.session = session
        self._seq = 0

    def _next(self) -> int:
        self._seq += 1
        return self._seq

    async def user(self, role: str = "user", **kwargs) -> User:
        n = self._next()
        kwargs.setdefault("email", f"user{n}@example.com")
        kwargs.setdefault("name", f"User {n}")
        user = User(role=role, **kwargs)
        self.session.add(user)
        await self.session.flush()
        return user

    async def item(self, total_quantity: int = 1, members=(), **kwargs) -> Item:
        kwargs.setdefault("title", f"Item {self._next()}")
        item = Item(total_quantity=total_quantity, **kwargs)
        item.responsible_members = list(members)
        self.session.add(item)
        await self.session.flush()
        return item

    async def booking(
        self,
        user: User,
        item: Item,
        start: datetime,
        end: datetime,
        status: BookingStatus = BookingStatus.REQUESTED,
        quantity: int = 1,
        **kwargs,
    ) -> Booking:
        booking = Booking(
            user_id=user.id,
            item_id=item.id,
            start_date=start,
            end_date=end,
            status=BookingStatus(status).value,
            quantity=quantity,
            **kwargs,
        )
        self.session.add(booking)
        await self.session.flush()
        return booking


@pytest.fixture
def now() -> datetime:
    return datetime.utcnow().replace(microsecond=0)


@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def factory(session) -> Factory:
    return Factory(session)


@pytest.fixture
def mailer() -> FakeMailer:
    return FakeMailer()


@pytest.fixture
async def tasks():
    tasks = BackgroundTaskSet()
    yield tasks
    await tasks.cancel_all()


@pytest.fixture
def bus(tasks) -> NotificationBus:
    return NotificationBus(tasks)


@pytest.fixture
def emails(mailer, settings) -> BookingEmailService:
    return BookingEmailService(mailer, settings)


@pytest.fixture
def notifications(session, bus, emails, tasks, settings) -> NotificationService:
    return NotificationService(session, bus, emails, tasks, settings)


@pytest.fixture
def reconciler(session, notifications, settings) -> ReconciliationService:
    return ReconciliationService(session, notifications, settings)


@pytest.fixture
def booking_service(session, notifications, settings) -> BookingService:
    return BookingService(session, notifications, settings)


def actor_for(user: User) -> Actor:
    return Actor(id=user.id, role=user.role)


async def reload(session, booking_id: str) -> Optional[Booking]:
    """Read the row as the database holds it, bypassing the identity map."""
    result = await session.execute(
        select(Booking).where(Booking.id == booking_id).execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def notifications_for(session, booking_id: str) -> List[Notification]:
    result = await session.scalars(
        select(Notification).where(Notification.booking_id == booking_id).order_by(Notification.user_id)
    )
    return list(result.all())


async def count(session, model, *criteria) -> int:
    return await session.scalar(select(func.count()).select_from(model).where(*criteria))


def hours(n: float) -> timedelta:
    return timedelta(hours=n)
