from __future__ import annotations
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Callable

from sqlalchemy.ext.asyncio import AsyncSession

from rental.infrastructure.repositories import (
    BookingRepository,
    ItemRepository,
    UserRepository,
    NotificationRepository,
    LogRepository,
)


class UnitOfWork:
    """Unit of work for managing repository instances and transactions."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.bookings = BookingRepository(session)
        self.items = ItemRepository(session)
        self.users = UserRepository(session)
        self.notifications = NotificationRepository(session)
        self.logs = LogRepository(session)

    async def __aenter__(self) -> UnitOfWork:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if exc_type is not None:
            await self.rollback()

    async def commit(self):
        await self.session.commit()

    async def rollback(self):
        await self.session.rollback()


@asynccontextmanager
async def open_uow(session_factory: Callable[[], AsyncSession]) -> AsyncGenerator[UnitOfWork, None]:
    """Open a fresh session and commit it when the block succeeds.

    Used where no request-scoped session exists, e.g. one per cron job so a
    failing job cannot roll back its neighbours.
    """
    async with session_factory() as session:
        uow = UnitOfWork(session)
        try:
            yield uow
            await uow.commit()
        except BaseException:
            await uow.rollback()
            raise
