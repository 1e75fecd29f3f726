"""
In-process publish/subscribe channel for freshly created notifications.

Constructed once at start-up and passed to whoever publishes (the
notification fan-out) and whoever relays to live clients. Delivery is
best-effort: the persisted notification row is the source of truth.
"""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import AsyncIterator, Awaitable, Callable, List, Optional

from .tasks import BackgroundTaskSet

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotificationEvent:
    """Detached copy of a notification row, safe to hand across tasks."""

    id: str
    user_id: str
    booking_id: Optional[str]
    type: str
    message: str
    read: bool
    created_at: datetime

    @classmethod
    def from_model(cls, notification) -> "NotificationEvent":
        return cls(
            id=notification.id,
            user_id=notification.user_id,
            booking_id=notification.booking_id,
            type=notification.type,
            message=notification.message,
            read=bool(notification.read),
            created_at=notification.created_at,
        )


Handler = Callable[[NotificationEvent], Awaitable[None]]


class NotificationBus:
    """Fan a published event out to every subscriber without awaiting them."""

    def __init__(self, tasks: BackgroundTaskSet):
        self._tasks = tasks
        self._handlers: List[Handler] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._handlers)

    def subscribe(self, handler: Handler) -> Callable[[], None]:
        """Register *handler*; returns a callable that removes it again."""
        self._handlers.append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    def publish(self, event: NotificationEvent) -> None:
        for handler in list(self._handlers):
            self._tasks.spawn(handler(event), name=f"notify:{event.id}")

    @asynccontextmanager
    async def listen(self, user_id: str, *, maxsize: int = 100) -> AsyncIterator["asyncio.Queue[NotificationEvent]"]:
        """Queue of events addressed to *user_id* for as long as the block runs."""
        queue: asyncio.Queue[NotificationEvent] = asyncio.Queue(maxsize=maxsize)

        async def enqueue(event: NotificationEvent) -> None:
            if event.user_id != user_id:
                return
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning("Dropping notification %s for slow listener %s", event.id, user_id)

        unsubscribe = self.subscribe(enqueue)
        try:
            yield queue
        finally:
            unsubscribe()
