from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from ..core import NotFoundError, Settings, TransientJobFailure, get_settings
from ..core.unit_of_work import open_uow
from ..infrastructure.event_bus import NotificationBus
from ..infrastructure.tasks import BackgroundTaskSet
from .email_service import BookingEmailService
from .notification_service import NotificationService
from .reconciliation_service import ReconciliationService

logger = logging.getLogger(__name__)

MORNING = (
    "mark_upcoming_bookings_borrowed",
    "cancel_expired_bookings",
    "delete_old_bookings",
)
EVENING = (
    "mark_upcoming_bookings_borrowed",
    "cancel_expired_bookings",
    "auto_complete_borrowed_bookings",
    "delete_inactive_users",
)
BATCHES: Dict[str, Sequence[str]] = {"morning": MORNING, "evening": EVENING}


@dataclass(frozen=True)
class CronTask:
    name: str
    run: Callable[[], Awaitable[Any]]


async def run_cron_tasks(tasks: Sequence[CronTask]) -> Dict[str, Any]:
    """Run *tasks* in order; one failure never stops the rest.

    Returns ``{"ok": bool, "results": [{"name", "status", "error"?}]}``
    where ``ok`` is true only if every task succeeded.
    """
    results: List[Dict[str, Any]] = []
    for task in tasks:
        try:
            await task.run()
        except Exception as exc:
            failure = TransientJobFailure(task.name, exc)
            logger.exception("Cron task %s failed", task.name)
            results.append({"name": task.name, "status": "error", "error": failure.message})
        else:
            results.append({"name": task.name, "status": "ok"})
    return {"ok": all(r["status"] == "ok" for r in results), "results": results}


class CronService:
    """Builds reconciliation batches, giving each job its own transaction."""

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        bus: NotificationBus,
        emails: BookingEmailService,
        tasks: BackgroundTaskSet,
        settings: Optional[Settings] = None,
    ):
        self.session_factory = session_factory
        self.bus = bus
        self.emails = emails
        self.tasks = tasks
        self.settings = settings or get_settings()

    def job(self, name: str) -> CronTask:
        async def run() -> int:
            async with open_uow(self.session_factory) as uow:
                notifications = NotificationService(uow.session, self.bus, self.emails, self.tasks, self.settings)
                reconciler = ReconciliationService(uow.session, notifications, self.settings)
                return await getattr(reconciler, name)()

        return CronTask(name=name, run=run)

    async def run_batch(self, batch: str) -> Dict[str, Any]:
        names = BATCHES.get(batch)
        if names is None:
            raise NotFoundError("Cron batch", batch)
        report = await run_cron_tasks([self.job(name) for name in names])
        level = logging.INFO if report["ok"] else logging.WARNING
        logger.log(level, "Cron batch %s finished ok=%s", batch, report["ok"])
        return report
