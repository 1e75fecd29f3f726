from __future__ import annotations

import logging
from typing import Iterable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core import BaseService, AuditError
from ..infrastructure.repositories import LogRepository

logger = logging.getLogger(__name__)

BOOKING_LOG = "BOOKING"


class AuditService(BaseService):
    """Writes the audit trail that accompanies every booking mutation.

    Entries are flushed inside the caller's transaction. A failed flush is
    raised as :class:`AuditError` so the transition is reported as failed
    and the surrounding unit of work rolls back.
    """

    def __init__(self, session: AsyncSession):
        super().__init__(session)
        self.logs = LogRepository(session)

    async def record(self, booking_id: str, action: str, *, user_id: Optional[str] = None) -> None:
        await self.record_many([booking_id], action, user_id=user_id)

    async def record_many(
        self,
        booking_ids: Iterable[str],
        action: str,
        *,
        user_id: Optional[str] = None,
    ) -> None:
        ids = list(booking_ids)
        if not ids:
            return
        try:
            await self.logs.add_many(type=BOOKING_LOG, message=action, booking_ids=ids, user_id=user_id)
        except SQLAlchemyError as exc:
            logger.error("Audit write %r failed for %d booking(s)", action, len(ids))
            raise AuditError(ids[0] if len(ids) == 1 else ids, action) from exc
