from typing import Optional, List, Iterable
from sqlalchemy.ext.asyncio import AsyncSession

from rental.core import BaseRepository
from rental.models import Log


class LogRepository(BaseRepository[Log]):
    """Audit log repository implementation"""

    def __init__(self, session: AsyncSession):
        super().__init__(Log, session)

    async def add_many(
        self,
        *,
        type: str,
        message: str,
        booking_ids: Iterable[str],
        user_id: Optional[str] = None,
    ) -> List[Log]:
        rows = [
            Log(type=type, message=message, booking_id=booking_id, user_id=user_id)
            for booking_id in booking_ids
        ]
        self.session.add_all(rows)
        await self.session.flush()
        return rows
