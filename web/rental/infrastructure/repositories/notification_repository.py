from typing import Optional, List, Sequence
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rental.core import BaseRepository
from rental.models import Notification


class NotificationRepository(BaseRepository[Notification]):
    """Notification repository implementation"""

    def __init__(self, session: AsyncSession):
        super().__init__(Notification, session)

    async def list_for_user(self, user_id: str, *, limit: int = 20) -> List[Notification]:
        """Latest notifications first"""
        return await self.list_where(
            Notification.user_id == user_id,
            order_by=(Notification.created_at.desc(), Notification.id),
            limit=limit,
        )

    async def get_for_user(self, notification_id: str, user_id: str) -> Optional[Notification]:
        query = select(Notification).where(
            Notification.id == notification_id,
            Notification.user_id == user_id,
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def clear_for_user(self, user_id: str) -> int:
        return await self.delete_where(Notification.user_id == user_id)

    async def delete_for_users(self, user_ids: Sequence[str]) -> int:
        if not user_ids:
            return 0
        return await self.delete_where(Notification.user_id.in_(list(user_ids)))
