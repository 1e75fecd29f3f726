from typing import List, Sequence
from datetime import datetime
from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from rental.core import BaseRepository
from rental.models import User, ItemResponsibleMember


class UserRepository(BaseRepository[User]):
    """User repository implementation"""

    def __init__(self, session: AsyncSession):
        super().__init__(User, session)

    async def list_inactive_ids(self, threshold: datetime) -> List[str]:
        """Users whose last login is older than *threshold*; never-logged-in users are kept"""
        result = await self.session.scalars(
            select(User.id).where(User.last_login_at.is_not(None), User.last_login_at < threshold)
        )
        return list(result.all())

    async def delete_ids(self, user_ids: Sequence[str]) -> int:
        """Delete users along with their item responsibilities"""
        if not user_ids:
            return 0
        ids = list(user_ids)
        await self.session.execute(
            delete(ItemResponsibleMember).where(ItemResponsibleMember.user_id.in_(ids))
        )
        return await self.delete_where(User.id.in_(ids))
