from typing import Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from rental.core import BaseRepository
from rental.models import Item


class ItemRepository(BaseRepository[Item]):
    """Item repository implementation"""

    def __init__(self, session: AsyncSession):
        super().__init__(Item, session)

    async def get_with_members(self, item_id: str) -> Optional[Item]:
        """Get item with its responsible staff members loaded"""
        query = (
            select(Item)
            .options(selectinload(Item.responsible_members))
            .where(Item.id == item_id)
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()
