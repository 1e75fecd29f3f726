from typing import Generic, TypeVar, Optional, List, Any, Dict, Iterable, Sequence
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, delete

ModelType = TypeVar('ModelType')


class BaseRepository(Generic[ModelType]):
    """Base repository with CRUD plus predicate-batched writes.

    Batched writes are plain ``UPDATE ... WHERE`` / ``DELETE ... WHERE``
    statements, so each one is atomic on its own and can be repeated safely.
    They skip in-session synchronisation; reload rows before reading them
    back from the same session.
    """

    def __init__(self, model: type[ModelType], session: AsyncSession):
        self.model = model
        self.session = session

    async def get(self, id: Any) -> Optional[ModelType]:
        """Get entity by ID"""
        return await self.session.get(self.model, id)

    async def list_where(
        self,
        *criteria,
        order_by: Sequence[Any] = (),
        options: Sequence[Any] = (),
        limit: Optional[int] = None,
        fresh: bool = False,
    ) -> List[ModelType]:
        """Return rows matching *criteria*.

        ``fresh`` overwrites identity-map state with what the database holds,
        which matters after a batched write in the same session.
        """
        query = select(self.model).where(*criteria)
        if options:
            query = query.options(*options)
        if order_by:
            query = query.order_by(*order_by)
        if limit is not None:
            query = query.limit(limit)
        if fresh:
            query = query.execution_options(populate_existing=True)
        result = await self.session.execute(query)
        return list(result.scalars().unique().all())

    async def create(self, *, obj_in: Dict[str, Any]) -> ModelType:
        """Create new entity"""
        db_obj = self.model(**obj_in)
        self.session.add(db_obj)
        await self.session.flush()
        return db_obj

    async def update_ids(self, ids: Iterable[Any], values: Dict[str, Any], *criteria) -> int:
        """Apply *values* to every row whose id is in *ids* and which still
        matches *criteria*; returns rows touched."""
        ids = list(ids)
        if not ids:
            return 0
        stmt = (
            update(self.model)
            .where(self.model.id.in_(ids), *criteria)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount or 0

    async def delete_where(self, *criteria) -> int:
        """Delete every row matching *criteria*; returns rows removed."""
        stmt = delete(self.model).where(*criteria).execution_options(synchronize_session=False)
        result = await self.session.execute(stmt)
        return result.rowcount or 0


class BaseService:
    """Base service implementation with common dependencies"""

    def __init__(self, session: AsyncSession):
        self.session = session
