from typing import AsyncGenerator
from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession, AsyncEngine, create_async_engine, async_sessionmaker

from rental.core import get_settings


def build_engine(dsn: str, *, echo: bool = False, pool_size: int = 5) -> AsyncEngine:
    """Create the async engine; SQLite has no connection pool to size."""
    kwargs = {"echo": echo}
    if not dsn.startswith("sqlite"):
        kwargs.update(pool_size=pool_size, pool_pre_ping=True)  # Enable connection health checks
    return create_async_engine(dsn, **kwargs)


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


settings = get_settings()

engine = build_engine(settings.DB_DSN, echo=settings.DB_ECHO, pool_size=settings.DB_POOL_SIZE)

AsyncSessionFactory = build_session_factory(engine)


async def get_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Dependency to get database session from the app's session factory"""
    session_factory = getattr(request.app.state, "session_factory", AsyncSessionFactory)
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
