"""Async database engine, session factory and the session dependency."""

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

engine: AsyncEngine | None = None
async_session_factory: async_sessionmaker[AsyncSession] | None = None


async def init_engine(database_url: str, *, pool_size: int = 5) -> None:
    """Create the async engine and session factory.

    Args:
        database_url: PostgreSQL connection string using the asyncpg driver.
        pool_size: Number of pooled connections kept open.
    """
    global engine, async_session_factory  # noqa: PLW0603

    engine = create_async_engine(
        database_url,
        pool_size=pool_size,
        max_overflow=2,
        pool_pre_ping=True,
    )
    async_session_factory = async_sessionmaker(bind=engine, expire_on_commit=False)


async def dispose_engine() -> None:
    """Dispose the async engine, closing all connections."""
    global engine, async_session_factory  # noqa: PLW0603

    if engine is not None:
        await engine.dispose()
    engine = None
    async_session_factory = None


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session for one request.

    Writers commit explicitly (the activity store commits each event before
    anything is dispatched); uncommitted work is rolled back on error.

    Raises:
        RuntimeError: If the session factory has not been initialized.
    """
    if async_session_factory is None:
        msg = "Database session factory not initialized. Call init_engine() first."
        raise RuntimeError(msg)

    async with async_session_factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
