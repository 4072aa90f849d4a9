"""
Database engine and session factory.

The composition root builds one engine and passes the session factory down.
"""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool


def create_engine(database_url: str, echo: bool = False, pool_size: int = 5) -> AsyncEngine:
    """
    Create async database engine.

    SQLite URLs get a NullPool, other backends a regular pool.

    Args:
        database_url: SQLAlchemy async URL
        echo: Log SQL statements
        pool_size: Connection pool size

    Returns:
        AsyncEngine instance
    """
    if database_url.startswith("sqlite"):
        return create_async_engine(database_url, echo=echo, poolclass=NullPool)

    return create_async_engine(
        database_url,
        echo=echo,
        pool_size=pool_size,
        max_overflow=pool_size * 2,
        pool_pre_ping=True,
    )


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """
    Create session factory bound to the engine.

    Args:
        engine: AsyncEngine instance

    Returns:
        Session factory
    """
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
