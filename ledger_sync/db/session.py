"""Async Session Factory — provides async DB sessions outside FastAPI.

Invariants:
    - expire_on_commit=False: returned rows stay readable after commit
    - Meant for the client local store, scripts, and test fixtures

Design Decisions:
    - Separate from infrastructure/database.py: the client has no pool tuning
      and no request-scoped sessions (ADR: SQLite file, single process)
"""

from sqlalchemy.ext.asyncio import (
    AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker,
)


def create_session_factory(
    database_url: str,
) -> async_sessionmaker[AsyncSession]:
    """Create an async session factory for the given database URL."""
    engine = create_async_engine(database_url, echo=False)
    return session_factory_for(engine)


def session_factory_for(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False,
    )
