"""Database engine and session management."""

from typing import Any, AsyncGenerator

from fastapi import Request
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.models import Base


class Database:
    """
    Owns the async engine (connection pool) and the session factory.

    Built once per process in the app lifespan and kept on app.state.
    """

    def __init__(self, url: str, **engine_kwargs: Any):
        if url.startswith("postgresql+asyncpg"):
            engine_kwargs.setdefault("pool_pre_ping", True)
            engine_kwargs.setdefault("pool_size", 5)
            engine_kwargs.setdefault("max_overflow", 10)
        self.engine: AsyncEngine = create_async_engine(url, **engine_kwargs)
        self.session_factory = async_sessionmaker(
            self.engine, expire_on_commit=False
        )

    async def create_all(self) -> None:
        """Create tables directly (tests / local dev). Production uses Alembic."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        await self.engine.dispose()


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding a session bound to the app's database."""
    database: Database = request.app.state.database
    async with database.session_factory() as session:
        yield session
