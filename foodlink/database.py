"""Database handle: engine, session factory and change feed, constructed once in the app lifespan."""
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from foodlink.models import Base
from foodlink.services.change_feed import ChangeFeed, take_committed


class Database:
    def __init__(self, url: str, echo: bool = False, **engine_kwargs: Any) -> None:
        # URL must use an async driver (asyncpg, aiosqlite)
        self.engine = create_async_engine(url, echo=echo, **engine_kwargs)
        self.sessionmaker = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
        self.feed = ChangeFeed()

    async def create_all(self, reset: bool = False) -> None:
        async with self.engine.begin() as conn:
            if reset:
                await conn.run_sync(Base.metadata.drop_all)
            await conn.run_sync(Base.metadata.create_all)

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """One unit of work: commit on success, roll back on any error, then publish what committed."""
        async with self.sessionmaker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
            finally:
                self.feed.publish_many(take_committed(session))

    async def dispose(self) -> None:
        self.feed.close()
        await self.engine.dispose()


def get_database(request: Request) -> Database:
    return request.app.state.database


async def get_db(request: Request) -> AsyncIterator[AsyncSession]:
    async with get_database(request).session() as session:
        yield session
