"""Database handle: one async engine and session factory per process."""
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from .db_utils import _convert_to_async_url


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    # SQLite ignores ON DELETE CASCADE unless this pragma is set per connection
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """
    Owns the connection pool.

    Created once at process start, shared by every request, and disposed at
    shutdown. Services never create engines themselves; they receive a
    session from this handle.
    """

    def __init__(self, database_url: str, echo: bool = False):
        self.url = _convert_to_async_url(database_url)
        url = make_url(self.url)

        engine_kwargs = {}
        if url.get_backend_name() == "sqlite":
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if url.database in (None, "", ":memory:"):
                # an in-memory database only lives as long as its single connection
                engine_kwargs["poolclass"] = StaticPool

        self.engine = create_async_engine(self.url, echo=echo, **engine_kwargs)
        if url.get_backend_name() == "sqlite":
            event.listen(self.engine.sync_engine, "connect", _enable_sqlite_foreign_keys)

        self.session_maker = async_sessionmaker(self.engine, class_=AsyncSession, expire_on_commit=False)

    @property
    def dialect_name(self) -> str:
        return self.engine.dialect.name

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Session for reads; nothing is committed."""
        async with self.session_maker() as session:
            yield session

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        """Session wrapped in one transaction, committed on exit, rolled back on error."""
        async with self.session_maker() as session:
            async with session.begin():
                yield session

    async def dispose(self) -> None:
        await self.engine.dispose()

    def __repr__(self) -> str:
        return f"<Database(url='{make_url(self.url).render_as_string(hide_password=True)}')>"
