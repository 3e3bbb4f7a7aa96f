from __future__ import annotations

import logging

from sqlalchemy import event
from sqlalchemy.engine.url import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from blogstore.models import Base
from blogstore.settings import settings

logger = logging.getLogger(__name__)


def _on_sqlite_connect(dbapi_connection, connection_record) -> None:
    # The driver must not emit BEGIN itself, or SAVEPOINT rollbacks are lost.
    dbapi_connection.isolation_level = None
    # SQLite ignores REFERENCES ... ON DELETE CASCADE unless asked per connection.
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _on_sqlite_begin(conn) -> None:
    conn.exec_driver_sql("BEGIN")


def make_engine(url: str, *, echo: bool = False, pool_size: int | None = None) -> AsyncEngine:
    kwargs: dict = {"echo": echo}
    is_sqlite = make_url(url).get_backend_name() == "sqlite"
    if pool_size and not is_sqlite:
        kwargs["pool_size"] = pool_size
        kwargs["pool_pre_ping"] = True

    new_engine = create_async_engine(url, **kwargs)
    if is_sqlite:
        event.listen(new_engine.sync_engine, "connect", _on_sqlite_connect)
        event.listen(new_engine.sync_engine, "begin", _on_sqlite_begin)
    return new_engine


def make_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=bind, class_=AsyncSession, expire_on_commit=False, autoflush=False)


async def create_schema(bind: AsyncEngine) -> None:
    """Create all tables directly from the models; migrations are the production path."""
    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Schema created on %s", bind.url.render_as_string(hide_password=True))


async def drop_schema(bind: AsyncEngine) -> None:
    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    logger.info("Schema dropped on %s", bind.url.render_as_string(hide_password=True))


engine = make_engine(settings.database_url, echo=settings.db_echo, pool_size=settings.db_pool_size)
AsyncSessionLocal = make_session_factory(engine)
