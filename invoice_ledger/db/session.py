"""
Database session management.

Provides the async SQLAlchemy engine backing the ledger, a session factory,
and the ``get_db`` dependency used by the FastAPI routers.  One session is
one unit of work: a ledger operation stages every change on it and commits
once.
"""

from collections.abc import AsyncGenerator

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlmodel import SQLModel

from invoice_ledger.core.config import settings


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine for ``url`` with the ledger's connection policy."""
    if url.startswith("sqlite"):
        # Exactly one connection: every session sees the same in-memory
        # database, and a session holds it from its first statement until it
        # commits, rolls back or closes.  Other sessions wait in the pool, so
        # SQLite transactions never interleave on the shared connection and
        # one session's ROLLBACK cannot discard another's flushed writes.
        # The connection is never recycled; replacing it would start an
        # empty ledger.
        from sqlalchemy.pool import AsyncAdaptedQueuePool

        sqlite_engine = create_async_engine(
            url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=AsyncAdaptedQueuePool,
            pool_size=1,
            max_overflow=0,
            pool_timeout=settings.DB_POOL_TIMEOUT,
        )

        # SQLite leaves FK enforcement off unless asked.  aiosqlite wraps a
        # sync connection, so the listener goes on the sync engine.
        @event.listens_for(sqlite_engine.sync_engine, "connect")
        def _set_sqlite_pragma(dbapi_conn, connection_record):
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return sqlite_engine

    return create_async_engine(
        url,
        echo=echo,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_timeout=settings.DB_POOL_TIMEOUT,
        pool_recycle=settings.DB_POOL_RECYCLE,
        pool_pre_ping=True,
    )


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # expire_on_commit=False: entities returned by a committed unit of work
    # are still serialised by the routers, and async sessions cannot lazy-load.
    return async_sessionmaker(bind=bind, class_=AsyncSession, expire_on_commit=False)


async def create_tables(bind: AsyncEngine) -> None:
    """Create the ``invoices``, ``investments`` and ``participants`` tables."""
    import invoice_ledger.db.base  # noqa: F401

    async with bind.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


engine = build_engine(settings.DATABASE_URL, echo=settings.DEBUG)
AsyncSessionLocal = build_session_factory(engine)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency that yields a session closed at the end of the request."""
    async with AsyncSessionLocal() as session:
        yield session
