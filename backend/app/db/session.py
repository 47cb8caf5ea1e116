"""
Async engine and session factory.

PostgreSQL (asyncpg) in production. SQLite (aiosqlite) is supported for
tests and local runs: every transaction is opened with BEGIN IMMEDIATE so
concurrent writers queue on the busy timeout instead of failing.
"""

from contextlib import contextmanager
from typing import AsyncGenerator

from sqlalchemy import event
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from app.core.config import get_settings
from app.core.exceptions import PersistenceError

settings = get_settings()


def _configure_sqlite(engine: AsyncEngine) -> None:
    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # Take over BEGIN from the driver
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(url: str, **kwargs) -> AsyncEngine:
    if url.startswith("sqlite"):
        engine = create_async_engine(
            url,
            poolclass=NullPool,
            connect_args={"timeout": settings.SQLITE_BUSY_TIMEOUT},
            **kwargs,
        )
        _configure_sqlite(engine)
        return engine

    return create_async_engine(
        url,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_timeout=settings.DB_POOL_TIMEOUT,
        pool_recycle=settings.DB_POOL_RECYCLE,
        pool_pre_ping=True,
        **kwargs,
    )


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


engine = build_engine(settings.DATABASE_URL, echo=settings.DEBUG)
AsyncSessionLocal = build_session_factory(engine)


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """FastAPI dependency; tests override it with a factory bound to the test database."""
    return AsyncSessionLocal


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


@contextmanager
def persistence_guard(operation: str):
    """Translate transient database failures into PersistenceError."""
    try:
        yield
    except (OperationalError, InterfaceError, ConnectionError) as exc:
        raise PersistenceError(operation, exc) from exc
