"""Async SQLAlchemy engine and session helpers.

Provides a configured async engine, sessionmaker and a helper for
initializing the database, plus the ``guarded`` decorator that bounds store
calls with a timeout and turns driver failures into a retryable
``DatabaseError``.
"""

import asyncio
import functools
from datetime import datetime, timezone

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool

from tokenward.config.config import settings
from tokenward.core.errors import DatabaseError
from tokenward.core.logging import logger


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine for ``url``.

    SQLite (used for local runs and tests) gets a ``NullPool`` so no
    connection outlives the event loop that opened it.
    """
    if url.startswith("sqlite"):
        return create_async_engine(url, echo=echo, poolclass=NullPool)
    return create_async_engine(
        url, echo=echo, pool_size=5, max_overflow=10, pool_pre_ping=True
    )


engine = build_engine(settings.DATABASE_URL_ASYNC, echo=settings.DB_ECHO)

AsyncSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)

Base = declarative_base()


async def initialize_database(bind: AsyncEngine | None = None):
    """Create all metadata tables defined on the declarative `Base`.

    Raises:
        Exception: Re-raises any exception encountered while initializing.
    """
    # models register their tables on Base when imported
    import tokenward.models.auth  # noqa: F401

    logger.info("Initializing database tables")
    async with (bind or engine).begin() as conn:
        try:
            await conn.run_sync(Base.metadata.create_all)
            logger.info("Database initialization complete")
        except Exception:
            logger.exception("Database initialization failed")
            raise


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes read back from backends without tz."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SqlStore:
    """Base for stores that own one table and talk to it through sessions."""

    def __init__(
        self,
        session_factory: async_sessionmaker | None = None,
        timeout: float | None = None,
    ):
        self._sessions = session_factory or AsyncSessionLocal
        self.timeout = settings.DB_TIMEOUT_SECONDS if timeout is None else timeout


def guarded(operation: str):
    """Bound a store coroutine by ``self.timeout`` and map driver errors.

    Domain errors raised inside the wrapped call pass through unchanged;
    timeouts and SQLAlchemy errors become ``DatabaseError``.
    """

    def decorator(fn):
        @functools.wraps(fn)
        async def wrapper(self, *args, **kwargs):
            try:
                return await asyncio.wait_for(
                    fn(self, *args, **kwargs), timeout=self.timeout
                )
            except asyncio.TimeoutError as exc:
                logger.error("Store call {} timed out after {}s", operation, self.timeout)
                raise DatabaseError(
                    "Store call timed out", {"operation": operation}
                ) from exc
            except SQLAlchemyError as exc:
                logger.error("Store call {} failed: {}", operation, type(exc).__name__)
                raise DatabaseError(
                    "Store call failed", {"operation": operation}
                ) from exc

        return wrapper

    return decorator
