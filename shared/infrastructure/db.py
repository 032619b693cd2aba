"""
Database configuration and session management.
Uses the SQLAlchemy 2.0 asyncio extension.

Besides the engine and session factory this module holds the small
transactional primitives shared by the services:

- safe_commit: commit with rollback on failure
- db_now_millis: the datastore clock in epoch milliseconds
- insert_with_retry: insert inside a SAVEPOINT, retrying on unique violations
"""

import asyncio
import random
from collections.abc import AsyncGenerator, Awaitable, Callable
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import TypeVar

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from shared.config.logging import get_logger
from shared.config.settings import DATABASE_URL, settings
from shared.utils.exceptions import ConflictError, InternalError

logger = get_logger(__name__)

T = TypeVar("T")


def _engine_options(url: str) -> dict:
    """Pool options; SQLite manages its own connection pool."""
    if url.startswith("sqlite"):
        return {"echo": settings.db_echo}
    return {
        "pool_pre_ping": True,  # Verify connections before using
        "pool_size": settings.db_pool_size,
        "max_overflow": settings.db_max_overflow,
        "pool_timeout": settings.db_pool_timeout,
        "pool_recycle": 1800,  # Recycle connections after 30 minutes
        "echo": settings.db_echo,
    }


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """
    Session factory bound to an engine.

    Objects stay loaded after commit so services can return them.
    """
    return async_sessionmaker(
        bind=engine,
        autoflush=False,
        expire_on_commit=False,
    )


engine = create_async_engine(DATABASE_URL, **_engine_options(DATABASE_URL))

# Session factory
SessionLocal = build_session_factory(engine)


@asynccontextmanager
async def get_db_context() -> AsyncGenerator[AsyncSession, None]:
    """
    Context manager for database sessions outside of FastAPI.

    Usage:
        async with get_db_context() as db:
            await db.scalars(select(Item))
    """
    async with SessionLocal() as db:
        yield db


async def safe_commit(db: AsyncSession) -> None:
    """
    Commit with automatic rollback on failure.

    Raises the original exception after rolling back.
    """
    try:
        await db.commit()
    except Exception:
        await db.rollback()
        raise


async def db_now_millis(db: AsyncSession) -> int:
    """
    Current time according to the datastore, in epoch milliseconds.

    Session expiry is always evaluated against this clock, never the
    application host's clock. Naive values are UTC (SQLite CURRENT_TIMESTAMP).
    """
    value = await db.scalar(select(func.now()))
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp() * 1000)


def is_unique_violation(exc: IntegrityError) -> bool:
    """True when the integrity error is a unique constraint violation."""
    orig = getattr(exc, "orig", None)
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate == "23505":
        return True
    return "UNIQUE constraint failed" in str(orig) or "unique constraint" in str(orig).lower()


def violates_constraint(exc: IntegrityError, marker: str) -> bool:
    """
    True when a unique violation mentions the given constraint or column name.

    PostgreSQL reports the constraint name, SQLite reports the columns,
    so callers pass a marker contained in both.
    """
    return is_unique_violation(exc) and marker in str(getattr(exc, "orig", exc))


async def insert_with_retry(
    db: AsyncSession,
    build: Callable[[int], Awaitable[T]],
    should_retry: Callable[[IntegrityError], bool],
    reraise: Callable[[IntegrityError], bool] | None = None,
    max_attempts: int | None = None,
    backoff_ms: int | None = None,
    what: str = "row",
) -> T:
    """
    Insert a freshly built instance, retrying on matching unique violations.

    Each attempt calls build(attempt) for a new instance and flushes it
    inside a SAVEPOINT, so a violation only rolls back that attempt and the
    surrounding transaction stays usable. Between attempts it sleeps a
    randomized, incrementally longer backoff.

    Raises:
        ConflictError: all attempts collided.
        InternalError: an integrity error that should_retry does not accept.
        IntegrityError: unchanged, when reraise accepts it.
    """
    max_attempts = max_attempts or settings.order_number_max_attempts
    backoff_ms = backoff_ms if backoff_ms is not None else settings.order_number_backoff_ms

    for attempt in range(1, max_attempts + 1):
        instance = await build(attempt)
        try:
            async with db.begin_nested():
                db.add(instance)
                await db.flush()
            return instance
        except IntegrityError as exc:
            if reraise is not None and reraise(exc):
                raise
            if not should_retry(exc):
                logger.error(
                    "Unexpected integrity error on insert",
                    what=what,
                    attempt=attempt,
                    error=str(exc.orig),
                )
                raise InternalError(f"insert {what}") from exc

            logger.warning(
                "Unique collision on insert, retrying",
                what=what,
                attempt=attempt,
                max_attempts=max_attempts,
            )
            if attempt < max_attempts:
                delay = backoff_ms * attempt * (0.5 + random.random())
                await asyncio.sleep(delay / 1000)

    raise ConflictError(f"Could not insert {what} after {max_attempts} attempts")
