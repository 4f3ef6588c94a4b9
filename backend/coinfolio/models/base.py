"""Base model and database session setup for Coinfolio."""

import asyncio
from collections.abc import AsyncGenerator
from datetime import datetime, timezone
from uuid import uuid4

from fastapi import Request
from sqlalchemy import MetaData, Uuid
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from coinfolio.utils.logging import get_logger

logger = get_logger(__name__)

# Naming convention for constraints (keeps generated DDL stable across backends)
convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every datetime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    """Base declarative model with the id and timestamp columns every table has."""

    metadata = MetaData(naming_convention=convention)

    id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)


def create_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    kwargs = {"echo": echo}
    if not database_url.startswith("sqlite"):
        kwargs.update(pool_size=20, max_overflow=10, pool_pre_ping=True)
    return create_async_engine(database_url, **kwargs)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_db(engine: AsyncEngine, retries: int = 5, delay: float = 2.0) -> bool:
    """Create all database tables.

    Retries the connection with exponential backoff so the service tolerates
    a database that is still starting. If the database stays unreachable the
    error is logged and ``False`` is returned; the application keeps running
    so health checks can report the outage.
    """
    for attempt in range(1, retries + 1):
        try:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            logger.info("Database initialized successfully.")
            return True
        except Exception as exc:
            if attempt == retries:
                logger.error(
                    "Failed to connect to database after %d attempts: %s. "
                    "Most endpoints will return errors until the database is reachable.",
                    retries,
                    exc,
                )
                return False
            wait = delay * (2 ** (attempt - 1))
            logger.warning(
                "Database connection attempt %d/%d failed (%s). Retrying in %.1fs...",
                attempt, retries, exc, wait,
            )
            await asyncio.sleep(wait)
    return False


def get_session_factory(request: Request) -> async_sessionmaker[AsyncSession]:
    return request.app.state.session_factory


async def get_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Yield a request-scoped session; commit on success, roll back on error.

    Usage with FastAPI:
        @router.get("/items")
        async def list_items(session: AsyncSession = Depends(get_session)):
            ...
    """
    async with get_session_factory(request)() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
