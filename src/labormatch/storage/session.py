"""Async engine and session factory."""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import event
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import AsyncAdaptedQueuePool

from ..errors import PersistenceError
from .models import Base


@dataclass
class DatabaseConfig:
    url: str = "sqlite+aiosqlite:///./labormatch.db"
    echo: bool = False


def create_engine(config: DatabaseConfig | None = None) -> AsyncEngine:
    config = config or DatabaseConfig()
    kwargs: dict = {"echo": config.echo}
    if not config.url.startswith("sqlite"):
        kwargs["pool_pre_ping"] = True
    elif ":memory:" not in config.url:
        # One writer at a time: concurrent tracker batches queue on a single connection.
        kwargs.update(poolclass=AsyncAdaptedQueuePool, pool_size=1, max_overflow=0)
    engine = create_async_engine(config.url, **kwargs)
    if engine.dialect.name == "sqlite":
        # SQLite only enforces ON DELETE CASCADE with foreign keys switched on.
        @event.listens_for(engine.sync_engine, "connect")
        def _enable_foreign_keys(dbapi_connection, _record) -> None:  # pragma: no cover - driver hook
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


async def init_models(engine: AsyncEngine) -> None:
    """Create missing tables; driver failures surface as :class:`PersistenceError`."""
    try:
        async with engine.begin() as connection:
            await connection.run_sync(Base.metadata.create_all)
    except SQLAlchemyError as exc:
        raise PersistenceError(
            "Could not create qualification tables",
            details={"url": engine.url.render_as_string(hide_password=True), "error": str(exc)},
            retryable=isinstance(exc, OperationalError),
        ) from exc


__all__ = ["DatabaseConfig", "create_engine", "create_session_factory", "init_models"]
