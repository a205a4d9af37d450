"""Async SQLAlchemy engine factory for the durable asset store.

Accepts any SQLAlchemy async URL:

==========================================  ============
URL                                         Backend
==========================================  ============
``sqlite+aiosqlite:///./configspine.db``    SQLite file
``postgresql+asyncpg://u:p@host:5432/db``   PostgreSQL
``postgresql://u:p@host/db``                PostgreSQL (driver added)
==========================================  ============
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine


def normalize_store_url(url: str) -> str:
    """Add the async driver to bare ``postgresql://`` / ``sqlite://`` URLs.

    Examples:
        >>> normalize_store_url("postgres://localhost/cfg")
        'postgresql+asyncpg://localhost/cfg'
        >>> normalize_store_url("sqlite:///cfg.db")
        'sqlite+aiosqlite:///cfg.db'
    """
    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://"):]
    if url.startswith("postgresql://"):
        return "postgresql+asyncpg://" + url[len("postgresql://"):]
    if url.startswith("sqlite://"):
        return "sqlite+aiosqlite://" + url[len("sqlite://"):]
    return url


def create_store_engine(
    url: str,
    *,
    echo: bool = False,
    pool_size: int | None = None,
    **kwargs: Any,
) -> AsyncEngine:
    """Create an async SQLAlchemy engine with sane defaults.

    Parameters
    ----------
    url:
        Database URL; bare scheme URLs are normalized to their async driver.
    echo:
        If ``True``, log all SQL.
    pool_size:
        Connection pool size (ignored for SQLite).
    **kwargs:
        Extra arguments forwarded to ``create_async_engine``.
    """
    url = normalize_store_url(url)

    if url.startswith("sqlite"):
        engine = create_async_engine(url, echo=echo, **kwargs)

        # Foreign keys are off by default in SQLite
        @event.listens_for(engine.sync_engine, "connect")
        def _set_sqlite_pragma(dbapi_connection: Any, _rec: Any) -> None:
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return engine

    if pool_size is not None:
        kwargs["pool_size"] = pool_size

    return create_async_engine(url, echo=echo, pool_pre_ping=True, **kwargs)


__all__ = ["create_store_engine", "normalize_store_url"]
