"""
Durable, versioned asset store.

``DurableAssetStore`` keeps one live row per ``(owner_key, asset_key)`` and an
append-only history of every superseded version. Content changes are
detected by SHA-256 digest, so re-storing identical content is a no-op: no
history row, no timestamp bump.

Architecture:
    ::

        store_asset(key, content)             one transaction
        ┌──────────────────────────────────────────────────────────┐
        │ SELECT asset WHERE owner_key, asset_key  (FOR UPDATE)    │
        │   ├── none            → INSERT asset                     │
        │   ├── hash differs    → INSERT asset_history (old row)   │
        │   │                     UPDATE asset content/hash/ts     │
        │   └── hash identical  → nothing                          │
        └──────────────────────────────────────────────────────────┘
        any backend failure → ROLLBACK → StoreWriteError

        delete_asset(key)                     one transaction
          DELETE asset_history WHERE asset_id IN (asset ids)  ← first
          DELETE asset                                        ← then

Examples:
    >>> store = DurableAssetStore(
    ...     "sqlite+aiosqlite:///./assets.db",
    ...     owner_category="service",
    ...     owner_key="billing-api",
    ... )
    >>> await store.store_asset("config.json", '{"a": 1}', category="config")
    'created'
    >>> (await store.get_asset("config.json")).content
    '{"a": 1}'
    >>> await store.close()

Guardrails:
    ❌ DON'T: Write to the asset tables outside this class (hash invariant)
    ✅ DO: Call close() on shutdown to release pooled connections

Tags:
    storage, sqlalchemy, versioning, audit-log, content-hash, configspine
"""

from __future__ import annotations

import asyncio
from typing import Literal

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker

from configspine.core.errors import (
    InvalidSourceConfigError,
    StoreReadError,
    StoreSchemaError,
    StoreWriteError,
)
from configspine.core.hashing import compute_content_hash, short_hash
from configspine.core.logging import get_logger
from configspine.store.engine import create_store_engine
from configspine.store.models import Asset, AssetHistoryEntry, AssetSummary
from configspine.store.tables import AssetBase, AssetHistoryTable, AssetTable, utcnow

logger = get_logger(__name__)

StoreOutcome = Literal["created", "updated", "unchanged"]

# Errors that mean "the backend failed", as opposed to programming errors
_BACKEND_ERRORS = (SQLAlchemyError, OSError)


def _to_asset(row: AssetTable) -> Asset:
    return Asset(
        id=row.id,
        owner_category=row.owner_category,
        owner_key=row.owner_key,
        asset_key=row.asset_key,
        asset_category=row.asset_category,
        description=row.description,
        content=row.content,
        content_hash=row.content_hash,
        created_at=row.created_at,
    )


def _to_history(row: AssetHistoryTable) -> AssetHistoryEntry:
    return AssetHistoryEntry(
        id=row.id,
        asset_id=row.asset_id,
        owner_category=row.owner_category,
        owner_key=row.owner_key,
        asset_key=row.asset_key,
        asset_category=row.asset_category,
        description=row.description,
        content=row.content,
        content_hash=row.content_hash,
        created_at=row.created_at,
    )


class DurableAssetStore:
    """Persists named assets for one owner with hash-based versioning.

    Every operation is scoped to the ``(owner_category, owner_key)`` the
    store was constructed with.
    """

    def __init__(
        self,
        url: str | None = None,
        *,
        owner_category: str,
        owner_key: str,
        engine: AsyncEngine | None = None,
        pool_size: int | None = None,
        echo: bool = False,
        verbose: bool = False,
    ):
        """Initialize the store.

        Args:
            url: SQLAlchemy async URL; ignored when ``engine`` is given
            owner_category: Category recorded on newly created assets
            owner_key: Owner scope for every read and write
            engine: Shared engine; the store will not dispose it on close()
            pool_size: Connection pool size for a store-owned engine
            echo: Log all SQL
            verbose: Log query details at info level instead of debug
        """
        if engine is None and url is None:
            raise InvalidSourceConfigError("DurableAssetStore needs a url or an engine")

        self.owner_category = owner_category
        self.owner_key = owner_key
        self._verbose = verbose
        self._owns_engine = engine is None
        self._engine = engine or create_store_engine(url, echo=echo, pool_size=pool_size)
        self._sessions = async_sessionmaker(self._engine, expire_on_commit=False)

        self._schema_ready = False
        self._schema_error: StoreSchemaError | None = None
        self._schema_lock = asyncio.Lock()
        self._closed = False

    def __repr__(self) -> str:
        return (
            f"DurableAssetStore(owner_category={self.owner_category!r}, "
            f"owner_key={self.owner_key!r}, url={self._engine.url!r})"
        )

    def _trace(self, event: str, **kwargs: object) -> None:
        if self._verbose:
            logger.info(event, owner_key=self.owner_key, **kwargs)
        else:
            logger.debug(event, owner_key=self.owner_key, **kwargs)

    # ------------------------------------------------------------------ #
    # Schema
    # ------------------------------------------------------------------ #

    async def ensure_schema(self) -> None:
        """Create the asset tables and indexes once per store instance.

        Raises:
            StoreSchemaError: on failure, and on every later call, since the
                store cannot be used without its schema
        """
        if self._schema_ready:
            return
        if self._schema_error is not None:
            raise self._schema_error

        async with self._schema_lock:
            if self._schema_ready:
                return
            if self._schema_error is not None:
                raise self._schema_error

            try:
                async with self._engine.begin() as conn:
                    await conn.run_sync(AssetBase.metadata.create_all)
            except _BACKEND_ERRORS as e:
                logger.error("asset_schema_failed", owner_key=self.owner_key, error=str(e))
                self._schema_error = StoreSchemaError(
                    f"Failed to ensure database schema: {e}", cause=e
                )
                raise self._schema_error from e

            self._schema_ready = True
            self._trace("asset_schema_ready")

    # ------------------------------------------------------------------ #
    # Reads
    # ------------------------------------------------------------------ #

    async def get_asset(self, key: str, category: str | None = None) -> Asset | None:
        """Look up the current asset for ``key``; ``None`` when no row matches."""
        await self.ensure_schema()

        stmt = select(AssetTable).where(
            AssetTable.owner_key == self.owner_key,
            AssetTable.asset_key == key,
        )
        if category:
            stmt = stmt.where(AssetTable.asset_category == category)

        try:
            async with self._sessions() as session:
                row = (await session.execute(stmt)).scalar_one_or_none()
        except _BACKEND_ERRORS as e:
            raise StoreReadError(f"Failed to get asset: {e}", cause=e).with_context(
                asset_key=key
            ) from e

        self._trace(
            "asset_lookup",
            asset_key=key,
            category=category or "not specified",
            found=row is not None,
        )
        return _to_asset(row) if row is not None else None

    async def list_assets(self, category: str | None = None) -> list[AssetSummary]:
        """List asset metadata for this owner, newest first."""
        await self.ensure_schema()

        stmt = select(
            AssetTable.id,
            AssetTable.asset_key,
            AssetTable.asset_category,
            AssetTable.content_hash,
            AssetTable.description,
            AssetTable.created_at,
        ).where(AssetTable.owner_key == self.owner_key)
        if category:
            stmt = stmt.where(AssetTable.asset_category == category)
        stmt = stmt.order_by(AssetTable.created_at.desc())

        try:
            async with self._sessions() as session:
                rows = (await session.execute(stmt)).all()
        except _BACKEND_ERRORS as e:
            raise StoreReadError(f"Failed to list assets: {e}", cause=e) from e

        return [
            AssetSummary(
                id=row.id,
                asset_key=row.asset_key,
                asset_category=row.asset_category,
                content_hash=row.content_hash,
                description=row.description,
                created_at=row.created_at,
            )
            for row in rows
        ]

    async def get_asset_history(self, key: str) -> list[AssetHistoryEntry]:
        """Return superseded versions of ``key``, most recent first."""
        await self.ensure_schema()

        stmt = (
            select(AssetHistoryTable)
            .join(AssetTable, AssetHistoryTable.asset_id == AssetTable.id)
            .where(AssetTable.owner_key == self.owner_key, AssetTable.asset_key == key)
            .order_by(AssetHistoryTable.created_at.desc())
        )

        try:
            async with self._sessions() as session:
                rows = (await session.execute(stmt)).scalars().all()
        except _BACKEND_ERRORS as e:
            raise StoreReadError(f"Failed to get asset history: {e}", cause=e).with_context(
                asset_key=key
            ) from e

        return [_to_history(row) for row in rows]

    # ------------------------------------------------------------------ #
    # Writes
    # ------------------------------------------------------------------ #

    async def store_asset(
        self,
        key: str,
        content: str,
        category: str = "default",
        description: str | None = None,
    ) -> StoreOutcome:
        """Insert or update ``key`` inside one transaction.

        Returns:
            ``"created"``, ``"updated"`` (previous version archived) or
            ``"unchanged"`` (identical hash, nothing written)

        Raises:
            StoreWriteError: the transaction failed and was rolled back
        """
        await self.ensure_schema()

        digest = compute_content_hash(content)
        self._trace(
            "asset_store_started",
            asset_key=key,
            category=category,
            content_size=len(content),
            new_hash=short_hash(digest),
        )

        outcome: StoreOutcome
        try:
            async with self._sessions() as session, session.begin():
                existing = (
                    await session.execute(
                        select(AssetTable)
                        .where(
                            AssetTable.owner_key == self.owner_key,
                            AssetTable.asset_key == key,
                        )
                        .with_for_update()
                    )
                ).scalar_one_or_none()

                if existing is None:
                    session.add(
                        AssetTable(
                            owner_category=self.owner_category,
                            asset_category=category,
                            owner_key=self.owner_key,
                            asset_key=key,
                            description=description,
                            content=content,
                            content_hash=digest,
                            created_at=utcnow(),
                        )
                    )
                    outcome = "created"

                elif existing.content_hash != digest:
                    session.add(
                        AssetHistoryTable(
                            asset_id=existing.id,
                            created_at=existing.created_at,
                            owner_category=existing.owner_category,
                            asset_category=existing.asset_category,
                            owner_key=existing.owner_key,
                            asset_key=existing.asset_key,
                            description=existing.description,
                            content=existing.content,
                            content_hash=existing.content_hash,
                        )
                    )
                    self._trace(
                        "asset_archived",
                        asset_key=key,
                        old_hash=short_hash(existing.content_hash),
                    )
                    existing.content = content
                    existing.content_hash = digest
                    existing.description = description
                    existing.created_at = utcnow()
                    outcome = "updated"

                else:
                    outcome = "unchanged"

        except _BACKEND_ERRORS as e:
            logger.error(
                "asset_store_failed", owner_key=self.owner_key, asset_key=key, error=str(e)
            )
            raise StoreWriteError(f"Failed to store asset: {e}", cause=e).with_context(
                asset_key=key
            ) from e

        logger.info("asset_stored", owner_key=self.owner_key, asset_key=key, outcome=outcome)
        return outcome

    async def delete_asset(self, key: str) -> bool:
        """Delete ``key`` and its history. Returns whether the asset existed."""
        await self.ensure_schema()

        asset_ids = select(AssetTable.id).where(
            AssetTable.owner_key == self.owner_key,
            AssetTable.asset_key == key,
        )

        try:
            async with self._sessions() as session, session.begin():
                # History first: it references the asset row
                await session.execute(
                    delete(AssetHistoryTable)
                    .where(AssetHistoryTable.asset_id.in_(asset_ids))
                    .execution_options(synchronize_session=False)
                )
                result = await session.execute(
                    delete(AssetTable)
                    .where(
                        AssetTable.owner_key == self.owner_key,
                        AssetTable.asset_key == key,
                    )
                    .execution_options(synchronize_session=False)
                )
                deleted = result.rowcount > 0
        except _BACKEND_ERRORS as e:
            raise StoreWriteError(f"Failed to delete asset: {e}", cause=e).with_context(
                asset_key=key
            ) from e

        logger.info("asset_deleted", owner_key=self.owner_key, asset_key=key, deleted=deleted)
        return deleted

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    async def close(self) -> None:
        """Release pooled connections. Idempotent."""
        if self._closed:
            return
        self._closed = True
        if self._owns_engine:
            await self._engine.dispose()
            self._trace("asset_store_closed")

    async def __aenter__(self) -> DurableAssetStore:
        return self

    async def __aexit__(self, *args) -> None:
        await self.close()


__all__ = ["DurableAssetStore", "StoreOutcome"]
