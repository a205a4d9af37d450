"""Asset table definitions: current asset rows and their append-only history.

Uses SQLAlchemy 2.0 ``DeclarativeBase`` so the same models create the schema
on SQLite (tests, local) and PostgreSQL (production).

Tags:
    configspine, orm, sqlalchemy, tables, assets

Doc-Types:
    api-reference, data-model
"""

from __future__ import annotations

import datetime
import uuid

from sqlalchemy import DateTime, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime.datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.datetime.now(datetime.UTC)


class AssetBase(DeclarativeBase):
    """Declarative base for the asset store tables.

    ``type_annotation_map`` keeps plain ``str`` columns as ``Text`` and stores
    timestamps with their timezone where the backend supports it.
    """

    type_annotation_map = {
        str: Text,
        datetime.datetime: DateTime(timezone=True),
    }


class AssetTable(AssetBase):
    __tablename__ = "asset"
    __table_args__ = (
        UniqueConstraint("owner_key", "asset_key", name="uq_asset_owner_key_asset_key"),
        Index("idx_asset_owner_key", "owner_key"),
        Index("idx_asset_asset_key", "asset_key"),
        Index("idx_asset_asset_category", "asset_category"),
        Index("idx_asset_owner_category", "owner_category"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    created_at: Mapped[datetime.datetime] = mapped_column(nullable=False, default=utcnow)
    owner_category: Mapped[str] = mapped_column(String(255), nullable=False)
    asset_category: Mapped[str] = mapped_column(String(255), nullable=False)
    owner_key: Mapped[str] = mapped_column(String(255), nullable=False)
    asset_key: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    # Nullable so rows written by other tools without content surface as
    # MalformedAssetError instead of failing at the driver.
    content: Mapped[str | None] = mapped_column(Text)
    content_hash: Mapped[str] = mapped_column(String(64), nullable=False)


class AssetHistoryTable(AssetBase):
    __tablename__ = "asset_history"
    __table_args__ = (
        Index("idx_asset_history_asset_id", "asset_id"),
        Index("idx_asset_history_owner_key", "owner_key"),
        Index("idx_asset_history_asset_key", "asset_key"),
        Index("idx_asset_history_asset_category", "asset_category"),
        Index("idx_asset_history_owner_category", "owner_category"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    asset_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("asset.id"), nullable=False
    )
    created_at: Mapped[datetime.datetime] = mapped_column(nullable=False)
    owner_category: Mapped[str] = mapped_column(String(255), nullable=False)
    asset_category: Mapped[str] = mapped_column(String(255), nullable=False)
    owner_key: Mapped[str] = mapped_column(String(255), nullable=False)
    asset_key: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    content: Mapped[str | None] = mapped_column(Text)
    content_hash: Mapped[str] = mapped_column(String(64), nullable=False)


__all__ = ["AssetBase", "AssetTable", "AssetHistoryTable", "utcnow"]
