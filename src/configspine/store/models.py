"""Immutable domain records returned by ``DurableAssetStore``.

Callers never receive ORM rows; each query maps its rows into these frozen
dataclasses before the session closes.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class Asset:
    """Current state of an asset, unique per ``(owner_key, asset_key)``."""

    id: str
    owner_category: str
    owner_key: str
    asset_key: str
    asset_category: str
    description: str | None
    content: str | None
    content_hash: str
    created_at: datetime


@dataclass(frozen=True)
class AssetHistoryEntry:
    """Snapshot of an asset taken immediately before it was updated."""

    id: str
    asset_id: str
    owner_category: str
    owner_key: str
    asset_key: str
    asset_category: str
    description: str | None
    content: str | None
    content_hash: str
    created_at: datetime


@dataclass(frozen=True)
class AssetSummary:
    """Asset metadata without content, for listings."""

    id: str
    asset_key: str
    asset_category: str
    content_hash: str
    description: str | None
    created_at: datetime


__all__ = ["Asset", "AssetHistoryEntry", "AssetSummary"]
