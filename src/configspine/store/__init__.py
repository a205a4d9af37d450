"""Durable asset store: versioned assets with an append-only history."""

from configspine.store.models import Asset, AssetHistoryEntry, AssetSummary
from configspine.store.service import DurableAssetStore

__all__ = [
    "Asset",
    "AssetHistoryEntry",
    "AssetSummary",
    "DurableAssetStore",
]
