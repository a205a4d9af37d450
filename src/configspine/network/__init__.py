"""Network asset source: remote reads behind a TTL cache and retry policy."""

from configspine.network.client import NetworkAssetSource
from configspine.network.models import AssetResponse, DirectoryItem, SearchResult

__all__ = [
    "NetworkAssetSource",
    "AssetResponse",
    "DirectoryItem",
    "SearchResult",
]
