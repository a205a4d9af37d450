"""Configuration sources the resolver can walk.

A source is one of a closed set of variants:

- ``NetworkSource``: read-only, wraps a ``NetworkAssetSource``
- ``DurableSource``: readable and writable, wraps a ``DurableAssetStore``

Lower ``priority`` numbers are tried first.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from configspine.core.errors import ConfigSpineError, MalformedAssetError, NotFoundError
from configspine.network.client import NetworkAssetSource
from configspine.store.service import DurableAssetStore, StoreOutcome

DEFAULT_WRITE_THROUGH_CATEGORY = "config"
WRITE_THROUGH_DESCRIPTION = "Configuration data cached from network source"


class SourceKind(str, Enum):
    NETWORK = "network"
    DATABASE = "database"


@dataclass
class NetworkSource:
    """Remote source: ``load()`` fetches ``key`` through the network client."""

    priority: int
    loader: NetworkAssetSource
    key: str

    kind = SourceKind.NETWORK

    @property
    def name(self) -> str:
        return f"{self.kind.value}:{self.key}"

    async def load(self) -> str:
        return await self.loader.load(self.key)


@dataclass
class DurableSource:
    """Database source: reads ``key`` from the store and accepts write-through.

    ``last_loaded_content`` remembers what the most recent successful
    ``load()`` returned, for diff reporting.
    """

    priority: int
    store: DurableAssetStore
    key: str
    category: str | None = None
    last_loaded_content: str | None = field(default=None, init=False, repr=False)

    kind = SourceKind.DATABASE

    @property
    def name(self) -> str:
        return f"{self.kind.value}:{self.key}"

    async def load(self) -> str:
        asset = await self.store.get_asset(self.key, self.category)

        if asset is None:
            raise NotFoundError(
                f"Asset not found: {self.key}", status=None
            ).with_context(source_name=self.name, asset_key=self.key)

        if asset.content is None:
            raise MalformedAssetError(
                f"Invalid asset structure: {self.key} has no content"
            ).with_context(source_name=self.name, asset_key=self.key)

        self.last_loaded_content = asset.content
        return asset.content

    async def peek(self) -> str | None:
        """Return the stored content without failing; ``None`` if unavailable.

        Only used for diff reporting, so any failure counts as "nothing stored".
        """
        if self.last_loaded_content is not None:
            return self.last_loaded_content
        try:
            asset = await self.store.get_asset(self.key, self.category)
        except ConfigSpineError:
            return None
        return asset.content if asset is not None else None

    async def store_content(self, content: str) -> StoreOutcome:
        outcome = await self.store.store_asset(
            self.key,
            content,
            self.category or DEFAULT_WRITE_THROUGH_CATEGORY,
            WRITE_THROUGH_DESCRIPTION,
        )
        self.last_loaded_content = content
        return outcome


ConfigSource = NetworkSource | DurableSource


__all__ = [
    "SourceKind",
    "NetworkSource",
    "DurableSource",
    "ConfigSource",
    "DEFAULT_WRITE_THROUGH_CATEGORY",
]
