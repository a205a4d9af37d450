"""Value objects returned by the network asset source."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal


@dataclass(frozen=True)
class AssetResponse:
    """A single remote asset.

    ``content`` is always decoded text; ``content_hash`` is the upstream
    blob identifier (git SHA for GitHub), not a configspine content hash.
    """

    path: str
    content: str
    content_hash: str
    size: int
    encoding: str | None = None
    cached: bool = False


@dataclass(frozen=True)
class DirectoryItem:
    type: Literal["file", "dir", "symlink", "submodule"]
    name: str
    path: str
    sha: str
    url: str
    size: int | None = None


@dataclass(frozen=True)
class SearchResult:
    name: str
    path: str
    sha: str
    url: str
    repository: str
    score: float
