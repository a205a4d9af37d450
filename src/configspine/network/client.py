"""
Read-only remote asset source.

``NetworkAssetSource`` fetches files from a repository hosted behind a
GitHub-style contents API. Every remote call goes through ``RetryPolicy``
and successful reads are kept in a ``BoundedTTLCache`` keyed by
``repo:branch:path``.

Architecture:
    ::

        load(path) / get_asset(path)
            │
            ├── cache hit?  → AssetResponse(cached=True)
            │
            └── RetryPolicy.execute(GET /repos/{owner}/{repo}/contents/{path}?ref={branch})
                    │
                    ├── 2xx        → decode (base64|utf-8) → cache → AssetResponse
                    ├── 404        → NotFoundError            (no retry by default)
                    ├── 401        → UnauthorizedError        (no retry)
                    ├── 403        → RateLimitedOrForbiddenError (no retry)
                    ├── 429 / 5xx  → RemoteFetchError         (retried)
                    └── transport  → RemoteFetchError(status=None) (retried)

Examples:
    >>> source = NetworkAssetSource(repo="acme/app-config", token="ghp_...")
    >>> raw = await source.load("billing/config.json")
    >>> await source.close()

Guardrails:
    ❌ DON'T: Log the token
    ✅ DO: Use mask_token() when a credential must appear in output

Tags:
    network, http, httpx, github, cache, retry, configspine
"""

from __future__ import annotations

import base64
import binascii
from typing import Any

import httpx

from configspine.core.cache import BoundedTTLCache
from configspine.core.errors import (
    InvalidSourceConfigError,
    NotFoundError,
    RateLimitedOrForbiddenError,
    RemoteFetchError,
    UnauthorizedError,
)
from configspine.core.logging import get_logger, mask_token
from configspine.core.retry import RetryPolicy
from configspine.network.models import AssetResponse, DirectoryItem, SearchResult

logger = get_logger(__name__)

DEFAULT_BASE_URL = "https://api.github.com"


class NetworkAssetSource:
    """Fetches asset content from a remote repository API.

    Attributes:
        repo: ``owner/repo`` identifier
        branch: Git ref passed as ``?ref=``
    """

    def __init__(
        self,
        *,
        repo: str,
        token: str,
        branch: str = "main",
        base_url: str = DEFAULT_BASE_URL,
        timeout_seconds: float = 30.0,
        cache: BoundedTTLCache[Any] | None = None,
        cache_enabled: bool = True,
        retry_policy: RetryPolicy | None = None,
        retry_not_found: bool = False,
        http_client: httpx.AsyncClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        owner, _, name = repo.partition("/")
        if not owner or not name or "/" in name:
            raise InvalidSourceConfigError(
                f"Invalid repository format {repo!r}. Expected: owner/repo"
            )

        self.repo = repo
        self.branch = branch
        self._owner = owner
        self._repo_name = name
        self._token = token
        self._retry = retry_policy or RetryPolicy()
        self._retry_not_found = retry_not_found

        if cache is not None:
            self._cache: BoundedTTLCache[Any] | None = cache
        elif cache_enabled:
            self._cache = BoundedTTLCache()
        else:
            self._cache = None

        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            base_url=base_url,
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github.v3+json",
            },
            timeout=timeout_seconds,
            transport=transport,
        )
        self._closed = False

        logger.debug(
            "network_source_created",
            repo=repo,
            branch=branch,
            token=mask_token(token),
            cache_enabled=self._cache is not None,
        )

    def __repr__(self) -> str:
        return f"NetworkAssetSource(repo={self.repo!r}, branch={self.branch!r})"

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    async def load(self, path: str) -> str:
        """Return the raw content of the asset at ``path``."""
        asset = await self.get_asset(path)
        return asset.content

    async def get_asset(self, path: str) -> AssetResponse:
        """Fetch a single file, consulting the cache first."""
        cache_key = f"{self.repo}:{self.branch}:{path}"

        if self._cache is not None:
            cached = self._cache.get(cache_key)
            if cached is not None:
                logger.debug("network_cache_hit", path=path)
                return AssetResponse(
                    path=cached.path,
                    content=cached.content,
                    content_hash=cached.content_hash,
                    size=cached.size,
                    encoding=cached.encoding,
                    cached=True,
                )

        data = await self._get_json(self._contents_url(path), description=f"get asset {path}")

        if not isinstance(data, dict) or data.get("type", "file") != "file":
            raise RemoteFetchError(
                f"Failed to get asset {path}: path is not a file",
                retryable=False,
            ).with_context(url=self._contents_url(path))

        asset = AssetResponse(
            path=data.get("path", path),
            content=self._decode_content(data, path),
            content_hash=data.get("sha") or data.get("contentHash", ""),
            size=int(data.get("size", 0)),
            encoding=data.get("encoding"),
        )

        if self._cache is not None:
            self._cache.set(cache_key, asset)

        logger.debug("network_asset_fetched", path=path, size=asset.size)
        return asset

    async def list_assets(self, directory: str = "") -> list[DirectoryItem]:
        """List the entries of a directory."""
        cache_key = f"list:{self.repo}:{self.branch}:{directory}"

        if self._cache is not None:
            cached = self._cache.get(cache_key)
            if cached is not None:
                return list(cached)

        data = await self._get_json(
            self._contents_url(directory), description=f"list assets {directory or '/'}"
        )

        items = [
            DirectoryItem(
                type=item["type"],
                name=item["name"],
                path=item["path"],
                sha=item.get("sha", ""),
                url=item.get("url", ""),
                size=item.get("size"),
            )
            for item in (data if isinstance(data, list) else [])
        ]

        if self._cache is not None:
            self._cache.set(cache_key, tuple(items))

        return items

    async def search_assets(self, query: str) -> list[SearchResult]:
        """Search file contents within the repository."""
        cache_key = f"search:{self.repo}:{query}"

        if self._cache is not None:
            cached = self._cache.get(cache_key)
            if cached is not None:
                return list(cached)

        data = await self._get_json(
            "/search/code",
            params={"q": f"{query} repo:{self.repo}", "per_page": 100},
            description=f"search assets {query}",
        )

        results = [
            SearchResult(
                name=item["name"],
                path=item["path"],
                sha=item.get("sha", ""),
                url=item.get("url", ""),
                repository=item.get("repository", {}).get("full_name", self.repo),
                score=float(item.get("score", 0.0)),
            )
            for item in data.get("items", [])
        ]

        if self._cache is not None:
            self._cache.set(cache_key, tuple(results))

        return results

    def clear_cache(self) -> None:
        if self._cache is not None:
            self._cache.clear()

    async def close(self) -> None:
        """Release the HTTP client if this source created it. Idempotent."""
        if self._closed:
            return
        self._closed = True
        if self._owns_client:
            await self._client.aclose()

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _contents_url(self, path: str) -> str:
        return f"/repos/{self._owner}/{self._repo_name}/contents/{path.lstrip('/')}"

    async def _get_json(
        self,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        description: str,
    ) -> Any:
        request_params = {"ref": self.branch} if params is None else params

        async def attempt() -> Any:
            try:
                response = await self._client.get(url, params=request_params)
            except httpx.TransportError as e:
                raise RemoteFetchError(
                    f"Failed to {description}: {e}", cause=e
                ).with_context(url=url) from e

            if response.is_success:
                try:
                    return response.json()
                except ValueError as e:
                    raise RemoteFetchError(
                        f"Failed to {description}: response is not JSON",
                        status=response.status_code,
                        retryable=False,
                        cause=e,
                    ).with_context(url=url) from e

            raise self._error_for(response, description).with_context(url=url)

        return await self._retry.execute(attempt, description=description)

    def _error_for(self, response: httpx.Response, description: str) -> RemoteFetchError:
        status = response.status_code
        message = f"Failed to {description}"

        if status == 404:
            return NotFoundError(f"{message}: Not found", retryable=self._retry_not_found)
        if status == 401:
            return UnauthorizedError(f"{message}: Invalid authentication token")
        if status == 403:
            return RateLimitedOrForbiddenError(
                f"{message}: Rate limit exceeded or insufficient permissions"
            )

        try:
            upstream = response.json().get("message") or "Unknown error"
        except (ValueError, AttributeError):
            upstream = response.text or "Unknown error"
        return RemoteFetchError(f"{message}: {upstream}", status=status)

    @staticmethod
    def _decode_content(data: dict[str, Any], path: str) -> str:
        content = data.get("content")
        if content is None:
            raise RemoteFetchError(
                f"Failed to get asset {path}: response has no content", retryable=False
            )

        if data.get("encoding") == "base64":
            try:
                return base64.b64decode(content).decode("utf-8")
            except (binascii.Error, UnicodeDecodeError) as e:
                raise RemoteFetchError(
                    f"Failed to get asset {path}: undecodable content",
                    retryable=False,
                    cause=e,
                ) from e

        return content


__all__ = ["NetworkAssetSource", "DEFAULT_BASE_URL"]
