"""
Resolver construction from explicit sources or from settings.

Each call builds and returns a new, independently owned resolver; there is
no module-level instance. Resources the factory creates (HTTP client, store
engine) are handed to the resolver and released by ``destroy()``.

Examples:
    >>> resolver = build_resolver_from_settings()
    >>> await resolver.get_config("feature_flags.beta")
    True
    >>> await resolver.destroy()
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from typing import Any

import httpx

from configspine.core.cache import BoundedTTLCache
from configspine.core.errors import InvalidSourceConfigError
from configspine.core.logging import get_logger
from configspine.core.retry import RetryPolicy
from configspine.core.settings import (
    ConfigSpineSettings,
    DatabaseSettings,
    NetworkSettings,
    get_settings,
)
from configspine.network.client import NetworkAssetSource
from configspine.resolver.resolver import ConfigResolver, Parser, Projector, project_top_level
from configspine.resolver.sources import ConfigSource, DurableSource, NetworkSource
from configspine.store.service import DurableAssetStore

logger = get_logger(__name__)


def create_config_resolver(
    sources: Iterable[ConfigSource],
    *,
    parser: Parser = json.loads,
    projector: Projector = project_top_level,
    verbose: bool = False,
    name: str = "config",
    resources: Iterable[Any] = (),
) -> ConfigResolver:
    """Create a resolver over caller-provided sources."""
    return ConfigResolver(
        sources,
        parser=parser,
        projector=projector,
        verbose=verbose,
        name=name,
        resources=resources,
    )


def build_network_source(
    settings: NetworkSettings,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> NetworkAssetSource:
    """Build a network client with the cache and retry policy from settings."""
    if settings.repo is None or settings.token is None:
        raise InvalidSourceConfigError("network.repo and network.token are required")

    retry_policy = RetryPolicy(
        max_retries=settings.max_retries,
        min_delay=settings.min_delay_seconds,
        factor=settings.backoff_factor,
        max_delay=settings.max_delay_seconds,
    )
    cache: BoundedTTLCache[Any] | None = None
    if settings.cache_enabled:
        cache = BoundedTTLCache(
            max_size=settings.cache_max_size, ttl_seconds=settings.cache_ttl_seconds
        )

    return NetworkAssetSource(
        repo=settings.repo,
        token=settings.token.get_secret_value(),
        branch=settings.branch,
        base_url=settings.base_url,
        timeout_seconds=settings.timeout_seconds,
        cache=cache,
        cache_enabled=settings.cache_enabled,
        retry_policy=retry_policy,
        retry_not_found=settings.retry_not_found,
        transport=transport,
    )


def build_store(settings: DatabaseSettings, *, verbose: bool = False) -> DurableAssetStore:
    """Build a durable store that owns its engine."""
    if settings.url is None:
        raise InvalidSourceConfigError("database.url is required")

    return DurableAssetStore(
        settings.url,
        owner_category=settings.owner_category,
        owner_key=settings.owner_key,
        pool_size=settings.pool_size,
        echo=settings.echo,
        verbose=verbose,
    )


def build_resolver_from_settings(
    settings: ConfigSpineSettings | None = None,
    *,
    parser: Parser = json.loads,
    projector: Projector = project_top_level,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ConfigResolver:
    """Build a resolver from the ``sources`` list in settings.

    A network entry is skipped when repo/token are not configured, a database
    entry when ``database.url`` is unset. Sources of one type share a single
    client/store.

    Args:
        settings: Defaults to ``get_settings()``
        parser: Raw content parser (default JSON)
        projector: Key/value projection (default top-level keys)
        transport: httpx transport for the network client (tests)
    """
    settings = settings or get_settings()

    network: NetworkAssetSource | None = None
    store: DurableAssetStore | None = None
    sources: list[ConfigSource] = []

    for entry in sorted(settings.sources, key=lambda s: s.priority):
        key = entry.asset_key or settings.asset_key

        match entry.type:
            case "network":
                if not settings.network.configured:
                    logger.warning(
                        "source_skipped",
                        source_type="network",
                        reason="network.repo and network.token not configured",
                    )
                    continue
                if network is None:
                    network = build_network_source(settings.network, transport=transport)
                sources.append(NetworkSource(entry.priority, network, key))

            case "database":
                if settings.database.url is None:
                    logger.warning(
                        "source_skipped",
                        source_type="database",
                        reason="database.url not configured",
                    )
                    continue
                if store is None:
                    store = build_store(settings.database, verbose=settings.verbose)
                sources.append(
                    DurableSource(entry.priority, store, key, entry.category or settings.category)
                )

    resources = [resource for resource in (network, store) if resource is not None]

    logger.debug(
        "config_resolver_built",
        sources=[source.name for source in sources],
        verbose=settings.verbose,
    )
    return create_config_resolver(
        sources,
        parser=parser,
        projector=projector,
        verbose=settings.verbose,
        resources=resources,
    )


__all__ = [
    "create_config_resolver",
    "build_resolver_from_settings",
    "build_network_source",
    "build_store",
]
