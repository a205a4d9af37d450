"""
configspine: layered configuration with network-first reads and a durable fallback.

Configuration is fetched from a remote asset API, written through to a
versioned database store, and served from the store whenever the network
cannot be reached.

Examples:
    >>> from configspine import build_resolver_from_settings, is_absent
    >>> resolver = build_resolver_from_settings()
    >>> value = await resolver.get_config("service.port")
"""

from configspine.core.errors import ConfigSpineError
from configspine.network.client import NetworkAssetSource
from configspine.resolver import (
    ABSENT,
    ConfigResolver,
    DurableSource,
    NetworkSource,
    build_resolver_from_settings,
    create_config_resolver,
    is_absent,
)
from configspine.store.service import DurableAssetStore

__version__ = "0.3.0"

__all__ = [
    "__version__",
    "ABSENT",
    "is_absent",
    "ConfigResolver",
    "ConfigSpineError",
    "DurableAssetStore",
    "DurableSource",
    "NetworkAssetSource",
    "NetworkSource",
    "build_resolver_from_settings",
    "create_config_resolver",
]
