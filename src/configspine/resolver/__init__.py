"""Source-fallback configuration resolution with durable write-through."""

from configspine.resolver.diff import ContentDiff, compute_content_diff
from configspine.resolver.factory import build_resolver_from_settings, create_config_resolver
from configspine.resolver.resolver import (
    ABSENT,
    ConfigResolver,
    ResolvedConfig,
    ResolverState,
    is_absent,
)
from configspine.resolver.sources import ConfigSource, DurableSource, NetworkSource, SourceKind

__all__ = [
    "ABSENT",
    "is_absent",
    "ConfigResolver",
    "ResolvedConfig",
    "ResolverState",
    "ConfigSource",
    "NetworkSource",
    "DurableSource",
    "SourceKind",
    "ContentDiff",
    "compute_content_diff",
    "create_config_resolver",
    "build_resolver_from_settings",
]
