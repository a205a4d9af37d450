"""Core primitives: errors, hashing, caching, retry, logging and settings."""

from configspine.core.cache import BoundedTTLCache
from configspine.core.hashing import compute_content_hash
from configspine.core.retry import RetryPolicy

__all__ = [
    "BoundedTTLCache",
    "RetryPolicy",
    "compute_content_hash",
]
