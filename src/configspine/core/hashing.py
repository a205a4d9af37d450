"""
Deterministic content hashing for change detection.

The durable store keeps one live row per asset and appends a history entry
only when content actually changes. ``compute_content_hash`` is what decides
"actually changes": the stored ``content_hash`` is always the digest of the
exact ``content`` next to it, so comparing digests is enough to skip no-op
writes. Operators can also compare the digest of the network copy with the
durable copy to spot drift.

Examples:
    >>> h1 = compute_content_hash('{"a": 1}')
    >>> h2 = compute_content_hash('{"a": 1}')
    >>> h1 == h2
    True
    >>> len(h1)
    64
    >>> compute_content_hash('{"a": 2}') == h1
    False

Tags:
    hashing, change-detection, configspine
"""

import hashlib


def compute_content_hash(content: str) -> str:
    """
    Return the SHA-256 hex digest of ``content`` (UTF-8 encoded).

    No normalisation is applied: two payloads that differ only in whitespace
    hash differently, because they are stored differently.

    Args:
        content: Raw configuration payload

    Returns:
        64-character lowercase hex string
    """
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def short_hash(digest: str, length: int = 16) -> str:
    """Truncate a digest for log output."""
    return digest[:length]
