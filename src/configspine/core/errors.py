"""
Structured error types for configspine.

Every failure raised by a source, the durable store or the resolver is a
``ConfigSpineError`` subclass carrying:

- **Category:** What kind of error (network, database, source, parse, ...)
- **Retryable:** Whether ``RetryPolicy`` may try the operation again
- **Context:** Source name, URL, HTTP status and free-form metadata
- **Cause:** The chained underlying exception

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────────┐
        │                      ConfigSpineError                        │
        │        (category, retryable, context, cause)                 │
        ├──────────────────────────────────────────────────────────────┤
        │                                                              │
        │  TransientSourceFailure   RemoteFetchError    StoreError     │
        │  (NETWORK, retryable)     (SOURCE, status)    (DATABASE)     │
        │                                │                   │         │
        │                           NotFoundError      StoreSchemaError│
        │                           UnauthorizedError  StoreReadError  │
        │                           RateLimitedOr...   StoreWriteError │
        │                                                              │
        │  MalformedAssetError      ParseError    InvalidSourceConfig  │
        │  (VALIDATION)             (PARSE)       (CONFIG)             │
        └──────────────────────────────────────────────────────────────┘

Examples:
    >>> error = RemoteFetchError("Bad gateway", status=502)
    >>> error.retryable
    True
    >>> NotFoundError("config.json missing").retryable
    False
    >>> StoreWriteError("insert failed").with_context(asset_key="app").to_dict()["context"]
    {'asset_key': 'app'}

Guardrails:
    ❌ DON'T: Raise bare ``Exception`` from a source
    ✅ DO: Wrap backend errors and pass ``cause=``

Tags:
    error-handling, exception-hierarchy, retry-logic, configspine
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Error categories for classification and log routing."""

    # Infrastructure errors (usually transient)
    NETWORK = "NETWORK"
    DATABASE = "DATABASE"

    # Source/data errors
    SOURCE = "SOURCE"
    PARSE = "PARSE"
    VALIDATION = "VALIDATION"

    # Configuration errors (never retryable)
    CONFIG = "CONFIG"
    AUTH = "AUTH"

    INTERNAL = "INTERNAL"


@dataclass
class ErrorContext:
    """Structured metadata attached to an error for logging.

    Attributes:
        source_name: Source that produced the error (``"network:app.json"``)
        source_type: ``"network"`` or ``"database"``
        asset_key: Asset being read or written
        url: URL that was being accessed
        http_status: HTTP status code if applicable
        metadata: Additional key-value pairs
    """

    source_name: str | None = None
    source_type: str | None = None
    asset_key: str | None = None
    url: str | None = None
    http_status: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["source_name", "source_type", "asset_key", "url", "http_status"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class ConfigSpineError(Exception):
    """
    Base exception for all configspine errors.

    Subclasses set ``default_category`` and ``default_retryable``; both can be
    overridden per instance.

    Examples:
        >>> error = ConfigSpineError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> error.retryable
        False
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> ConfigSpineError:
        """
        Add context to this error (fluent API).

        Usage:
            raise NotFoundError("Asset missing").with_context(
                source_name="database:app",
                asset_key="app",
            )
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }

        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict

        if self.cause is not None:
            result["cause"] = str(self.cause)

        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# NETWORK SOURCE ERRORS
# =============================================================================


class TransientSourceFailure(ConfigSpineError):
    """Retry budget exhausted on a failure that was worth retrying.

    ``attempts`` records how many calls were made before giving up; the last
    underlying failure is available as ``cause``.
    """

    default_category = ErrorCategory.NETWORK
    default_retryable = True

    def __init__(self, message: str, *, attempts: int = 0, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.attempts = attempts

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["attempts"] = self.attempts
        return result


class RemoteFetchError(ConfigSpineError):
    """
    Remote asset API returned a non-success response or could not be reached.

    ``status`` is the HTTP status code, or ``None`` when no response was
    received at all. Transport failures, 429 and 5xx responses are retryable;
    every other status is permanent.
    """

    default_category = ErrorCategory.SOURCE

    def __init__(self, message: str, *, status: int | None = None, **kwargs: Any):
        if "retryable" not in kwargs or kwargs["retryable"] is None:
            kwargs["retryable"] = self._status_is_retryable(status)
        super().__init__(message, **kwargs)
        self.status = status
        if status is not None:
            self.context.http_status = status

    @staticmethod
    def _status_is_retryable(status: int | None) -> bool:
        return status is None or status == 429 or status >= 500

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.status is not None:
            result["status"] = self.status
        return result


class NotFoundError(RemoteFetchError):
    """Remote path (404) or durable key absent."""

    def __init__(self, message: str, *, status: int | None = 404, **kwargs: Any):
        kwargs.setdefault("retryable", False)
        super().__init__(message, status=status, **kwargs)


class UnauthorizedError(RemoteFetchError):
    """Remote API rejected the credentials (401)."""

    default_category = ErrorCategory.AUTH

    def __init__(self, message: str, *, status: int | None = 401, **kwargs: Any):
        kwargs.setdefault("retryable", False)
        super().__init__(message, status=status, **kwargs)


class RateLimitedOrForbiddenError(RemoteFetchError):
    """Remote API refused the request: quota exhausted or insufficient permissions (403)."""

    default_category = ErrorCategory.AUTH

    def __init__(self, message: str, *, status: int | None = 403, **kwargs: Any):
        kwargs.setdefault("retryable", False)
        super().__init__(message, status=status, **kwargs)


# =============================================================================
# DURABLE STORE ERRORS
# =============================================================================


class StoreError(ConfigSpineError):
    """Base class for durable store failures."""

    default_category = ErrorCategory.DATABASE


class StoreSchemaError(StoreError):
    """Schema creation failed; the store instance must not be used."""


class StoreReadError(StoreError):
    """A read query against the durable store failed."""


class StoreWriteError(StoreError):
    """A write transaction failed and was rolled back."""


class MalformedAssetError(ConfigSpineError):
    """A stored asset row has no content."""

    default_category = ErrorCategory.VALIDATION


# =============================================================================
# RESOLVER ERRORS
# =============================================================================


class ParseError(ConfigSpineError):
    """The caller-supplied parser or projector rejected raw content."""

    default_category = ErrorCategory.PARSE


class InvalidSourceConfigError(ConfigSpineError):
    """Source configuration is invalid (duplicate priority, unknown type, ...)."""

    default_category = ErrorCategory.CONFIG


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "ConfigSpineError",
    "TransientSourceFailure",
    "RemoteFetchError",
    "NotFoundError",
    "UnauthorizedError",
    "RateLimitedOrForbiddenError",
    "StoreError",
    "StoreSchemaError",
    "StoreReadError",
    "StoreWriteError",
    "MalformedAssetError",
    "ParseError",
    "InvalidSourceConfigError",
]
