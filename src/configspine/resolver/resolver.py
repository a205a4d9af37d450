"""
Source-fallback configuration resolver.

``ConfigResolver`` walks an ordered list of sources, takes the first one that
yields parseable content, projects it into a key/value view, and copies
network-sourced content into the durable source so the next cold start can
survive a network outage.

Architecture:
    ::

        get_config(path) ──► _ensure_initialized()      (single-flight first load)
                                   │
                                   ▼
        reload() ─────────► _resolve()                  (serialized by _reload_lock)
                                   │
             for source in sources (ascending priority):
                 raw   = await source.load()            failure → log, next source
                 data  = parser(raw)                    failure → log, next source
                 values = projector(data, {})
                 commit snapshot  ──► state READY
                 NetworkSource? ──► write-through to DurableSource (best-effort)
                 stop
             nothing succeeded ──► empty snapshot, state EMPTY

        State machine:
            UNINITIALIZED ──► LOADING ──► READY | EMPTY
            READY | EMPTY ──► LOADING   (on reload)

Examples:
    >>> resolver = ConfigResolver(
    ...     [NetworkSource(1, network, "app.json"), DurableSource(2, store, "app.json")],
    ... )
    >>> await resolver.get_config("database.host")
    'db.internal'
    >>> await resolver.get_config("database.missing") is None
    True
    >>> resolver.last_load_source
    'network'

    When no source can produce configuration at all:

    >>> value = await resolver.get_config("database.host")
    >>> is_absent(value)
    True

Guardrails:
    ❌ DON'T: Treat ``None`` from get_config() as "no configuration"
    ✅ DO: Check ``is_absent(value)``; ``None`` only means the key is missing

    ❌ DON'T: Mutate values returned by get_config()/get_all() expecting to
              change the resolver's view
    ✅ DO: reload() to pick up new content

Tags:
    configuration, fallback, write-through, single-flight, configspine
"""

from __future__ import annotations

import asyncio
import copy
import inspect
import json
from collections.abc import Awaitable, Callable, Iterable, Mapping, MutableMapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from types import MappingProxyType
from typing import Any

from configspine.core.errors import InvalidSourceConfigError, ParseError
from configspine.core.logging import LogContext, get_logger
from configspine.resolver.diff import compute_content_diff
from configspine.resolver.sources import ConfigSource, DurableSource, NetworkSource, SourceKind

Parser = Callable[[str], Any | Awaitable[Any]]
Projector = Callable[[Any, MutableMapping[str, Any]], None]

logger = get_logger(__name__)


class _Absent:
    """Marker for "no configuration could be obtained from any source"."""

    _instance: _Absent | None = None

    def __new__(cls) -> _Absent:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "ABSENT"

    def __bool__(self) -> bool:
        return False

    def __copy__(self) -> _Absent:
        return self

    def __deepcopy__(self, memo: dict) -> _Absent:
        return self

    def __reduce__(self) -> str:
        return "ABSENT"


ABSENT = _Absent()


def is_absent(value: Any) -> bool:
    """True when ``value`` is the resolver's absent-marker."""
    return value is ABSENT


class ResolverState(str, Enum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    READY = "ready"
    EMPTY = "empty"


@dataclass(frozen=True)
class ResolvedConfig:
    """Immutable result of one resolution pass.

    A new instance replaces the previous one on every reload, so a reader
    holding a snapshot never observes a half-applied reload.
    """

    values: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    data: Any = None
    source_kind: SourceKind | None = None
    source_name: str | None = None
    initialized: bool = False
    loaded_at: datetime | None = None

    @property
    def found(self) -> bool:
        return self.source_name is not None


def project_top_level(data: Any, sink: MutableMapping[str, Any]) -> None:
    """Default projector: copy the top-level keys of a mapping."""
    if not isinstance(data, Mapping):
        raise TypeError(
            f"default projector expects a mapping, got {type(data).__name__}; "
            "pass a projector for other shapes"
        )
    sink.update(data)


def resolve_path(values: Mapping[str, Any], path: str) -> Any:
    """Walk a dotted path through nested mappings and lists.

    Returns ``None`` as soon as a segment is missing. Only mappings and
    non-string sequences are walked into; list segments must be
    non-negative indexes.

    Examples:
        >>> resolve_path({"a": {"b": [10, 20]}}, "a.b.1")
        20
        >>> resolve_path({"a": {"b": 1}}, "a.c") is None
        True
        >>> resolve_path({"name": "svc"}, "name.upper") is None
        True
    """
    first, *rest = path.split(".")
    value = values.get(first)

    for part in rest:
        if isinstance(value, Mapping):
            value = value.get(part)
        elif isinstance(value, Sequence) and not isinstance(value, (str, bytes)):
            value = value[int(part)] if part.isdecimal() and int(part) < len(value) else None
        else:
            return None

    return value


class ConfigResolver:
    """Resolves configuration from prioritized sources with durable write-through.

    Attributes:
        name: Label bound to every log event of this resolver
        watchers: Background resources closed by destroy(); empty by default
    """

    def __init__(
        self,
        sources: Iterable[ConfigSource],
        *,
        parser: Parser = json.loads,
        projector: Projector = project_top_level,
        verbose: bool = False,
        name: str = "config",
        resources: Iterable[Any] = (),
    ):
        """Initialize the resolver. No I/O happens until the first read.

        Args:
            sources: Network and durable sources; priorities must be distinct
            parser: ``raw content -> data``; may be a coroutine function
            projector: ``(data, sink)``; fills ``sink`` with the key/value view
            verbose: Log diffs and per-source detail at info level
            name: Resolver label for logs
            resources: Objects with ``async close()`` owned by this resolver
                (network client, store) and released by destroy()

        Raises:
            InvalidSourceConfigError: duplicate priorities or unknown source type
        """
        ordered = sorted(sources, key=lambda source: source.priority)

        priorities = [source.priority for source in ordered]
        if len(priorities) != len(set(priorities)):
            raise InvalidSourceConfigError(f"Source priorities must be distinct, got {priorities}")
        for source in ordered:
            if not isinstance(source, (NetworkSource, DurableSource)):
                raise InvalidSourceConfigError(f"Unknown source type: {type(source).__name__}")

        self.name = name
        self._sources: tuple[ConfigSource, ...] = tuple(ordered)
        self._durable = next(
            (source for source in self._sources if isinstance(source, DurableSource)), None
        )
        self._parser = parser
        self._projector = projector
        self._verbose = verbose

        self._snapshot = ResolvedConfig()
        self._state = ResolverState.UNINITIALIZED
        self._reload_lock = asyncio.Lock()
        self._first_load: asyncio.Future[None] | None = None

        self.watchers: list[Any] = []
        self._resources = list(resources)
        self._destroyed = False

    def __repr__(self) -> str:
        return f"ConfigResolver(name={self.name!r}, state={self._state.value}, sources={self.source_names})"

    # ------------------------------------------------------------------ #
    # Introspection
    # ------------------------------------------------------------------ #

    @property
    def state(self) -> ResolverState:
        return self._state

    @property
    def initialized(self) -> bool:
        return self._snapshot.initialized

    @property
    def sources(self) -> tuple[ConfigSource, ...]:
        return self._sources

    @property
    def source_names(self) -> list[str]:
        return [source.name for source in self._sources]

    @property
    def snapshot(self) -> ResolvedConfig:
        """The current resolution result (immutable)."""
        return self._snapshot

    @property
    def last_load_source(self) -> str | None:
        """Kind of the source that produced the current view (``"network"``/``"database"``)."""
        kind = self._snapshot.source_kind
        return kind.value if kind is not None else None

    @property
    def last_load_source_name(self) -> str | None:
        """Name of the winning source, e.g. ``"network:app.json"``."""
        return self._snapshot.source_name

    # ------------------------------------------------------------------ #
    # Reads
    # ------------------------------------------------------------------ #

    async def get_config(self, path: str | None = None) -> Any:
        """Return the whole view, or the value at a dotted ``path``.

        Returns:
            ``ABSENT`` when no source produced configuration; ``None`` when the
            configuration loaded but ``path`` does not exist in it; otherwise a
            copy of the value.
        """
        await self._ensure_initialized()

        snapshot = self._snapshot
        if not snapshot.found:
            return ABSENT

        if not path:
            return copy.deepcopy(dict(snapshot.values))

        return copy.deepcopy(resolve_path(snapshot.values, path))

    async def get_all(self) -> dict[str, Any]:
        """Return a copy of the key/value view (empty when nothing loaded)."""
        await self._ensure_initialized()
        return copy.deepcopy(dict(self._snapshot.values))

    # ------------------------------------------------------------------ #
    # Loading
    # ------------------------------------------------------------------ #

    async def reload(self) -> None:
        """Re-run source resolution. Never raises for source failures."""
        async with self._reload_lock:
            await self._resolve()

    async def _ensure_initialized(self) -> None:
        if self._snapshot.initialized:
            return

        # Concurrent first readers share one load
        if self._first_load is None or self._first_load.cancelled():
            self._first_load = asyncio.ensure_future(self._initial_load())

        await asyncio.shield(self._first_load)

    async def _initial_load(self) -> None:
        async with self._reload_lock:
            if self._snapshot.initialized:
                return
            await self._resolve()

    async def _resolve(self) -> None:
        self._state = ResolverState.LOADING

        async with LogContext(resolver=self.name):
            logger.info("config_reload_started", sources=self.source_names)

            for source in self._sources:
                if await self._try_source(source):
                    return

            self._snapshot = ResolvedConfig(initialized=True, loaded_at=datetime.now(UTC))
            self._state = ResolverState.EMPTY
            logger.warning("config_not_found_in_any_source", sources=self.source_names)

    async def _try_source(self, source: ConfigSource) -> bool:
        log = logger.info if self._verbose else logger.debug
        log("source_load_attempt", source=source.name, priority=source.priority)

        try:
            raw = await source.load()
        except Exception as e:
            logger.warning(
                "source_load_failed",
                source=source.name,
                priority=source.priority,
                error_type=type(e).__name__,
                error=str(e),
            )
            return False

        try:
            data = await self._parse(raw)
            values: dict[str, Any] = {}
            self._projector(data, values)
        except Exception as e:
            error = ParseError(f"Failed to parse content from {source.name}: {e}", cause=e)
            logger.warning("source_parse_failed", source=source.name, **error.to_dict())
            return False

        self._snapshot = ResolvedConfig(
            values=MappingProxyType(values),
            data=data,
            source_kind=source.kind,
            source_name=source.name,
            initialized=True,
            loaded_at=datetime.now(UTC),
        )
        self._state = ResolverState.READY
        logger.info("config_loaded", source=source.name, keys=len(values))

        match source:
            case NetworkSource():
                await self._write_through(raw)
            case DurableSource():
                pass

        return True

    async def _parse(self, raw: str) -> Any:
        result = self._parser(raw)
        if inspect.isawaitable(result):
            result = await result
        return result

    async def _write_through(self, raw: str) -> None:
        durable = self._durable
        if durable is None:
            return

        if self._verbose:
            previous = await durable.peek()
            if previous is not None:
                diff = compute_content_diff(previous, raw)
                if diff.changed:
                    logger.warning("write_through_content_changed", target=durable.name, **diff.to_log())
                else:
                    logger.info("write_through_content_unchanged", target=durable.name)

        try:
            outcome = await durable.store_content(raw)
        except Exception as e:
            logger.warning(
                "write_through_failed",
                target=durable.name,
                error_type=type(e).__name__,
                error=str(e),
            )
            return

        logger.info("write_through_completed", target=durable.name, outcome=outcome)

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    async def destroy(self) -> None:
        """Close watchers and owned resources. Idempotent."""
        if self._destroyed:
            return
        self._destroyed = True

        for watcher in self.watchers:
            close = getattr(watcher, "close", None)
            if close is None:
                continue
            result = close()
            if inspect.isawaitable(result):
                await result
        self.watchers = []

        for resource in self._resources:
            await resource.close()
        self._resources = []

        logger.debug("config_resolver_destroyed", resolver=self.name)

    async def __aenter__(self) -> ConfigResolver:
        return self

    async def __aexit__(self, *args) -> None:
        await self.destroy()


__all__ = [
    "ABSENT",
    "is_absent",
    "ConfigResolver",
    "ResolvedConfig",
    "ResolverState",
    "Parser",
    "Projector",
    "project_top_level",
    "resolve_path",
]
