"""
Tests for configspine.resolver.resolver module.

Covers:
- priority walk: first source that loads and parses wins
- write-through from network to the durable source (and never the reverse)
- ABSENT when every source fails; None for missing paths
- single-flight first load, reload, snapshot isolation
- parser/projector hooks, verbose diff reporting, destroy()
"""

import asyncio
import json

import pytest
from structlog.testing import capture_logs

from configspine.core.errors import InvalidSourceConfigError, StoreWriteError
from configspine.resolver.resolver import (
    ABSENT,
    ConfigResolver,
    ResolverState,
    is_absent,
    resolve_path,
)
from configspine.resolver.sources import DurableSource, NetworkSource
from configspine.store.service import DurableAssetStore

KEY = "app.json"
WRITE_THROUGH_DESCRIPTION = "Configuration data cached from network source"


class FakeLoader:
    """Network-client stand-in with an optional gate to hold loads open."""

    def __init__(self, content=None, error=None, gate=None):
        self.content = content
        self.error = error
        self.gate = gate
        self.calls = 0
        self.closed = False

    async def load(self, key):
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.content

    async def close(self):
        self.closed = True


def network_source(content=None, *, error=None, priority=1, gate=None):
    loader = FakeLoader(content, error=error, gate=gate)
    return NetworkSource(priority, loader, KEY), loader


class TestSourceSelection:
    """Which source wins and what gets reported."""

    async def test_network_first_with_write_through(self, api, network, store):
        api.add_file(KEY, json.dumps({"a": {"b": 1}, "name": "svc"}))
        resolver = ConfigResolver(
            [NetworkSource(1, network, KEY), DurableSource(2, store, KEY)]
        )

        assert await resolver.get_config("a.b") == 1
        assert await resolver.get_config("a.c") is None
        assert await resolver.get_config("name") == "svc"
        assert (await resolver.get_all())["a"] == {"b": 1}
        assert resolver.last_load_source == "network"
        assert resolver.last_load_source_name == "network:app.json"
        assert resolver.state is ResolverState.READY

        stored = await store.get_asset(KEY)
        assert json.loads(stored.content) == {"a": {"b": 1}, "name": "svc"}
        assert stored.asset_category == "config"
        assert stored.description == WRITE_THROUGH_DESCRIPTION

    async def test_falls_back_to_database_when_network_down(self, api, network, store):
        await store.store_asset(KEY, json.dumps({"a": {"b": 1}}), "config")
        api.down = True
        resolver = ConfigResolver(
            [NetworkSource(1, network, KEY), DurableSource(2, store, KEY)]
        )

        assert await resolver.get_config("a.b") == 1
        assert resolver.last_load_source == "database"
        assert resolver.last_load_source_name == "database:app.json"
        assert await store.get_asset_history(KEY) == []

    async def test_falls_back_when_network_returns_404(self, network, store):
        await store.store_asset(KEY, '{"x": 1}', "config")
        resolver = ConfigResolver(
            [NetworkSource(1, network, KEY), DurableSource(2, store, KEY)]
        )

        assert await resolver.get_config("x") == 1
        assert resolver.last_load_source == "database"

    async def test_durable_winner_is_not_written_back(self, store):
        await store.store_asset(KEY, '{"x": 1}', "config", "seeded")
        before = await store.get_asset(KEY)
        source, _ = network_source(error=RuntimeError("offline"))
        resolver = ConfigResolver([source, DurableSource(2, store, KEY)])

        await resolver.get_all()

        after = await store.get_asset(KEY)
        assert after.created_at == before.created_at
        assert after.description == "seeded"

    async def test_sources_sorted_by_priority(self, store):
        await store.store_asset(KEY, '{"from": "database"}', "config")
        source, _ = network_source('{"from": "network"}', priority=5)
        resolver = ConfigResolver([DurableSource(1, store, KEY), source])

        assert await resolver.get_config("from") == "database"
        assert resolver.source_names == ["database:app.json", "network:app.json"]

    async def test_parse_failure_tries_next_source(self, store):
        await store.store_asset(KEY, '{"ok": true}', "config")
        source, _ = network_source("this is not json")
        resolver = ConfigResolver([source, DurableSource(2, store, KEY)])

        with capture_logs() as logs:
            assert await resolver.get_config("ok") is True

        assert resolver.last_load_source == "database"
        assert any(log["event"] == "source_parse_failed" for log in logs)

    async def test_non_mapping_content_rejected_by_default_projector(self, store):
        await store.store_asset(KEY, '{"ok": 1}', "config")
        source, _ = network_source("[1, 2, 3]")
        resolver = ConfigResolver([source, DurableSource(2, store, KEY)])

        assert await resolver.get_config("ok") == 1
        assert resolver.last_load_source == "database"


class TestAbsent:
    """No source can produce configuration."""

    async def test_all_sources_fail(self, api, network, store):
        api.down = True
        resolver = ConfigResolver(
            [NetworkSource(1, network, KEY), DurableSource(2, store, KEY)]
        )

        value = await resolver.get_config("a.b")

        assert value is ABSENT
        assert is_absent(value)
        assert is_absent(await resolver.get_config())
        assert await resolver.get_all() == {}
        assert resolver.state is ResolverState.EMPTY
        assert resolver.last_load_source is None
        assert resolver.initialized

    async def test_no_sources(self):
        resolver = ConfigResolver([])
        assert is_absent(await resolver.get_config("anything"))

    async def test_missing_path_is_none_not_absent(self):
        source, _ = network_source('{"a": {"b": 1}}')
        resolver = ConfigResolver([source])

        value = await resolver.get_config("a.missing")

        assert value is None
        assert not is_absent(value)

    async def test_absent_is_falsy_singleton(self):
        assert not ABSENT
        assert repr(ABSENT) == "ABSENT"
        assert not is_absent(None)

    async def test_failed_reload_clears_previous_view(self):
        source, loader = network_source('{"a": 1}')
        resolver = ConfigResolver([source])
        assert await resolver.get_config("a") == 1

        loader.error = RuntimeError("gone")
        await resolver.reload()

        assert is_absent(await resolver.get_config("a"))
        assert resolver.state is ResolverState.EMPTY


class TestWriteThrough:
    async def test_write_through_failure_is_swallowed(self, tmp_path):
        broken = DurableAssetStore(
            f"sqlite+aiosqlite:///{tmp_path}/no-such-dir/assets.db",
            owner_category="application",
            owner_key="k",
        )
        source, _ = network_source('{"a": 1}')
        resolver = ConfigResolver([source, DurableSource(2, broken, KEY)])

        try:
            with capture_logs() as logs:
                assert await resolver.get_config("a") == 1
        finally:
            await broken.close()

        assert resolver.state is ResolverState.READY
        assert resolver.last_load_source == "network"
        failures = [log for log in logs if log["event"] == "write_through_failed"]
        assert failures and failures[0]["error_type"] == "StoreSchemaError"

    async def test_write_failure_from_store_content(self, store, monkeypatch):
        async def fail(*args, **kwargs):
            raise StoreWriteError("disk full")

        monkeypatch.setattr(store, "store_asset", fail)
        source, _ = network_source('{"a": 1}')
        resolver = ConfigResolver([source, DurableSource(2, store, KEY)])

        assert await resolver.get_config("a") == 1

    async def test_reload_updates_store_and_history(self, store):
        source, loader = network_source('{"v": 1}')
        resolver = ConfigResolver([source, DurableSource(2, store, KEY)])
        await resolver.get_all()

        loader.content = '{"v": 2}'
        await resolver.reload()

        assert await resolver.get_config("v") == 2
        assert (await store.get_asset(KEY)).content == '{"v": 2}'
        history = await store.get_asset_history(KEY)
        assert [entry.content for entry in history] == ['{"v": 1}']

    async def test_unchanged_content_leaves_store_untouched(self, store):
        source, _ = network_source('{"v": 1}')
        resolver = ConfigResolver([source, DurableSource(2, store, KEY)])
        await resolver.get_all()
        first = await store.get_asset(KEY)

        await resolver.reload()

        assert (await store.get_asset(KEY)).created_at == first.created_at
        assert await store.get_asset_history(KEY) == []

    async def test_writes_to_first_durable_source_only(self, store, store_url):
        async with DurableAssetStore(
            store_url, owner_category="application", owner_key="secondary"
        ) as secondary:
            source, _ = network_source('{"v": 1}')
            resolver = ConfigResolver(
                [source, DurableSource(2, store, KEY), DurableSource(3, secondary, KEY)]
            )

            await resolver.get_all()

            assert await store.get_asset(KEY) is not None
            assert await secondary.get_asset(KEY) is None

    async def test_write_through_runs_after_snapshot_commit(self, store, monkeypatch):
        source, loader = network_source('{"v": 1}')
        durable = DurableSource(2, store, KEY)
        resolver = ConfigResolver([source, durable])
        seen = []
        store_content = durable.store_content

        async def recording_store_content(content):
            seen.append((resolver.state, dict(resolver.snapshot.values)))
            return await store_content(content)

        monkeypatch.setattr(durable, "store_content", recording_store_content)

        await resolver.get_all()
        loader.content = '{"v": 2}'
        await resolver.reload()

        assert seen == [
            (ResolverState.READY, {"v": 1}),
            (ResolverState.READY, {"v": 2}),
        ]

    async def test_verbose_logs_diff(self, store):
        await store.store_asset(KEY, '{"a": 1}', "config")
        source, _ = network_source('{"a": 2}')
        resolver = ConfigResolver([source, DurableSource(2, store, KEY)], verbose=True)

        with capture_logs() as logs:
            await resolver.get_all()

        diffs = [log for log in logs if log["event"] == "write_through_content_changed"]
        assert len(diffs) == 1
        assert diffs[0]["previous_length"] == 8
        assert diffs[0]["new_length"] == 8
        assert diffs[0]["similarity_percent"] == 87.5


class TestSingleFlight:
    async def test_concurrent_first_reads_share_one_load(self):
        gate = asyncio.Event()
        source, loader = network_source('{"a": 1}', gate=gate)
        resolver = ConfigResolver([source])

        tasks = [asyncio.create_task(resolver.get_config("a")) for _ in range(5)]
        while loader.calls == 0:
            await asyncio.sleep(0)
        assert resolver.state is ResolverState.LOADING
        gate.set()

        assert await asyncio.gather(*tasks) == [1] * 5
        assert loader.calls == 1

    async def test_cancelled_reader_does_not_cancel_load(self):
        gate = asyncio.Event()
        source, loader = network_source('{"a": 1}', gate=gate)
        resolver = ConfigResolver([source])

        first = asyncio.create_task(resolver.get_config("a"))
        second = asyncio.create_task(resolver.get_config("a"))
        await asyncio.sleep(0)
        first.cancel()
        gate.set()

        assert await second == 1
        assert loader.calls == 1
        with pytest.raises(asyncio.CancelledError):
            await first

    async def test_later_reads_do_not_reload(self):
        source, loader = network_source('{"a": 1}')
        resolver = ConfigResolver([source])

        await resolver.get_config("a")
        await resolver.get_config("a")
        await resolver.get_all()

        assert loader.calls == 1

    async def test_reload_always_reloads(self):
        source, loader = network_source('{"a": 1}')
        resolver = ConfigResolver([source])

        await resolver.reload()
        await resolver.reload()

        assert loader.calls == 2
        assert await resolver.get_config("a") == 1
        assert loader.calls == 2


class TestSnapshots:
    async def test_returned_values_are_copies(self):
        source, _ = network_source('{"a": {"b": [1, 2]}}')
        resolver = ConfigResolver([source])

        whole = await resolver.get_config()
        whole["a"]["b"].append(3)
        nested = await resolver.get_config("a")
        nested["b"].clear()
        everything = await resolver.get_all()
        everything["new"] = True

        assert await resolver.get_config() == {"a": {"b": [1, 2]}}

    async def test_snapshot_is_immutable(self):
        source, _ = network_source('{"a": 1}')
        resolver = ConfigResolver([source])
        await resolver.get_all()

        with pytest.raises(TypeError):
            resolver.snapshot.values["a"] = 2


class TestHooks:
    async def test_async_parser(self):
        async def parse(raw):
            await asyncio.sleep(0)
            return {"raw": raw}

        source, _ = network_source("hello")
        resolver = ConfigResolver([source], parser=parse)

        assert await resolver.get_config("raw") == "hello"
        assert resolver.snapshot.data == {"raw": "hello"}

    async def test_custom_projector(self):
        def projector(data, sink):
            for entry in data:
                sink[entry["name"]] = entry["value"]

        source, _ = network_source('[{"name": "a", "value": 1}, {"name": "b", "value": 2}]')
        resolver = ConfigResolver([source], projector=projector)

        assert await resolver.get_all() == {"a": 1, "b": 2}

    async def test_line_parser(self):
        def parse(raw):
            return dict(line.split("=", 1) for line in raw.splitlines() if line)

        source, _ = network_source("HOST=db\nPORT=5432\n")
        resolver = ConfigResolver([source], parser=parse)

        assert await resolver.get_config("PORT") == "5432"


class TestValidationAndLifecycle:
    def test_duplicate_priorities_rejected(self, store):
        source, _ = network_source("{}", priority=1)
        with pytest.raises(InvalidSourceConfigError, match="distinct"):
            ConfigResolver([source, DurableSource(1, store, KEY)])

    def test_unknown_source_type_rejected(self):
        class Custom:
            priority = 1
            name = "custom"

        with pytest.raises(InvalidSourceConfigError, match="Unknown source type"):
            ConfigResolver([Custom()])

    async def test_initial_state(self):
        source, _ = network_source("{}")
        resolver = ConfigResolver([source])
        assert resolver.state is ResolverState.UNINITIALIZED
        assert not resolver.initialized
        assert resolver.last_load_source is None

    async def test_destroy_closes_resources_and_watchers(self):
        source, loader = network_source("{}")
        resolver = ConfigResolver([source], resources=[loader])

        class SyncWatcher:
            closed = 0

            def close(self):
                SyncWatcher.closed += 1

        class AsyncWatcher:
            closed = 0

            async def close(self):
                AsyncWatcher.closed += 1

        resolver.watchers.extend([SyncWatcher(), AsyncWatcher()])

        await resolver.destroy()
        await resolver.destroy()

        assert loader.closed
        assert SyncWatcher.closed == 1
        assert AsyncWatcher.closed == 1
        assert resolver.watchers == []

    async def test_async_context_manager(self):
        source, loader = network_source('{"a": 1}')
        async with ConfigResolver([source], resources=[loader]) as resolver:
            assert await resolver.get_config("a") == 1
        assert loader.closed


class TestResolvePath:
    def test_nested_mapping(self):
        assert resolve_path({"a": {"b": {"c": 3}}}, "a.b.c") == 3

    def test_sequence_index(self):
        assert resolve_path({"a": [10, 20]}, "a.1") == 20
        assert resolve_path({"a": [10, 20]}, "a.5") is None
        assert resolve_path({"a": [10, 20]}, "a.x") is None

    def test_does_not_walk_into_scalars_or_objects(self):
        class Obj:
            port = 5432

        assert resolve_path({"db": Obj()}, "db.port") is None
        assert resolve_path({"name": "svc"}, "name.upper") is None
        assert resolve_path({"name": "svc"}, "name.__class__") is None
        assert resolve_path({"port": 5432}, "port.bit_length") is None

    def test_negative_index_is_missing(self):
        assert resolve_path({"hosts": ["a", "b"]}, "hosts.-1") is None

    async def test_get_config_missing_member_of_scalar(self):
        source, _ = network_source(
            json.dumps({"name": "svc", "port": 5432, "hosts": ["a", "b"]})
        )
        resolver = ConfigResolver([source])

        assert await resolver.get_config("name.upper") is None
        assert await resolver.get_config("name.__class__") is None
        assert await resolver.get_config("hosts.-1") is None
        assert await resolver.get_config("hosts.1") == "b"

    def test_through_none(self):
        assert resolve_path({"a": None}, "a.b") is None
        assert resolve_path({}, "x.y") is None
