"""
Shared pytest fixtures for configspine tests.

This module provides:
- A fake GitHub-style contents API served through ``httpx.MockTransport``
- Retry policies that record delays instead of sleeping
- Durable stores backed by a temporary SQLite file
- Settings isolation (no ``CONFIGSPINE_*`` leakage between tests)
"""

from __future__ import annotations

import base64
import os
from collections import Counter
from typing import Any

import httpx
import pytest

from configspine.core.retry import RetryPolicy
from configspine.core.settings import get_settings
from configspine.network.client import NetworkAssetSource
from configspine.store.service import DurableAssetStore

REPO = "acme/app-config"
TOKEN = "ghp_testtoken1234"


class FakeContentsAPI:
    """In-memory stand-in for the remote contents API.

    ``files`` maps path -> raw content. ``failures`` maps path -> list of
    status codes (or exceptions) consumed one per request before the file is
    served normally.
    """

    def __init__(self) -> None:
        self.files: dict[str, str] = {}
        self.directories: dict[str, list[dict[str, Any]]] = {}
        self.failures: dict[str, list[int | Exception]] = {}
        self.calls: Counter[str] = Counter()
        self.requests: list[httpx.Request] = []
        self.down = False

    def add_file(self, path: str, content: str) -> None:
        self.files[path] = content

    def fail(self, path: str, *outcomes: int | Exception) -> None:
        self.failures.setdefault(path, []).extend(outcomes)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url_path = request.url.path

        if url_path == "/search/code":
            self.calls["search"] += 1
            query = request.url.params["q"].split(" repo:")[0]
            items = [
                {"name": path.rsplit("/", 1)[-1], "path": path, "sha": "s", "url": "", "score": 1.0}
                for path, content in self.files.items()
                if query in content
            ]
            return httpx.Response(200, json={"items": items})

        prefix = f"/repos/{REPO}/contents/"
        path = url_path[len(prefix):] if url_path.startswith(prefix) else url_path
        self.calls[path] += 1

        if self.down:
            raise httpx.ConnectError("network unreachable", request=request)

        pending = self.failures.get(path)
        if pending:
            outcome = pending.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return httpx.Response(outcome, json={"message": f"status {outcome}"})

        if path in self.directories:
            return httpx.Response(200, json=self.directories[path])

        if path not in self.files:
            return httpx.Response(404, json={"message": "Not Found"})

        content = self.files[path]
        return httpx.Response(
            200,
            json={
                "type": "file",
                "path": path,
                "sha": f"sha-{len(content)}",
                "size": len(content),
                "encoding": "base64",
                "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
            },
        )

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


class RecordingSleep:
    """Awaitable sleep replacement that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch, tmp_path):
    """Keep the host environment and .env files out of settings."""
    for name in list(os.environ):
        if name.startswith("CONFIGSPINE_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def api() -> FakeContentsAPI:
    return FakeContentsAPI()


@pytest.fixture
def sleeper() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def retry_policy(sleeper) -> RetryPolicy:
    return RetryPolicy(jitter=False, sleep=sleeper)


@pytest.fixture
async def network(api, retry_policy):
    source = NetworkAssetSource(
        repo=REPO,
        token=TOKEN,
        retry_policy=retry_policy,
        transport=api.transport,
    )
    yield source
    await source.close()


@pytest.fixture
def store_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path}/assets.db"


@pytest.fixture
async def store(store_url):
    async with DurableAssetStore(
        store_url, owner_category="application", owner_key="test-app"
    ) as durable:
        yield durable
