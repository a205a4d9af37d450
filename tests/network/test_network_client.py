"""
Tests for configspine.network.client module.

Covers:
- contents API request shape and base64 decoding
- TTL cache hits (flagged cached=True) and cache bypass
- status classification: 404/401/403 fail fast, 429/5xx/transport retried
- directory listing and code search
"""

import httpx
import pytest

from configspine.core.errors import (
    InvalidSourceConfigError,
    NotFoundError,
    RateLimitedOrForbiddenError,
    RemoteFetchError,
    TransientSourceFailure,
    UnauthorizedError,
)
from configspine.core.retry import RetryPolicy
from configspine.network.client import NetworkAssetSource

REPO = "acme/app-config"


class TestGetAsset:
    """Single-file reads."""

    async def test_load_decodes_base64_content(self, api, network):
        api.add_file("app.json", '{"a": 1}')

        assert await network.load("app.json") == '{"a": 1}'

    async def test_request_shape(self, api, network):
        api.add_file("billing/config.json", "{}")

        await network.load("billing/config.json")

        request = api.requests[0]
        assert request.url.path == f"/repos/{REPO}/contents/billing/config.json"
        assert request.url.params["ref"] == "main"
        assert request.headers["Authorization"] == "Bearer ghp_testtoken1234"
        assert request.headers["Accept"] == "application/vnd.github.v3+json"

    async def test_asset_metadata(self, api, network):
        api.add_file("app.json", "hello")

        asset = await network.get_asset("app.json")

        assert asset.path == "app.json"
        assert asset.content == "hello"
        assert asset.content_hash == "sha-5"
        assert asset.size == 5
        assert asset.encoding == "base64"
        assert asset.cached is False

    async def test_plain_content_returned_as_is(self, retry_policy):
        def handler(request):
            return httpx.Response(
                200, json={"type": "file", "path": "a.txt", "content": "plain", "size": 5}
            )

        source = NetworkAssetSource(
            repo=REPO, token="t", retry_policy=retry_policy, transport=httpx.MockTransport(handler)
        )
        try:
            assert await source.load("a.txt") == "plain"
        finally:
            await source.close()

    async def test_directory_is_not_a_file(self, api, network, sleeper):
        api.directories["configs"] = [{"type": "file", "name": "a", "path": "configs/a"}]

        with pytest.raises(RemoteFetchError, match="not a file") as exc_info:
            await network.get_asset("configs")

        assert exc_info.value.retryable is False
        assert api.calls["configs"] == 1
        assert sleeper.delays == []


class TestCaching:
    async def test_second_read_served_from_cache(self, api, network):
        api.add_file("app.json", "v1")

        first = await network.get_asset("app.json")
        api.add_file("app.json", "v2")
        second = await network.get_asset("app.json")

        assert api.calls["app.json"] == 1
        assert first.cached is False
        assert second.cached is True
        assert second.content == "v1"

    async def test_clear_cache_forces_refetch(self, api, network):
        api.add_file("app.json", "v1")
        await network.load("app.json")
        api.add_file("app.json", "v2")

        network.clear_cache()

        assert await network.load("app.json") == "v2"
        assert api.calls["app.json"] == 2

    async def test_cache_disabled(self, api, retry_policy):
        api.add_file("app.json", "v1")
        source = NetworkAssetSource(
            repo=REPO,
            token="t",
            cache_enabled=False,
            retry_policy=retry_policy,
            transport=api.transport,
        )
        try:
            await source.load("app.json")
            await source.load("app.json")
        finally:
            await source.close()

        assert api.calls["app.json"] == 2

    async def test_failures_are_not_cached(self, api, network):
        api.fail("app.json", 404)
        with pytest.raises(NotFoundError):
            await network.load("app.json")

        api.add_file("app.json", "late")
        assert await network.load("app.json") == "late"


class TestErrorClassification:
    async def test_not_found_fails_fast(self, api, network, sleeper):
        with pytest.raises(NotFoundError):
            await network.load("missing.json")

        assert api.calls["missing.json"] == 1
        assert sleeper.delays == []

    async def test_not_found_retried_when_enabled(self, api, sleeper):
        source = NetworkAssetSource(
            repo=REPO,
            token="t",
            retry_policy=RetryPolicy(jitter=False, sleep=sleeper),
            retry_not_found=True,
            transport=api.transport,
        )
        try:
            with pytest.raises(TransientSourceFailure):
                await source.load("missing.json")
        finally:
            await source.close()

        assert api.calls["missing.json"] == 4

    @pytest.mark.parametrize(
        ("status", "error_type"),
        [(401, UnauthorizedError), (403, RateLimitedOrForbiddenError)],
    )
    async def test_auth_failures_fail_fast(self, api, network, sleeper, status, error_type):
        api.fail("app.json", status)

        with pytest.raises(error_type) as exc_info:
            await network.load("app.json")

        assert exc_info.value.status == status
        assert api.calls["app.json"] == 1
        assert sleeper.delays == []

    @pytest.mark.parametrize("status", [429, 500, 503])
    async def test_transient_statuses_are_retried(self, api, network, sleeper, status):
        api.add_file("app.json", "ok")
        api.fail("app.json", status, status)

        assert await network.load("app.json") == "ok"
        assert api.calls["app.json"] == 3
        assert sleeper.delays == [1.0, 2.0]

    async def test_persistent_server_error_exhausts_retries(self, api, network):
        api.fail("app.json", *([502] * 10))

        with pytest.raises(TransientSourceFailure) as exc_info:
            await network.load("app.json")

        assert api.calls["app.json"] == 4
        cause = exc_info.value.__cause__
        assert isinstance(cause, RemoteFetchError)
        assert cause.status == 502
        assert "status 502" in cause.message

    async def test_transport_failure_is_retried(self, api, network):
        api.down = True

        with pytest.raises(TransientSourceFailure) as exc_info:
            await network.load("app.json")

        assert api.calls["app.json"] == 4
        assert exc_info.value.__cause__.status is None

    async def test_non_json_body_not_retried(self, retry_policy):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, text="<html>")

        source = NetworkAssetSource(
            repo=REPO, token="t", retry_policy=retry_policy, transport=httpx.MockTransport(handler)
        )
        try:
            with pytest.raises(RemoteFetchError, match="not JSON"):
                await source.load("app.json")
        finally:
            await source.close()

        assert len(calls) == 1


class TestListAndSearch:
    async def test_list_assets(self, api, network):
        api.directories["configs"] = [
            {"type": "file", "name": "a.json", "path": "configs/a.json", "sha": "1", "url": "u", "size": 3},
            {"type": "dir", "name": "nested", "path": "configs/nested", "sha": "2", "url": "u"},
        ]

        items = await network.list_assets("configs")

        assert [(i.type, i.name) for i in items] == [("file", "a.json"), ("dir", "nested")]
        assert items[0].size == 3
        assert items[1].size is None

    async def test_list_assets_cached(self, api, network):
        api.directories["configs"] = []
        await network.list_assets("configs")
        await network.list_assets("configs")
        assert api.calls["configs"] == 1

    async def test_search_assets(self, api, network):
        api.add_file("a.json", '{"feature": true}')
        api.add_file("b.json", '{"other": 1}')

        results = await network.search_assets("feature")

        assert [r.path for r in results] == ["a.json"]
        request = api.requests[-1]
        assert request.url.params["q"] == f"feature repo:{REPO}"
        assert request.url.params["per_page"] == "100"

        await network.search_assets("feature")
        assert api.calls["search"] == 1


class TestLifecycle:
    def test_rejects_malformed_repo(self):
        with pytest.raises(InvalidSourceConfigError):
            NetworkAssetSource(repo="not-a-repo", token="t")

    async def test_close_is_idempotent(self, api):
        source = NetworkAssetSource(repo=REPO, token="t", transport=api.transport)
        await source.close()
        await source.close()

    async def test_shared_client_left_open(self, api):
        client = httpx.AsyncClient(base_url="https://api.github.com", transport=api.transport)
        source = NetworkAssetSource(repo=REPO, token="t", http_client=client)

        await source.close()

        assert not client.is_closed
        await client.aclose()
