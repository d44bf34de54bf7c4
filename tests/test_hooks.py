"""
Tests for the async data-access hooks and the query cache.

The hooks run against the real app over httpx.ASGITransport, so every
cache hit or miss is visible in the request log.
"""

import asyncio
import json

import httpx
import pytest

from factory_inspection.errors import FetchError
from factory_inspection.hooks import FactoryHooks
from factory_inspection.models import Factory, FactoryCreate, FactoryUpdate
from factory_inspection.query_cache import QueryCache


def _paths(request_log):
    return [(request.method, request.url.path) for request in request_log]


class TestQueryCache:
    """Tests for QueryCache on its own."""

    def test_prefix_invalidation(self):
        cache = QueryCache()
        cache.set(("/api/factories",), [1])
        cache.set(("/api/factories", "1"), 1)
        cache.set(("/api/factories/search", "x"), [1])

        removed = cache.invalidate(("/api/factories",))

        assert sorted(removed) == [("/api/factories",), ("/api/factories", "1")]
        assert ("/api/factories/search", "x") in cache
        assert ("/api/factories",) not in cache

    def test_stale_entries_count_as_missing(self):
        now = [100.0]
        cache = QueryCache(stale_time=5, clock=lambda: now[0])
        cache.set(("k",), "v")
        assert cache.get(("k",)) == "v"

        now[0] += 5
        assert cache.get(("k",)) is None
        assert ("k",) not in cache

    def test_cached_none_is_a_hit(self):
        cache = QueryCache()
        cache.set(("/api/factories", "9"), None)
        assert ("/api/factories", "9") in cache

    @pytest.mark.asyncio
    async def test_fetch_loads_once(self):
        cache = QueryCache()
        calls = []

        async def loader():
            calls.append(1)
            return "value"

        assert await cache.fetch(("k",), loader) == "value"
        assert await cache.fetch(("k",), loader) == "value"
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_load_invalidated_midway_is_not_stored(self):
        cache = QueryCache()
        rows = ["old"]
        release = asyncio.Event()

        async def slow_loader():
            snapshot = list(rows)
            await release.wait()
            return snapshot

        pending = asyncio.ensure_future(cache.fetch(("/api/factories",), slow_loader))
        await asyncio.sleep(0)

        rows.append("new")
        cache.invalidate(("/api/factories",))
        release.set()

        assert await pending == ["old"]
        assert ("/api/factories",) not in cache
        assert await cache.fetch(("/api/factories",), slow_loader) == ["old", "new"]

    @pytest.mark.asyncio
    async def test_clear_discards_load_in_flight(self):
        cache = QueryCache()
        release = asyncio.Event()

        async def slow_loader():
            await release.wait()
            return "value"

        pending = asyncio.ensure_future(cache.fetch(("k",), slow_loader))
        await asyncio.sleep(0)
        cache.clear()
        release.set()

        assert await pending == "value"
        assert len(cache) == 0


class TestFactoryQueries:
    """Tests for the read hooks."""

    @pytest.mark.asyncio
    async def test_list_is_cached(self, api, request_log, factory_payload):
        await api.factories.create_factory(factory_payload)
        request_log.clear()

        first = await api.factories.list_factories()
        second = await api.factories.list_factories()

        assert [factory.name for factory in first] == ["Negev Textiles"]
        assert second == first
        assert _paths(request_log) == [("GET", "/api/factories")]

    @pytest.mark.asyncio
    async def test_get_factory(self, api, factory_payload):
        created = await api.factories.create_factory(factory_payload)
        fetched = await api.factories.get_factory(created.id)
        assert isinstance(fetched, Factory)
        assert fetched.id == created.id
        assert fetched.map_link == factory_payload["mapLink"]

    @pytest.mark.asyncio
    async def test_get_missing_factory_returns_none(self, api):
        assert await api.factories.get_factory(999999) is None

    @pytest.mark.asyncio
    async def test_get_malformed_id_raises_fetch_error(self, api):
        with pytest.raises(FetchError) as exc_info:
            await api.factories.get_factory("abc")
        assert exc_info.value.status_code == 422

    @pytest.mark.asyncio
    async def test_search(self, api):
        await api.factories.create_factory({"name": "Galil Plastics", "address": "Karmiel"})
        await api.factories.create_factory({"name": "Negev Textiles", "address": "Beersheba"})

        results = await api.factories.search_factories("negev")
        assert [factory.name for factory in results] == ["Negev Textiles"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("query", ["", "   ", "\t\n"])
    async def test_blank_search_makes_no_request(self, api, request_log, query):
        assert await api.factories.search_factories(query) == []
        assert request_log == []

    @pytest.mark.asyncio
    async def test_search_cached_per_query(self, api, request_log):
        await api.factories.search_factories("a")
        await api.factories.search_factories("a")
        await api.factories.search_factories("b")

        queries = [request.url.params["q"] for request in request_log]
        assert queries == ["a", "b"]


class TestFactoryMutations:
    """Mutations must leave no stale cache entry behind."""

    @pytest.mark.asyncio
    async def test_create_refreshes_list(self, api, factory_payload):
        assert await api.factories.list_factories() == []

        created = await api.factories.create_factory(FactoryCreate.model_validate(factory_payload))

        assert [factory.id for factory in await api.factories.list_factories()] == [created.id]

    @pytest.mark.asyncio
    async def test_create_refreshes_search(self, api):
        assert await api.factories.search_factories("galil") == []
        await api.factories.create_factory({"name": "Galil Plastics", "address": "Karmiel"})
        assert len(await api.factories.search_factories("galil")) == 1

    @pytest.mark.asyncio
    async def test_update_refreshes_list_and_item(self, api, factory_payload):
        created = await api.factories.create_factory(factory_payload)
        await api.factories.list_factories()
        await api.factories.get_factory(created.id)

        await api.factories.update_factory(created.id, FactoryUpdate(name="Negev Textiles Ltd"))

        assert (await api.factories.get_factory(created.id)).name == "Negev Textiles Ltd"
        assert [factory.name for factory in await api.factories.list_factories()] == ["Negev Textiles Ltd"]

    @pytest.mark.asyncio
    async def test_update_sends_only_changed_fields(self, api, request_log, factory_payload):
        created = await api.factories.create_factory(factory_payload)
        request_log.clear()

        await api.factories.update_factory(created.id, {"address": "Dimona"})

        assert request_log[0].method == "PUT"
        assert json.loads(request_log[0].content) == {"address": "Dimona"}

    @pytest.mark.asyncio
    async def test_delete_refreshes_list(self, api, factory_payload):
        created = await api.factories.create_factory(factory_payload)
        assert len(await api.factories.list_factories()) == 1

        await api.factories.delete_factory(created.id)

        assert await api.factories.list_factories() == []
        assert await api.factories.get_factory(created.id) is None

    @pytest.mark.asyncio
    async def test_failed_mutation_keeps_cache(self, api, request_log, factory_payload):
        await api.factories.create_factory(factory_payload)
        await api.factories.list_factories()

        with pytest.raises(FetchError) as exc_info:
            await api.factories.delete_factory(999999)
        assert exc_info.value.status_code == 404

        request_log.clear()
        await api.factories.list_factories()
        assert request_log == []


class TestTransportFailures:
    """Network failures surface as FetchError."""

    @pytest.mark.asyncio
    async def test_connection_error_is_wrapped(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(refuse), base_url="http://api") as client:
            hooks = FactoryHooks(client, QueryCache())
            with pytest.raises(FetchError) as exc_info:
                await hooks.list_factories()

        assert exc_info.value.status_code is None
        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)

    @pytest.mark.asyncio
    async def test_server_error_carries_detail(self):
        def fail(request):
            return httpx.Response(500, json={"detail": "database unavailable"})

        async with httpx.AsyncClient(transport=httpx.MockTransport(fail), base_url="http://api") as client:
            hooks = FactoryHooks(client, QueryCache())
            with pytest.raises(FetchError) as exc_info:
                await hooks.create_factory({"name": "Acme", "address": "Haifa"})

        assert exc_info.value.status_code == 500
        assert exc_info.value.detail == "database unavailable"
