"""Tests for catalog discovery and the catalog caches."""
import asyncio
from types import SimpleNamespace

import pytest
from conftest import FakeProvider
from redis.exceptions import ConnectionError as RedisConnectionError

from modelhub.llm.base import CatalogModel
from modelhub.llm.catalog import (
    InMemoryCatalogCache,
    NullCatalogCache,
    ProviderCatalog,
    RedisCatalogCache,
    fetch_catalog,
)
from modelhub.llm.registry import LLMRegistry


class SlowProvider(FakeProvider):
    async def list_models(self):
        await asyncio.sleep(0.05)
        return await super().list_models()


class SnapshotAtStartProvider(FakeProvider):
    """Captures its model list when the fetch starts, like a slow HTTP call."""

    async def list_models(self):
        self.list_calls += 1
        models = list(self.models)
        await asyncio.sleep(0.05)
        return [CatalogModel(id=mid, name=name, provider=self.provider_id) for mid, name in models]


class CrashingProvider(FakeProvider):
    async def list_models(self):
        raise RuntimeError("boom")


class FakeRedis:
    """The commands the catalog cache uses, backed by a dict (values stored as str like decode_responses)."""

    def __init__(self, broken: bool = False):
        self.data: dict[str, str] = {}
        self.expiry: dict[str, int | None] = {}
        self.broken = broken

    async def mget(self, *keys):
        if self.broken:
            raise RedisConnectionError("redis is down")
        return [self.data.get(k) for k in keys]

    async def set(self, key, value, ex=None):
        if self.broken:
            raise RedisConnectionError("redis is down")
        self.data[key] = value
        self.expiry[key] = ex

    async def incr(self, key):
        self.data[key] = str(int(self.data.get(key, 0)) + 1)
        return int(self.data[key])

    async def delete(self, key):
        self.data.pop(key, None)
        self.expiry.pop(key, None)


def registry_of(*providers):
    reg = LLMRegistry()
    for p in providers:
        reg.register(p)
    return reg


class TestFetchCatalog:
    async def test_merges_providers_first_wins(self):
        reg = registry_of(
            FakeProvider("openai", models=[("gpt-4o", "GPT-4o")]),
            FakeProvider("openrouter", models=[("gpt-4o", "Other name"), ("mistral", "Mistral")]),
        )
        catalog = await fetch_catalog(reg)
        assert [(m.id, m.name, m.provider) for m in catalog.models] == [
            ("gpt-4o", "GPT-4o", "openai"),
            ("mistral", "Mistral", "openrouter"),
        ]
        assert catalog.provider_errors == []

    async def test_failed_provider_is_reported_others_still_count(self):
        reg = registry_of(
            FakeProvider("openai", fail=True),
            FakeProvider("openrouter", models=[("mistral", "Mistral")]),
        )
        catalog = await fetch_catalog(reg)
        assert catalog.model_ids() == {"mistral"}
        assert [(e.provider, e.message) for e in catalog.provider_errors] == [("openai", "Openai is unreachable")]
        assert catalog.failed_completely is False

    async def test_unexpected_exception_becomes_generic_error(self):
        catalog = await fetch_catalog(registry_of(CrashingProvider("broken")))
        assert catalog.models == []
        assert catalog.provider_errors[0].message == "Broken model discovery failed"
        assert catalog.failed_completely is True

    async def test_get_by_id(self):
        catalog = await fetch_catalog(registry_of(FakeProvider(models=[("a", "A")])))
        assert catalog.get("a").name == "A"
        assert catalog.get("b") is None


class TestInMemoryCatalogCache:
    async def test_concurrent_misses_share_one_fetch(self):
        provider = SlowProvider(models=[("a", "A")])
        reg = registry_of(provider)
        cache = InMemoryCatalogCache(lambda: fetch_catalog(reg))
        results = await asyncio.gather(*(cache.get() for _ in range(5)))
        assert provider.list_calls == 1
        assert all(r.model_ids() == {"a"} for r in results)

    async def test_invalidate_forces_refetch(self):
        provider = FakeProvider(models=[("a", "A")])
        reg = registry_of(provider)
        cache = InMemoryCatalogCache(lambda: fetch_catalog(reg))
        await cache.get()
        provider.models = [("a", "A"), ("b", "B")]
        assert (await cache.get()).model_ids() == {"a"}
        await cache.invalidate()
        assert (await cache.get()).model_ids() == {"a", "b"}
        assert provider.list_calls == 2

    async def test_fetch_racing_invalidate_is_not_stored(self):
        provider = SlowProvider(models=[("a", "A")])
        reg = registry_of(provider)
        cache = InMemoryCatalogCache(lambda: fetch_catalog(reg))
        pending = asyncio.create_task(cache.get())
        await asyncio.sleep(0.01)
        await cache.invalidate()
        await pending
        await cache.get()
        assert provider.list_calls == 2

    async def test_fully_failed_snapshot_is_not_cached(self):
        provider = FakeProvider(fail=True)
        reg = registry_of(provider)
        cache = InMemoryCatalogCache(lambda: fetch_catalog(reg))
        assert (await cache.get()).failed_completely
        provider.fail = False
        provider.models = [("a", "A")]
        assert (await cache.get()).model_ids() == {"a"}

    async def test_ttl_expiry(self, monkeypatch):
        provider = FakeProvider(models=[("a", "A")])
        reg = registry_of(provider)
        cache = InMemoryCatalogCache(lambda: fetch_catalog(reg), ttl_seconds=60)
        clock = [1000.0]
        monkeypatch.setattr("modelhub.llm.catalog.time", SimpleNamespace(monotonic=lambda: clock[0]))
        await cache.get()
        clock[0] += 30
        await cache.get()
        assert provider.list_calls == 1
        clock[0] += 31
        await cache.get()
        assert provider.list_calls == 2


class TestNullCatalogCache:
    async def test_every_read_fetches(self):
        provider = FakeProvider(models=[("a", "A")])
        reg = registry_of(provider)
        cache = NullCatalogCache(lambda: fetch_catalog(reg))
        await cache.get()
        await cache.invalidate()
        await cache.get()
        assert provider.list_calls == 2


class TestRedisCatalogCache:
    async def test_snapshot_round_trips_through_redis(self):
        provider = FakeProvider("openrouter", models=[("a", "A")])
        reg = registry_of(provider)
        redis = FakeRedis()
        cache = RedisCatalogCache(redis, lambda: fetch_catalog(reg), ttl_seconds=300, key="test:catalog")
        first = await cache.get()
        second = await cache.get()
        assert provider.list_calls == 1
        assert redis.expiry["test:catalog"] == 300
        assert isinstance(second, ProviderCatalog)
        assert second.models == first.models

    async def test_invalidate_deletes_key(self):
        provider = FakeProvider(models=[("a", "A")])
        reg = registry_of(provider)
        redis = FakeRedis()
        cache = RedisCatalogCache(redis, lambda: fetch_catalog(reg), key="test:catalog")
        await cache.get()
        assert redis.expiry["test:catalog"] is None
        await cache.invalidate()
        assert "test:catalog" not in redis.data
        await cache.get()
        assert provider.list_calls == 2

    async def test_fetch_racing_invalidate_is_not_served(self):
        provider = SnapshotAtStartProvider(models=[("a", "A")])
        reg = registry_of(provider)
        cache = RedisCatalogCache(FakeRedis(), lambda: fetch_catalog(reg))
        pending = asyncio.create_task(cache.get())
        await asyncio.sleep(0.01)
        provider.models = [("a", "A"), ("b", "B")]
        await cache.invalidate()
        assert (await pending).model_ids() == {"a"}
        assert (await cache.get()).model_ids() == {"a", "b"}
        assert provider.list_calls == 2

    async def test_invalidate_reaches_other_workers(self):
        provider = FakeProvider(models=[("a", "A")])
        reg = registry_of(provider)
        redis = FakeRedis()
        worker_1 = RedisCatalogCache(redis, lambda: fetch_catalog(reg))
        worker_2 = RedisCatalogCache(redis, lambda: fetch_catalog(reg))
        await worker_1.get()
        await worker_2.get()
        assert provider.list_calls == 1
        provider.models = [("b", "B")]
        await worker_1.invalidate()
        assert (await worker_2.get()).model_ids() == {"b"}
        assert (await worker_1.get()).model_ids() == {"b"}
        assert provider.list_calls == 2

    async def test_redis_down_degrades_to_loader(self):
        provider = FakeProvider(models=[("a", "A")])
        reg = registry_of(provider)
        cache = RedisCatalogCache(FakeRedis(broken=True), lambda: fetch_catalog(reg))
        assert (await cache.get()).model_ids() == {"a"}
        assert (await cache.get()).model_ids() == {"a"}
        assert provider.list_calls == 2

    @pytest.mark.parametrize("raw", ["not json", '{"models": "nope"}'])
    async def test_unreadable_snapshot_is_refetched(self, raw):
        provider = FakeProvider(models=[("a", "A")])
        reg = registry_of(provider)
        redis = FakeRedis()
        redis.data["modelhub:catalog"] = raw
        cache = RedisCatalogCache(redis, lambda: fetch_catalog(reg))
        assert (await cache.get()).model_ids() == {"a"}
        assert provider.list_calls == 1
