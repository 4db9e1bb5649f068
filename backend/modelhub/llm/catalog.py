"""Process-wide view of every model the configured providers offer.

Discovery is slow (one HTTP call per provider), so the snapshot is cached and
only rebuilt on a miss: after startup, after ``invalidate()`` (the refresh
action) or when the optional TTL runs out. Readers may see a stale snapshot
between an invalidation and the next fetch.
"""
import asyncio
import logging
import time
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Awaitable, Callable, Optional

from pydantic import BaseModel, Field
from redis.asyncio import Redis
from redis.exceptions import RedisError

from modelhub.errors import CatalogFetchError
from modelhub.llm.base import CatalogModel
from modelhub.llm.registry import LLMRegistry

logger = logging.getLogger(__name__)


class ProviderError(BaseModel):
    provider: str
    message: str


class ProviderCatalog(BaseModel):
    """Snapshot of all discovered models plus the providers that failed to answer."""

    models: list[CatalogModel] = Field(default_factory=list)
    provider_errors: list[ProviderError] = Field(default_factory=list)
    fetched_at: datetime = Field(default_factory=datetime.utcnow)

    def model_ids(self) -> set[str]:
        return {m.id for m in self.models}

    def get(self, model_id: str) -> Optional[CatalogModel]:
        for m in self.models:
            if m.id == model_id:
                return m
        return None

    @property
    def failed_completely(self) -> bool:
        return not self.models and bool(self.provider_errors)


CatalogLoader = Callable[[], Awaitable[ProviderCatalog]]


async def fetch_catalog(registry: LLMRegistry) -> ProviderCatalog:
    """Ask every available provider for its models concurrently.

    A failing provider is recorded in ``provider_errors``; the others still count.
    When two providers list the same id, the first registered one wins.
    """
    providers = registry.list_available_providers()
    results = await asyncio.gather(
        *(provider.list_models() for _, provider in providers),
        return_exceptions=True,
    )
    models: list[CatalogModel] = []
    seen: set[str] = set()
    errors: list[ProviderError] = []
    for (provider_id, provider), result in zip(providers, results):
        if isinstance(result, asyncio.CancelledError):
            raise result
        if isinstance(result, CatalogFetchError):
            logger.warning("Model discovery failed for %s: %s", provider_id, result.message)
            errors.append(ProviderError(provider=provider_id, message=result.message))
            continue
        if isinstance(result, BaseException):
            logger.error("Model discovery crashed for %s", provider_id, exc_info=result)
            errors.append(
                ProviderError(provider=provider_id, message=f"{provider.display_name} model discovery failed")
            )
            continue
        for model in result:
            if model.id in seen:
                continue
            seen.add(model.id)
            models.append(model)
    logger.info("Fetched model catalog: %s models from %s providers", len(models), len(providers))
    return ProviderCatalog(models=models, provider_errors=errors)


class CatalogCache(ABC):
    """Injected into the resolver and the settings API; swap for NullCatalogCache in tests."""

    @abstractmethod
    async def get(self) -> ProviderCatalog:
        ...

    @abstractmethod
    async def invalidate(self) -> None:
        ...


class NullCatalogCache(CatalogCache):
    """No caching: every read hits the providers."""

    def __init__(self, loader: CatalogLoader):
        self._loader = loader

    async def get(self) -> ProviderCatalog:
        return await self._loader()

    async def invalidate(self) -> None:
        return None


class InMemoryCatalogCache(CatalogCache):
    """Per-process snapshot, populated on miss.

    Concurrent misses share one fetch. A fetch that was running while
    ``invalidate()`` was called is returned to its caller but not stored.
    A snapshot in which every provider failed is never stored.
    """

    def __init__(self, loader: CatalogLoader, ttl_seconds: float = 0):
        self._loader = loader
        self._ttl = ttl_seconds
        self._catalog: Optional[ProviderCatalog] = None
        self._loaded_at = 0.0
        self._generation = 0
        self._lock = asyncio.Lock()

    def _cached(self) -> Optional[ProviderCatalog]:
        if self._catalog is None:
            return None
        if self._ttl and time.monotonic() - self._loaded_at > self._ttl:
            return None
        return self._catalog

    async def get(self) -> ProviderCatalog:
        cached = self._cached()
        if cached is not None:
            return cached
        async with self._lock:
            cached = self._cached()
            if cached is not None:
                return cached
            generation = self._generation
            catalog = await self._loader()
            if generation == self._generation and not catalog.failed_completely:
                self._catalog = catalog
                self._loaded_at = time.monotonic()
            return catalog

    async def invalidate(self) -> None:
        self._generation += 1
        self._catalog = None
        logger.info("Model catalog cache invalidated")


class _StoredCatalog(BaseModel):
    generation: int
    catalog: ProviderCatalog


class RedisCatalogCache(CatalogCache):
    """Snapshot shared by all worker processes through Redis.

    ``invalidate()`` bumps a generation counter next to the snapshot. Every
    snapshot records the generation it was fetched under, and one from an
    older generation reads as a miss, so a fetch that raced a refresh is
    never served. Redis being down degrades to fetching from the providers
    directly.
    """

    def __init__(
        self,
        redis: Redis,
        loader: CatalogLoader,
        ttl_seconds: int = 0,
        key: str = "modelhub:catalog",
    ):
        self._redis = redis
        self._loader = loader
        self._ttl = ttl_seconds
        self._key = key
        self._generation_key = f"{key}:generation"
        self._lock = asyncio.Lock()

    async def _read(self) -> tuple[Optional[ProviderCatalog], Optional[int]]:
        """Current snapshot (or None) and generation (None when Redis is unreachable)."""
        try:
            raw, generation = await self._redis.mget(self._key, self._generation_key)
        except RedisError as e:
            logger.warning("Catalog cache read failed: %s", e)
            return None, None
        current = int(generation or 0)
        if not raw:
            return None, current
        try:
            stored = _StoredCatalog.model_validate_json(raw)
        except ValueError:
            logger.warning("Discarding unreadable catalog snapshot in %s", self._key)
            return None, current
        if stored.generation != current:
            return None, current
        return stored.catalog, current

    async def get(self) -> ProviderCatalog:
        cached, _ = await self._read()
        if cached is not None:
            return cached
        async with self._lock:
            cached, generation = await self._read()
            if cached is not None:
                return cached
            catalog = await self._loader()
            if generation is not None and not catalog.failed_completely:
                stored = _StoredCatalog(generation=generation, catalog=catalog)
                try:
                    await self._redis.set(self._key, stored.model_dump_json(), ex=self._ttl or None)
                except RedisError as e:
                    logger.warning("Catalog cache write failed: %s", e)
            return catalog

    async def invalidate(self) -> None:
        await self._redis.incr(self._generation_key)
        await self._redis.delete(self._key)
        logger.info("Model catalog cache invalidated (%s)", self._key)
