"""Shared fixtures: SQLite database on a temp file, fake providers, HTTP client."""
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from pathlib import Path
from typing import AsyncGenerator, Optional

import httpx
import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from modelhub.errors import CatalogFetchError
from modelhub.llm.base import CatalogModel, ChatMessage, LLMProvider, LLMResponse
from modelhub.llm.catalog import InMemoryCatalogCache, fetch_catalog
from modelhub.llm.registry import LLMRegistry
from modelhub.services.model_resolver import ModelResolver
from modelhub.services.model_sync import ModelSyncScheduler
from modelhub.storage.db import Base, session_scope
from modelhub.storage.repositories import project_create


class FakeProvider(LLMProvider):
    """In-memory provider: a fixed model list, a canned chat reply, call counters."""

    def __init__(
        self,
        provider_id: str = "fake",
        models: Optional[list[tuple[str, str]]] = None,
        reply: str = "Database performance check",
        fail: bool = False,
    ):
        self.provider_id = provider_id
        self.display_name = provider_id.title()
        self.models = models if models is not None else []
        self.reply = reply
        self.fail = fail
        self.list_calls = 0
        self.chat_calls: list[dict] = []

    async def list_models(self) -> list[CatalogModel]:
        self.list_calls += 1
        if self.fail:
            raise CatalogFetchError(f"{self.display_name} is unreachable", provider=self.provider_id)
        return [CatalogModel(id=mid, name=name, provider=self.provider_id) for mid, name in self.models]

    async def chat(
        self,
        messages: list[ChatMessage],
        model_id: str,
        *,
        system_prompt: str | None = None,
        temperature: float = 0.7,
        max_tokens: int = 4096,
    ) -> LLMResponse:
        self.chat_calls.append({"model_id": model_id, "messages": messages, "max_tokens": max_tokens})
        return LLMResponse(content=self.reply, model_used=model_id, finish_reason="stop")


GPT_MODELS = [("gpt-4o", "GPT-4o"), ("gpt-4o-mini", "GPT-4o mini")]


@pytest.fixture
async def engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    """File-backed SQLite so concurrent sessions use separate connections.

    BEGIN IMMEDIATE makes each transaction take the write lock up front, so
    concurrent writers queue on the busy timeout instead of failing mid-way.
    """
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'modelhub.db'}")

    @event.listens_for(eng.sync_engine, "connect")
    def _connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(eng.sync_engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def project_id(session_factory: async_sessionmaker) -> str:
    async with session_scope(session_factory) as session:
        project = await project_create(session, name="orders-db")
    return project.id


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider(models=list(GPT_MODELS))


@pytest.fixture
def registry(provider: FakeProvider) -> LLMRegistry:
    reg = LLMRegistry()
    reg.register(provider)
    return reg


@pytest.fixture
def catalog_cache(registry: LLMRegistry) -> InMemoryCatalogCache:
    return InMemoryCatalogCache(lambda: fetch_catalog(registry))


@pytest.fixture
async def model_sync(session_factory: async_sessionmaker) -> AsyncGenerator[ModelSyncScheduler, None]:
    scheduler = ModelSyncScheduler(session_factory)
    yield scheduler
    await scheduler.drain()


@pytest.fixture
def resolver(catalog_cache: InMemoryCatalogCache, model_sync: ModelSyncScheduler) -> ModelResolver:
    return ModelResolver(catalog_cache, model_sync)


@pytest.fixture
async def client(
    session_factory: async_sessionmaker,
    catalog_cache: InMemoryCatalogCache,
    model_sync: ModelSyncScheduler,
    resolver: ModelResolver,
    registry: LLMRegistry,
) -> AsyncGenerator[httpx.AsyncClient, None]:
    """API client wired to the test database, catalog and registry (lifespan is not run)."""
    from modelhub.deps import get_db, get_registry
    from modelhub.main import app

    async def _get_db():
        async with session_scope(session_factory) as session:
            yield session

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_registry] = lambda: registry
    app.state.catalog_cache = catalog_cache
    app.state.model_sync = model_sync
    app.state.model_resolver = resolver
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()
