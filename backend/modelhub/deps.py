"""Shared FastAPI dependencies."""
from typing import AsyncGenerator

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from modelhub.errors import ValidationError
from modelhub.llm.catalog import CatalogCache
from modelhub.llm.registry import LLMRegistry, get_llm_registry
from modelhub.services.model_resolver import ModelResolver
from modelhub.storage.db import get_session


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with get_session() as session:
        yield session


def get_catalog_cache(request: Request) -> CatalogCache:
    return request.app.state.catalog_cache


def get_model_resolver(request: Request) -> ModelResolver:
    return request.app.state.model_resolver


def get_registry() -> LLMRegistry:
    return get_llm_registry()


def require_param(value: str | None, name: str) -> str:
    """Missing identifiers are a 400, not FastAPI's default 422."""
    if not value:
        raise ValidationError(f"{name} is required")
    return value
