"""LLM providers, registry and model catalog. Add a provider by implementing LLMProvider and registering it."""
from modelhub.llm.base import CatalogModel, ChatMessage, LLMProvider, LLMResponse
from modelhub.llm.catalog import (
    CatalogCache,
    InMemoryCatalogCache,
    NullCatalogCache,
    ProviderCatalog,
    RedisCatalogCache,
    fetch_catalog,
)
from modelhub.llm.registry import get_llm_registry, llm_registry

__all__ = [
    "CatalogModel",
    "ChatMessage",
    "LLMProvider",
    "LLMResponse",
    "CatalogCache",
    "InMemoryCatalogCache",
    "NullCatalogCache",
    "ProviderCatalog",
    "RedisCatalogCache",
    "fetch_catalog",
    "get_llm_registry",
    "llm_registry",
]
