"""Base interface for any LLM provider; implement this to add a new model catalog source."""
from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, Field


class CatalogModel(BaseModel):
    """One selectable model as reported by a provider."""

    id: str
    name: str
    provider: str = ""

    model_config = {"frozen": True}


class ChatMessage(BaseModel):
    role: str  # "user" | "assistant" | "system"
    content: str | None = ""


class LLMResponse(BaseModel):
    content: str
    model_used: str
    finish_reason: str | None = None
    usage: dict[str, Any] | None = Field(default=None, description="Raw token usage block, if returned")


class LLMProvider(ABC):
    """Abstract LLM provider. Register implementations in modelhub.llm.registry."""

    provider_id: str  # e.g. "openrouter", "openai"
    display_name: str = ""

    @abstractmethod
    async def list_models(self) -> list[CatalogModel]:
        """Discover the models this provider currently offers.

        Raises CatalogFetchError when discovery fails.
        """
        ...

    @abstractmethod
    async def chat(
        self,
        messages: list[ChatMessage],
        model_id: str,
        *,
        system_prompt: str | None = None,
        temperature: float = 0.7,
        max_tokens: int = 4096,
    ) -> LLMResponse:
        """Send chat completion request. model_id is the catalog id (may carry a provider prefix)."""
        ...

    def is_available(self) -> bool:
        """Whether this provider is configured (e.g. API key set)."""
        return True
