"""OpenRouter LLM provider: one API key, many vendors' models."""
from typing import Any

import httpx

from modelhub.llm.base import CatalogModel
from modelhub.llm.openai_compat import OpenAICompatibleProvider


class OpenRouterProvider(OpenAICompatibleProvider):
    """OpenRouter catalog. Catalog ids read ``openrouter/<vendor>/<model>``."""

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str = "https://openrouter.ai/api/v1",
        *,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(
            "openrouter",
            base_url,
            api_key,
            display_name="OpenRouter",
            timeout=timeout,
            transport=transport,
        )

    def _headers(self) -> dict[str, str]:
        headers = super()._headers()
        headers["HTTP-Referer"] = self._base_url
        return headers

    def _parse_model(self, item: dict[str, Any]) -> CatalogModel | None:
        model = super()._parse_model(item)
        if model is None:
            return None
        # "OpenAI: GPT-4o" -> "GPT-4o"
        vendor, sep, short = model.name.partition(": ")
        if sep and short:
            return model.model_copy(update={"name": short})
        return model
