"""Provider for any OpenAI-compatible API (OpenAI, Ollama, LiteLLM, vLLM, ...)."""
import logging
from typing import Any

import httpx

from modelhub.errors import CatalogFetchError
from modelhub.llm.base import CatalogModel, ChatMessage, LLMProvider, LLMResponse

logger = logging.getLogger(__name__)

_ERROR_REPLIES = {
    401: "Invalid API key for {provider}. Check the provider configuration.",
    429: "Rate limit reached for {provider}. Wait a moment and try again.",
    500: "The LLM service is temporarily unavailable (error 500). Try again in a minute or pick another model.",
}


class OpenAICompatibleProvider(LLMProvider):
    """Lists models via ``GET {base_url}/models`` and chats via ``/chat/completions``.

    Catalog ids are namespaced as ``<provider_id>/<upstream id>`` so two providers
    offering the same upstream id never collide and the id alone names its provider.
    """

    def __init__(
        self,
        provider_id: str,
        base_url: str,
        api_key: str | None = None,
        *,
        display_name: str = "",
        timeout: float = 30.0,
        require_api_key: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.provider_id = provider_id
        self.display_name = display_name or provider_id
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._require_api_key = require_api_key
        self._transport = transport

    def is_available(self) -> bool:
        return bool(self._api_key) or not self._require_api_key

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    def _api_model_id(self, model_id: str) -> str:
        """Upstream id for a catalog id; ids without our namespace pass through."""
        prefix = f"{self.provider_id}/"
        return model_id[len(prefix):] if model_id.startswith(prefix) else model_id

    def _parse_model(self, item: dict[str, Any]) -> CatalogModel | None:
        upstream_id = item.get("id")
        if not upstream_id:
            return None
        return CatalogModel(
            id=f"{self.provider_id}/{upstream_id}",
            name=item.get("name") or upstream_id,
            provider=self.provider_id,
        )

    async def list_models(self) -> list[CatalogModel]:
        try:
            async with self._client() as client:
                r = await client.get(f"{self._base_url}/models", headers=self._headers())
                r.raise_for_status()
                data = r.json()
        except httpx.HTTPStatusError as e:
            raise CatalogFetchError(
                f"{self.display_name} model discovery failed with HTTP {e.response.status_code}",
                provider=self.provider_id,
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise CatalogFetchError(
                f"{self.display_name} model discovery failed: {type(e).__name__}",
                provider=self.provider_id,
            ) from e
        items = data.get("data") if isinstance(data, dict) else None
        if not isinstance(items, list):
            raise CatalogFetchError(
                f"{self.display_name} returned an unexpected model list", provider=self.provider_id
            )
        models = []
        for item in items:
            if not isinstance(item, dict):
                continue
            model = self._parse_model(item)
            if model is not None:
                models.append(model)
        logger.debug("%s offers %s models", self.provider_id, len(models))
        return models

    async def chat(
        self,
        messages: list[ChatMessage],
        model_id: str,
        *,
        system_prompt: str | None = None,
        temperature: float = 0.7,
        max_tokens: int = 4096,
    ) -> LLMResponse:
        if not self.is_available():
            return LLMResponse(
                content=f"{self.display_name} API key is not configured.",
                model_used=model_id,
                finish_reason="error",
            )
        body: dict = {
            "model": self._api_model_id(model_id),
            "messages": [{"role": m.role, "content": m.content or ""} for m in messages],
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if system_prompt:
            body["messages"] = [{"role": "system", "content": system_prompt}] + body["messages"]

        async with self._client() as client:
            r = await client.post(
                f"{self._base_url}/chat/completions",
                headers=self._headers(),
                json=body,
            )
            if r.status_code >= 400:
                err_body = r.text
                if len(err_body) > 500:
                    err_body = err_body[:500] + "..."
                logger.warning("%s API error %s: %s", self.provider_id, r.status_code, err_body)
                if r.status_code in _ERROR_REPLIES:
                    return LLMResponse(
                        content=_ERROR_REPLIES[r.status_code].format(provider=self.display_name),
                        model_used=model_id,
                        finish_reason="error",
                    )
                r.raise_for_status()
            data = r.json()
        choices = data.get("choices") or []
        if not choices:
            return LLMResponse(content="", model_used=model_id, finish_reason="unknown")
        c = choices[0]
        msg = c.get("message") or {}
        return LLMResponse(
            content=msg.get("content") or "",
            model_used=data.get("model") or model_id,
            finish_reason=c.get("finish_reason"),
            usage=data.get("usage"),
        )
