"""Central registry for LLM providers. Add any provider by registering it here."""
from typing import TYPE_CHECKING, Optional

from modelhub.llm.base import LLMProvider

if TYPE_CHECKING:
    from modelhub.llm.catalog import ProviderCatalog


class LLMRegistry:
    """Registry of LLM providers. Each provider contributes its models to the catalog."""

    def __init__(self) -> None:
        self._providers: dict[str, LLMProvider] = {}

    def register(self, provider: LLMProvider) -> None:
        self._providers[provider.provider_id] = provider

    def unregister(self, provider_id: str) -> None:
        self._providers.pop(provider_id, None)

    def get(self, provider_id: str) -> Optional[LLMProvider]:
        return self._providers.get(provider_id)

    def get_provider_for_model(
        self,
        model_id: str,
        catalog: Optional["ProviderCatalog"] = None,
    ) -> Optional[tuple[str, LLMProvider]]:
        """
        Resolve model_id to a provider. The catalog knows which provider listed the model;
        without it the first path segment of '<provider_id>/<upstream id>' must name a
        registered provider. Catalog ids always carry that namespace, so
        'openrouter/openai/gpt-4o' goes to openrouter and 'openai/gpt-4o' to openai.
        """
        if catalog is not None:
            model = catalog.get(model_id)
            if model and model.provider in self._providers:
                return model.provider, self._providers[model.provider]
        prefix, sep, _ = model_id.partition("/")
        if sep and prefix in self._providers:
            return prefix, self._providers[prefix]
        return None

    def list_available_providers(self) -> list[tuple[str, LLMProvider]]:
        return [(pid, p) for pid, p in self._providers.items() if p.is_available()]


# Global registry; populated in main.py
llm_registry = LLMRegistry()


def get_llm_registry() -> LLMRegistry:
    return llm_registry
