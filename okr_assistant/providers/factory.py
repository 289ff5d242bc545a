"""
Provider Factory

Builds one ChatProvider per Provider value from Settings and resolves
request hints to configured backends.
"""

from typing import Dict, Optional
import logging

from okr_assistant.config import Settings
from okr_assistant.functions.registry import FunctionRegistry
from okr_assistant.providers.azure_openai_provider import AzureOpenAIProvider
from okr_assistant.providers.base import ChatProvider, Provider
from okr_assistant.providers.cohere_provider import CohereProvider
from okr_assistant.providers.deepseek_provider import DeepSeekProvider

logger = logging.getLogger(__name__)


class ProviderSet:
    """The configured providers plus the default used for unknown hints"""

    def __init__(self, providers: Dict[Provider, ChatProvider], default: Provider = Provider.COHERE):
        self.providers = providers
        self.default = default

    def resolve(self, hint: Optional[str]) -> Provider:
        return Provider.from_hint(hint, self.default)

    def get(self, provider: Provider) -> ChatProvider:
        if provider not in self.providers:
            raise KeyError(f"No backend configured for provider {provider.value}")
        return self.providers[provider]

    @property
    def primary(self) -> ChatProvider:
        """Function-calling provider used for documents and risk analysis"""
        return self.get(Provider.AZURE_OPENAI)


def create_providers(settings: Settings, registry: FunctionRegistry) -> ProviderSet:
    """
    Create every provider from settings.

    Providers with missing credentials are created disabled and log a
    warning; start-up never fails on provider configuration.
    """
    common = {
        "timeout_seconds": settings.llm_timeout_seconds,
        "multi_step_timeout_seconds": settings.multi_step_timeout_seconds,
        "history_window": settings.history_window,
    }
    providers: Dict[Provider, ChatProvider] = {
        Provider.AZURE_OPENAI: AzureOpenAIProvider(
            api_key=settings.azure_openai_api_key,
            endpoint=settings.azure_openai_endpoint,
            deployment=settings.azure_openai_deployment,
            api_version=settings.azure_openai_api_version,
            registry=registry,
            max_function_steps=settings.max_function_steps,
            **common
        ),
        Provider.DEEPSEEK: DeepSeekProvider(
            api_key=settings.deepseek_api_key,
            base_url=settings.deepseek_base_url,
            model=settings.deepseek_model,
            **common
        ),
        Provider.COHERE: CohereProvider(
            api_key=settings.cohere_api_key,
            model=settings.cohere_model,
            temperature=settings.cohere_temperature,
            **common
        ),
    }
    default = Provider.from_hint(settings.default_llm_provider, Provider.COHERE)
    enabled = [p.value for p, backend in providers.items() if backend.enabled]
    logger.info(f"LLM providers enabled: {enabled or 'none'} (default: {default.value})")
    return ProviderSet(providers, default)
