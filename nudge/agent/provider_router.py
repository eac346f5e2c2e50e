from __future__ import annotations

import logging
from typing import Callable

from nudge.agent.providers import anthropic_provider, openai_provider
from nudge.agent.providers.anthropic_provider import AnthropicProvider
from nudge.agent.providers.base import DEFAULT_MAX_TOKENS, ProviderAdapter
from nudge.agent.providers.errors import UnknownProviderError
from nudge.agent.providers.openai_provider import OpenAIProvider

logger = logging.getLogger(__name__)

SUPPORTED_PROVIDERS = ("anthropic", "openai", "custom")


def default_model_for(provider: str) -> str:
    if provider == "anthropic":
        return anthropic_provider.DEFAULT_MODEL
    if provider in {"openai", "custom"}:
        return openai_provider.DEFAULT_MODEL
    raise UnknownProviderError(f"Unknown provider: {provider}")


def build_provider(
    provider: str,
    *,
    max_tokens: int = DEFAULT_MAX_TOKENS,
    custom_tls_verify: bool = False,
) -> ProviderAdapter:
    if provider == "anthropic":
        return AnthropicProvider(max_tokens=max_tokens)
    if provider in {"openai", "custom"}:
        return OpenAIProvider(provider, max_tokens=max_tokens, custom_tls_verify=custom_tls_verify)
    raise UnknownProviderError(f"Unknown provider: {provider}")


class ProviderRegistry:
    """One lazily built adapter per provider id, evicted on credential changes."""

    def __init__(self, factory: Callable[[str], ProviderAdapter] | None = None) -> None:
        self._factory = factory or build_provider
        self._providers: dict[str, ProviderAdapter] = {}

    def get_provider(self, provider_id: str) -> ProviderAdapter:
        provider = self._providers.get(provider_id)
        if provider is None:
            provider = self._factory(provider_id)
            self._providers[provider_id] = provider
            logger.debug("provider built id=%s", provider_id)
        return provider

    async def reset_provider(self, provider_id: str) -> None:
        provider = self._providers.pop(provider_id, None)
        if provider is not None:
            await provider.aclose()
            logger.debug("provider reset id=%s", provider_id)

    async def aclose(self) -> None:
        for provider_id in list(self._providers):
            await self.reset_provider(provider_id)
