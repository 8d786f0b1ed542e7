"""
Provider dispatch for code generation.

When no provider is named, the first one with a usable credential wins, in
this order: anthropic, openai, openrouter. Ollama needs no credential and
is only used when selected explicitly.
"""

import logging
import os
from typing import Dict, List, Optional

from ..config import RunOptions
from .anthropic_client import AnthropicClient
from .base import Message, MissingCredentialError, UnsupportedProviderError
from .ollama_client import OllamaClient
from .openai_client import OpenAIClient, OpenRouterClient

logger = logging.getLogger(__name__)

PROVIDER_PRECEDENCE = ["anthropic", "openai", "openrouter"]

ENV_KEYS: Dict[str, str] = {
    "anthropic": "ANTHROPIC_API_KEY",
    "openai": "OPENAI_API_KEY",
    "openrouter": "OPENROUTER_API_KEY",
}

CLIENTS = {
    "anthropic": AnthropicClient,
    "openai": OpenAIClient,
    "openrouter": OpenRouterClient,
}


def api_key_for(provider: str, options: RunOptions) -> Optional[str]:
    """Provider-specific key, then the generic key, then the environment."""
    specific = getattr(options, f"{provider}_api_key", None)
    return specific or options.api_key or os.getenv(ENV_KEYS[provider])


def available_providers(options: RunOptions) -> List[str]:
    """Providers with a usable credential, in precedence order."""
    return [p for p in PROVIDER_PRECEDENCE if api_key_for(p, options)]


def resolve_provider(options: RunOptions) -> str:
    provider = options.provider
    if provider:
        provider = provider.lower()
        if provider != "ollama" and provider not in CLIENTS:
            raise UnsupportedProviderError(f"Unsupported provider: {options.provider!r}")
        return provider

    available = available_providers(options)
    if not available:
        raise MissingCredentialError(
            "No LLM provider configured. Set ANTHROPIC_API_KEY, OPENAI_API_KEY, "
            "or OPENROUTER_API_KEY."
        )
    return available[0]


class LLMRouter:
    """
    Default code generator: builds the right client for each call.

    Usage:
        router = LLMRouter()
        text = await router.complete(messages, RunOptions(provider="openai"))
    """

    def build_client(self, options: RunOptions):
        provider = resolve_provider(options)

        if provider == "ollama":
            return OllamaClient(
                base_url=options.ollama_base_url,
                model=options.model,
                timeout=options.request_timeout,
                transport=options.transport,
            )

        api_key = api_key_for(provider, options)
        if not api_key:
            raise MissingCredentialError(
                f"No {provider} API key found. Set {ENV_KEYS[provider]} or pass api_key."
            )

        return CLIENTS[provider](
            api_key=api_key,
            model=options.model,
            timeout=options.request_timeout,
            transport=options.transport,
        )

    async def complete(self, messages: List[Message], options: RunOptions) -> str:
        client = self.build_client(options)
        logger.debug("Requesting completion from %s (%s)", client.name, client.model)
        return await client.complete(
            messages,
            temperature=options.temperature,
            max_tokens=options.max_tokens,
        )
