"""
LLM Package - Code generation providers

This package turns a conversation into generated code text.
- base.py: Error types and the CodeGenerator protocol
- router.py: Picks a provider and credential per call
- *_client.py: One httpx client per provider
"""

from .anthropic_client import AnthropicClient
from .base import (
    CodeGenerator,
    LLMError,
    Message,
    MissingCredentialError,
    ProviderHTTPError,
    ProviderTransportError,
    UnsupportedProviderError,
)
from .ollama_client import OllamaClient
from .openai_client import OpenAIClient, OpenRouterClient
from .router import LLMRouter, available_providers, resolve_provider

__all__ = [
    "AnthropicClient",
    "CodeGenerator",
    "LLMError",
    "LLMRouter",
    "Message",
    "MissingCredentialError",
    "OllamaClient",
    "OpenAIClient",
    "OpenRouterClient",
    "ProviderHTTPError",
    "ProviderTransportError",
    "UnsupportedProviderError",
    "available_providers",
    "resolve_provider",
]
