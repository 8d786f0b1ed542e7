"""
OpenAI-compatible Chat Completions clients (OpenAI and OpenRouter).
"""

import httpx
from typing import List, Optional

from .base import Message, post_json


class OpenAIClient:
    """Async client for the OpenAI Chat Completions API."""

    name = "openai"
    endpoint = "https://api.openai.com/v1/chat/completions"
    default_model = "gpt-4o-mini"

    def __init__(
        self,
        api_key: str,
        model: Optional[str] = None,
        timeout: float = 300,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.model = model or self.default_model
        self.timeout = timeout
        self.transport = transport

    async def complete(
        self,
        messages: List[Message],
        temperature: float = 0.2,
        max_tokens: int = 700,
    ) -> str:
        data = await post_json(
            self.name,
            self.endpoint,
            headers={
                "authorization": f"Bearer {self.api_key}",
                "content-type": "application/json",
            },
            body={
                "model": self.model,
                "messages": messages,
                "temperature": temperature,
                "max_tokens": max_tokens,
            },
            timeout=self.timeout,
            transport=self.transport,
        )

        choices = data.get("choices") or [{}]
        return choices[0].get("message", {}).get("content") or ""


class OpenRouterClient(OpenAIClient):
    """OpenRouter speaks the OpenAI wire format on its own endpoint."""

    name = "openrouter"
    endpoint = "https://openrouter.ai/api/v1/chat/completions"
    default_model = "anthropic/claude-sonnet-4"
