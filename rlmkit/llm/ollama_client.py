"""
Ollama Client - Local LLM interface.

Connects to a local Ollama server for chat completions. No API key needed.
"""

import httpx
from typing import List, Optional

from .base import Message, ProviderHTTPError, post_json


class OllamaClient:
    """Simple async client for Ollama."""

    name = "ollama"
    default_model = "llama3.1:8b"

    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        model: Optional[str] = None,
        timeout: float = 120,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.model = model or self.default_model
        self.timeout = timeout
        self.transport = transport

    async def complete(
        self,
        messages: List[Message],
        temperature: float = 0.2,
        max_tokens: int = 700,
    ) -> str:
        """Complete a conversation."""
        data = await post_json(
            self.name,
            f"{self.base_url}/api/chat",
            headers={"content-type": "application/json"},
            body={
                "model": self.model,
                "messages": messages,
                "stream": False,
                "options": {"temperature": temperature, "num_predict": max_tokens},
            },
            timeout=self.timeout,
            transport=self.transport,
        )

        if "error" in data:
            raise ProviderHTTPError(self.name, 200, str(data["error"]))

        return data.get("message", {}).get("content", "")

    async def check_health(self) -> bool:
        """Check if Ollama is running."""
        try:
            async with httpx.AsyncClient(timeout=5, transport=self.transport) as client:
                response = await client.get(f"{self.base_url}/api/tags")
                return response.status_code == 200
        except httpx.HTTPError:
            return False
