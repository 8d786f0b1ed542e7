"""
Anthropic Messages API client.

The Messages API takes system text as a top-level field rather than as a
turn, so system turns are joined and lifted out of the conversation.
"""

import httpx
from typing import List, Optional, Tuple

from .base import Message, post_json


class AnthropicClient:
    """Async client for the Anthropic Messages API."""

    name = "anthropic"
    endpoint = "https://api.anthropic.com/v1/messages"
    default_model = "claude-sonnet-4-20250514"
    api_version = "2023-06-01"

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
        system, conversation = split_system(messages)

        body = {
            "model": self.model,
            "messages": conversation,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if system:
            body["system"] = system

        data = await post_json(
            self.name,
            self.endpoint,
            headers={
                "x-api-key": self.api_key,
                "anthropic-version": self.api_version,
                "accept": "application/json",
                "content-type": "application/json",
            },
            body=body,
            timeout=self.timeout,
            transport=self.transport,
        )

        return "".join(
            block.get("text", "")
            for block in data.get("content", [])
            if block.get("type") == "text"
        )


def split_system(messages: List[Message]) -> Tuple[str, List[dict]]:
    """Separate system text from the user/assistant turns."""
    system = "\n\n".join(m["content"] for m in messages if m["role"] == "system")
    conversation = [
        {"role": m["role"], "content": [{"type": "text", "text": m["content"]}]}
        for m in messages
        if m["role"] != "system"
    ]
    return system, conversation
