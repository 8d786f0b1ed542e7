"""
Code generator port and shared HTTP plumbing for provider clients.

The engine only needs one capability from a provider: turn an ordered
conversation into a text completion. Every client in this package raises
one of three errors so callers can tell the failures apart:

- MissingCredentialError: no API key could be resolved
- ProviderHTTPError: the provider answered with a non-2xx status
- ProviderTransportError: the request never produced a response
"""

from typing import TYPE_CHECKING, Dict, List, Optional, Protocol

import httpx

if TYPE_CHECKING:
    from ..config import RunOptions


# {"role": "system" | "user" | "assistant", "content": "..."}
Message = Dict[str, str]


class LLMError(Exception):
    """Base class for code generation failures."""


class MissingCredentialError(LLMError):
    """Raised when no API key is available for the selected provider."""


class UnsupportedProviderError(LLMError):
    """Raised for an unknown provider name."""


class ProviderHTTPError(LLMError):
    """Raised when a provider answers with a non-2xx status."""

    def __init__(self, provider: str, status: int, body: str):
        self.provider = provider
        self.status = status
        self.body = body
        super().__init__(f"{provider} request failed with status {status}: {body}")


class ProviderTransportError(LLMError):
    """Raised when the HTTP request itself fails (DNS, connect, timeout...)."""


class CodeGenerator(Protocol):
    """Anything that can complete a conversation."""

    async def complete(self, messages: List[Message], options: "RunOptions") -> str:
        ...


async def post_json(
    provider: str,
    url: str,
    headers: Dict[str, str],
    body: dict,
    timeout: float,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> dict:
    """POST a JSON body and return the decoded JSON response."""
    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            response = await client.post(url, headers=headers, json=body)
    except httpx.HTTPError as e:
        raise ProviderTransportError(f"{provider} request error: {e!r}") from e

    if not response.is_success:
        raise ProviderHTTPError(provider, response.status_code, response.text)

    try:
        return response.json()
    except ValueError as e:
        raise ProviderTransportError(f"{provider} returned a malformed response: {e}") from e
