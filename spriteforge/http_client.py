"""
Thin httpx wrappers shared by the provider clients.

Every transport failure, non-2xx status and undecodable body is turned into a
ProviderError so the retry policy has a single type to reason about.
"""

import os
import logging
from typing import Any, Optional

import httpx

from .errors import CredentialMissing, ProviderError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60


def require_key(provider: str, env_var: str) -> str:
    """Read an API key at call time; absent or blank → CredentialMissing."""
    value = os.environ.get(env_var, "").strip()
    if not value:
        raise CredentialMissing(provider, env_var)
    return value


async def send(
    provider: str,
    method: str,
    url: str,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    timeout: float = DEFAULT_TIMEOUT,
    **kwargs: Any,
) -> httpx.Response:
    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            response = await client.request(method, url, **kwargs)
            response.raise_for_status()
            return response
    except httpx.HTTPStatusError as e:
        body = e.response.text[:300]
        raise ProviderError(provider, body or e.response.reason_phrase, e.response.status_code) from e
    except httpx.TimeoutException as e:
        raise ProviderError(provider, f"request timed out after {timeout}s") from e
    except httpx.HTTPError as e:
        raise ProviderError(provider, f"request failed: {e}") from e


async def send_json(provider: str, method: str, url: str, **kwargs: Any) -> dict:
    response = await send(provider, method, url, **kwargs)
    try:
        data = response.json()
    except ValueError as e:
        raise ProviderError(provider, "malformed JSON response", response.status_code) from e
    if not isinstance(data, dict):
        raise ProviderError(provider, f"unexpected response shape: {type(data).__name__}", response.status_code)
    return data


async def download(provider: str, url: str, **kwargs: Any) -> bytes:
    """Fetch a result file (video / model) from a provider-hosted URL."""
    response = await send(provider, "GET", url, **kwargs)
    return response.content
