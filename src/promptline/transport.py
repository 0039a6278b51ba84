"""JSON-over-HTTP helper shared by provider adapters and chat services."""

from typing import Any

import httpx

from .errors import ErrorKind, ProviderError, classify_status


def default_http_client(timeout: float) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=httpx.Timeout(timeout),
        limits=httpx.Limits(max_connections=20, max_keepalive_connections=5),
    )


async def request_json(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    provider: str,
    display_name: str,
    timeout: float,
    headers: dict[str, str] | None = None,
    json_body: dict[str, Any] | None = None,
) -> Any:
    """Send a request and decode its JSON body; every failure becomes a ``ProviderError``."""
    try:
        response = await client.request(method, url, headers=headers, json=json_body, timeout=timeout)
    except httpx.TimeoutException as e:
        raise ProviderError(
            f"{display_name} request timeout after {timeout}s", ErrorKind.TIMEOUT, provider
        ) from e
    except httpx.TransportError as e:
        raise ProviderError(
            f"{display_name} network error: {e}", ErrorKind.NETWORK_ERROR, provider
        ) from e

    if response.is_error:
        body = response.text
        raise ProviderError(
            f"{display_name} API error: {response.status_code} {response.reason_phrase} - {body}",
            classify_status(response.status_code, body),
            provider=provider,
            status_code=response.status_code,
        )

    try:
        return response.json()
    except ValueError as e:
        raise ProviderError(f"{display_name} returned invalid JSON", ErrorKind.UNKNOWN, provider) from e
