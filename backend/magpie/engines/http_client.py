"""Shared HTTP client factory for consistent outbound HTTP behaviour.

Usage:
    from magpie.engines.http_client import create_http_client

    async with create_http_client(json_accept=True) as client:
        response = await client.post(url, json=payload)
"""

from typing import Optional

import httpx

from magpie.config import get_settings

settings = get_settings()

DEFAULT_TIMEOUT_SECONDS = 30.0


def get_default_headers(json_accept: bool = False) -> dict[str, str]:
    """
    Get default headers for outbound requests.

    Args:
        json_accept: If True, asks for JSON responses.

    Returns:
        Dictionary of HTTP headers.
    """
    return {
        "User-Agent": settings.http_user_agent,
        "Accept": "application/json" if json_accept else "*/*",
        "Accept-Encoding": "gzip, deflate",
    }


def create_http_client(
    timeout: Optional[float] = None,
    json_accept: bool = False,
    headers: Optional[dict[str, str]] = None,
) -> httpx.AsyncClient:
    """
    Create a configured httpx.AsyncClient with consistent defaults.

    Args:
        timeout: Request timeout in seconds.
        json_accept: If True, sets Accept header for JSON responses.
        headers: Additional headers merged over the defaults.

    Returns:
        Configured httpx.AsyncClient instance.
    """
    default_headers = get_default_headers(json_accept=json_accept)
    if headers:
        default_headers.update(headers)

    return httpx.AsyncClient(
        timeout=timeout if timeout is not None else DEFAULT_TIMEOUT_SECONDS,
        follow_redirects=True,
        headers=default_headers,
    )


class ManagedHttpClient:
    """
    A lazily created HTTP client reused across calls.

    Example:
        class MyService:
            def __init__(self):
                self._http = ManagedHttpClient(json_accept=True)

            async def fetch(self):
                client = await self._http.get_client()
                return await client.get("https://example.com")

            async def close(self):
                await self._http.close()
    """

    def __init__(
        self,
        timeout: Optional[float] = None,
        json_accept: bool = False,
        headers: Optional[dict[str, str]] = None,
    ):
        self._timeout = timeout
        self._json_accept = json_accept
        self._headers = headers
        self._client: Optional[httpx.AsyncClient] = None

    async def get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = create_http_client(
                timeout=self._timeout,
                json_accept=self._json_accept,
                headers=self._headers,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client if it exists."""
        if self._client:
            await self._client.aclose()
            self._client = None
