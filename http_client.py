"""Shared HTTP client with connection pooling for Lapsewatch probes."""

from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator

import httpx

from config import get_settings

# Global HTTP client with connection pooling, shared by every probe
_http_client: httpx.AsyncClient | None = None

CONNECT_TIMEOUT = 5.0

# Probes for one batch share the pool: 3 domains x ~10 requests each
POOL_LIMITS = httpx.Limits(
    max_keepalive_connections=20,
    max_connections=100,
    keepalive_expiry=30.0,
)

DEFAULT_HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
    "Accept-Encoding": "gzip, deflate",
    "Connection": "keep-alive",
}

MAX_CONTENT_LENGTH = 5 * 1024 * 1024  # 5MB


@dataclass
class FetchedPage:
    """Body and redirect trail of a fetched URL."""
    text: str
    status_code: int
    final_url: str
    redirect_count: int = 0
    headers: dict[str, str] = field(default_factory=dict)


async def get_http_client() -> httpx.AsyncClient:
    """
    Get the global HTTP client instance.

    Creates the client on first call. Redirects are followed up to
    MAX_REDIRECTS hops; longer chains raise ``httpx.TooManyRedirects``.
    """
    global _http_client

    if _http_client is None or _http_client.is_closed:
        settings = get_settings()
        _http_client = httpx.AsyncClient(
            timeout=httpx.Timeout(settings.probe_timeout, connect=CONNECT_TIMEOUT),
            limits=POOL_LIMITS,
            headers=DEFAULT_HEADERS,
            follow_redirects=True,
            max_redirects=settings.max_redirects,
            verify=False,  # Parked and expired domains often serve broken certs
            http2=False,
        )

    return _http_client


async def close_http_client() -> None:
    """Close the global HTTP client."""
    global _http_client

    if _http_client is not None and not _http_client.is_closed:
        await _http_client.aclose()
        _http_client = None


@asynccontextmanager
async def managed_http_client() -> AsyncIterator[httpx.AsyncClient]:
    """
    Context manager for the client lifecycle in scripts.

    Each ``asyncio.run`` gets its own event loop, so CLI commands and
    scheduled jobs open and close the pooled client around their work.
    """
    client = await get_http_client()
    try:
        yield client
    finally:
        await close_http_client()


async def fetch_page(
    url: str,
    client: httpx.AsyncClient | None = None,
    timeout: float | None = None,
    max_content_length: int = MAX_CONTENT_LENGTH,
) -> FetchedPage:
    """
    Fetch a URL with safety limits.

    Args:
        url: URL to fetch
        client: Client to use instead of the shared one
        timeout: Optional timeout override
        max_content_length: Maximum response size in bytes

    Returns:
        FetchedPage with decoded text, final URL and redirect count

    Raises:
        httpx.HTTPError: On transport errors and redirect loops
        ValueError: If content exceeds max_content_length
    """
    client = client or await get_http_client()
    request_timeout = timeout or get_settings().probe_timeout

    async with client.stream("GET", url, timeout=request_timeout, follow_redirects=True) as response:
        content_length = response.headers.get("content-length")
        if content_length and int(content_length) > max_content_length:
            raise ValueError(f"Content too large: {content_length} bytes")

        chunks = []
        total_size = 0

        async for chunk in response.aiter_bytes(chunk_size=8192):
            total_size += len(chunk)
            if total_size > max_content_length:
                raise ValueError(f"Content exceeded {max_content_length} bytes")
            chunks.append(chunk)

        content = b"".join(chunks)

        try:
            text = content.decode(response.encoding or "utf-8")
        except (UnicodeDecodeError, LookupError):
            text = content.decode("latin-1")

        return FetchedPage(
            text=text,
            status_code=response.status_code,
            final_url=str(response.url),
            redirect_count=len(response.history),
            headers=dict(response.headers),
        )
