"""
Download Utilities
==================

Fetch remote media (provider output URLs, caller-supplied clip URLs) into memory.
"""

import logging
from typing import Optional

import httpx

from ..core.exceptions import DownloadError, ValidationError
from ..core.security import validate_url, redact_api_key

logger = logging.getLogger(__name__)


async def download_url(
    url: str,
    client: Optional[httpx.AsyncClient] = None,
    timeout: float = 120.0,
    allow_private: bool = False,
) -> bytes:
    """
    Download a URL into a byte buffer.

    Args:
        url: http(s) URL to fetch
        client: Optional shared client (a short-lived one is created otherwise)
        timeout: Request timeout in seconds for a short-lived client
        allow_private: Permit loopback and private-network hosts

    Returns:
        Response body

    Raises:
        DownloadError: If the URL is rejected, unreachable or answers non-200
    """
    try:
        validate_url(url, allow_private=allow_private)
    except ValidationError as e:
        raise DownloadError(f"Refusing to download {url!r}: {e.message}", url=url) from e

    owns_client = client is None
    if owns_client:
        client = httpx.AsyncClient(timeout=httpx.Timeout(timeout), follow_redirects=True)

    safe_url = redact_api_key(url)
    try:
        response = await client.get(url)
    except httpx.TimeoutException as e:
        raise DownloadError(f"Download timed out: {safe_url}", url=safe_url, recoverable=True) from e
    except httpx.HTTPError as e:
        raise DownloadError(f"Download failed: {safe_url}: {e}", url=safe_url) from e
    finally:
        if owns_client:
            await client.aclose()

    if response.status_code != 200:
        raise DownloadError(
            f"Download failed with status {response.status_code}: {safe_url}",
            url=safe_url,
            status_code=response.status_code,
            recoverable=response.status_code >= 500,
        )

    logger.debug(f"Downloaded {len(response.content)} bytes from {safe_url}")
    return response.content


class Downloader:
    """Download collaborator bound to one client and one set of limits."""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 120.0,
        allow_private: bool = False,
    ):
        self.client = client
        self.timeout = timeout
        self.allow_private = allow_private

    async def download(self, url: str) -> bytes:
        return await download_url(
            url,
            client=self.client,
            timeout=self.timeout,
            allow_private=self.allow_private,
        )
