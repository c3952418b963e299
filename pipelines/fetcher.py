"""Resilient page fetching for the archive pipeline.

A single GET request chain with manual redirect following, a wall-clock
timeout and best-effort gzip/deflate decoding. Retries live in
:mod:`pipelines.retry`, not here.
"""

import asyncio
import logging
import zlib
from typing import Dict, Optional
from urllib.parse import urljoin

import aiohttp

from config.settings import FetchConfig
from observability.prometheus_metrics import record_fetch_attempt

logger = logging.getLogger(__name__)

REDIRECT_STATUSES = frozenset({301, 302, 303, 307, 308})


class FetchError(Exception):
    """A fetch failed; transient from the orchestrator's point of view."""

    def __init__(self, url: str, message: str):
        super().__init__(message)
        self.url = url


class HTTPStatusError(FetchError):
    """Terminal response outside the 2xx range."""

    def __init__(self, url: str, status: int, body: str = ""):
        super().__init__(url, f"Failed to fetch {url}: {status} {body}".rstrip())
        self.status = status
        self.body = body


class FetchTimeoutError(FetchError):
    """The request did not complete within the configured timeout."""


class RedirectError(FetchError):
    """Redirect without a Location header, or redirect budget exhausted."""


def decode_body(raw: bytes, content_encoding: Optional[str]) -> bytes:
    """Undo gzip/deflate content encoding; anything else is returned untouched."""
    encoding = (content_encoding or "").lower()
    if "gzip" in encoding:
        return zlib.decompress(raw, 16 + zlib.MAX_WBITS)
    if "deflate" in encoding:
        try:
            return zlib.decompress(raw)
        except zlib.error:
            # Some servers send raw deflate streams without the zlib header
            return zlib.decompress(raw, -zlib.MAX_WBITS)
    # br and friends fall through as raw bytes
    return raw


class PageFetcher:
    """GET-with-redirects against the remote document source."""

    def __init__(self, config: Optional[FetchConfig] = None):
        self.config = config or FetchConfig()
        self.session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self):
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self.session is None or self.session.closed:
            # Decompression is handled by decode_body so unknown encodings pass through
            self.session = aiohttp.ClientSession(auto_decompress=False)
        return self.session

    async def close(self):
        """Close the underlying HTTP session."""
        if self.session:
            await self.session.close()
            self.session = None

    def _default_headers(self) -> Dict[str, str]:
        return {
            "User-Agent": self.config.user_agent,
            "Accept": "text/html,application/xhtml+xml",
            "Accept-Encoding": "gzip,deflate",
        }

    async def fetch(self, url: str,
                    headers: Optional[Dict[str, str]] = None,
                    timeout_ms: Optional[int] = None,
                    max_redirects: Optional[int] = None) -> str:
        """Fetch ``url`` and return the decoded body text.

        Raises:
            RedirectError: missing Location or too many redirects
            FetchTimeoutError: a request exceeded ``timeout_ms``
            HTTPStatusError: terminal non-2xx status
            FetchError: connection-level failure
        """
        try:
            text = await self._fetch(url, headers, timeout_ms, max_redirects)
        except FetchError:
            record_fetch_attempt(False)
            raise
        record_fetch_attempt(True)
        return text

    async def _fetch(self, url: str,
                     headers: Optional[Dict[str, str]],
                     timeout_ms: Optional[int],
                     max_redirects: Optional[int]) -> str:
        session = await self._ensure_session()
        timeout_ms = timeout_ms if timeout_ms is not None else self.config.timeout_ms
        redirects_left = max_redirects if max_redirects is not None else self.config.max_redirects
        request_headers = {**self._default_headers(), **(headers or {})}
        timeout = aiohttp.ClientTimeout(total=timeout_ms / 1000)

        current_url = url
        while True:
            logger.debug(f"GET {current_url} (redirects left: {redirects_left})")
            try:
                async with session.get(current_url, headers=request_headers,
                                       allow_redirects=False, timeout=timeout) as response:
                    status = response.status

                    if status in REDIRECT_STATUSES:
                        location = response.headers.get("Location")
                        if not location:
                            raise RedirectError(current_url, f"Redirect without Location for {current_url}")
                        if redirects_left <= 0:
                            raise RedirectError(current_url, f"Too many redirects for {current_url}")
                        redirects_left -= 1
                        current_url = urljoin(current_url, location)
                        continue

                    raw = await response.read()
                    body = decode_body(raw, response.headers.get("Content-Encoding"))

                    if status < 200 or status >= 300:
                        snippet = body.decode("utf-8", errors="replace")[:self.config.error_body_chars]
                        raise HTTPStatusError(current_url, status, snippet)

                    return body.decode("utf-8", errors="replace")

            except asyncio.TimeoutError as e:
                raise FetchTimeoutError(
                    current_url, f"Timeout after {timeout_ms}ms for {current_url}"
                ) from e
            except zlib.error as e:
                raise FetchError(current_url, f"Could not decode body of {current_url}: {e}") from e
            except (aiohttp.ClientError, OSError) as e:
                raise FetchError(current_url, f"Request to {current_url} failed: {e}") from e
