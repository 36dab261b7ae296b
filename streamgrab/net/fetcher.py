"""
Issues authenticated requests for manifests, keys and media segments.

Every request carries the headers built from the session's AuthContext. A
request rejected with 401/403, or failing at the network level, is retried
exactly once with a reduced header set; whatever that retry returns is final.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Mapping, Optional

import aiohttp

from streamgrab.auth.context import AuthContext, build_headers
from streamgrab.exceptions import FetchError
from streamgrab.models.config import EngineConfig

log = logging.getLogger(__name__)

AUTH_REJECTED_STATUSES = (401, 403)


def open_session(config: EngineConfig) -> aiohttp.ClientSession:
    """
    Creates the pooled aiohttp session used for one CLI run.

    The connector is sized from the configured concurrency so that a batch
    window never waits on the pool.
    """
    connector = aiohttp.TCPConnector(
        limit=config.concurrency * 4,
        limit_per_host=config.concurrency * 2,
        ttl_dns_cache=600,
        keepalive_timeout=30,
        enable_cleanup_closed=True,
    )
    timeout = aiohttp.ClientTimeout(
        total=None,
        sock_connect=config.connect_timeout,
        sock_read=config.read_timeout,
    )
    log.debug(f"Created download pool with limit_per_host={config.concurrency * 2}")
    return aiohttp.ClientSession(
        connector=connector,
        timeout=timeout,
        headers={"User-Agent": config.user_agent, "Accept": "*/*"},
    )


@dataclass(frozen=True)
class FetchResponse:
    """A fully read HTTP response."""

    url: str
    status: int
    body: bytes
    headers: Mapping[str, str]

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def text(self, encoding: str = "utf-8") -> str:
        return self.body.decode(encoding, errors="replace")


def _fallback_headers(headers: dict[str, str]) -> dict[str, str]:
    """Session cookie only; the resource may accept ambient cookies alone."""
    return {"Cookie": headers["Cookie"]} if "Cookie" in headers else {}


class SegmentFetcher:
    """Authenticated GETs with a single auth-aware fallback."""

    def __init__(self, session: aiohttp.ClientSession):
        """
        Args:
            session: The shared aiohttp session (see `open_session`).
        """
        self._session = session

    async def _get(self, url: str, headers: dict[str, str]) -> FetchResponse:
        async with self._session.get(url, headers=headers, allow_redirects=True) as r:
            body = await r.read()
            return FetchResponse(
                url=str(r.url), status=r.status, body=body, headers=dict(r.headers)
            )

    async def fetch_authenticated(
        self, url: str, context: Optional[AuthContext] = None
    ) -> FetchResponse:
        """
        Fetches `url` with the context's headers.

        Raises:
            FetchError: On a non-2xx final status or a network failure.
        """
        headers = build_headers(context, url)

        try:
            response = await self._get(url, headers)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            if not headers:
                raise FetchError(f"Network error for {url}: {e}", url=url) from e
            log.debug(f"Network error with auth headers for {url}: {e}. Retrying bare.")
            try:
                response = await self._get(url, {})
            except (aiohttp.ClientError, asyncio.TimeoutError) as retry_error:
                raise FetchError(
                    f"Network error for {url}: {retry_error}", url=url
                ) from retry_error
        else:
            if response.status in AUTH_REJECTED_STATUSES and headers:
                fallback = _fallback_headers(headers)
                if fallback != headers:
                    log.debug(
                        f"HTTP {response.status} for {url}; "
                        "retrying without custom headers."
                    )
                    try:
                        response = await self._get(url, fallback)
                    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                        raise FetchError(
                            f"Network error for {url}: {e}", url=url
                        ) from e

        if not response.ok:
            raise FetchError(
                f"HTTP {response.status} for {url}", url=url, status=response.status
            )
        return response

    async def fetch_text(self, url: str, context: Optional[AuthContext] = None) -> str:
        """Fetches a manifest and decodes it as text."""
        response = await self.fetch_authenticated(url, context)
        return response.text()
