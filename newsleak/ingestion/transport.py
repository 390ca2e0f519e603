"""
Fetch Transport
===============

HTTP GET for feed documents and article pages. ``DirectTransport`` talks to
the origin; ``RelayTransport`` routes every request through a CORS relay
(``https://<relay>/?<url-encoded-target>``). Both retry transient failures
under a bounded ``RetryConfig`` and raise ``TransportError`` otherwise.
"""

import asyncio
import ssl
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Optional
from urllib.parse import quote

import aiohttp
import certifi

from ..config.settings import TransportSettings
from ..database.models import utc_now
from ..recovery.retry_logic import RetryConfig, RetryManager
from ..utils.exceptions import TransportError, ErrorCode
from ..utils.logging import get_logger_for_component

FEED_ACCEPT = "application/rss+xml, application/xml, text/xml;q=0.9, */*;q=0.8"
PAGE_ACCEPT = "text/html, application/xhtml+xml;q=0.9, */*;q=0.8"
DEFAULT_USER_AGENT = "Newsleak RSS Fetcher/1.0 (+https://newsleak.app)"


@dataclass
class FetchResponse:
    """Body and metadata of a successful GET."""

    url: str
    status: int
    body: bytes
    content_type: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)
    fetched_at: datetime = field(default_factory=utc_now)

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")


class FetchTransport(ABC):
    """Anything that can GET a URL for the ingestion pipeline."""

    @abstractmethod
    async def fetch(
        self,
        url: str,
        *,
        accept: Optional[str] = None,
        timeout: Optional[float] = None,
        retry: bool = True,
    ) -> FetchResponse:
        """GET ``url``.

        Raises:
            TransportError: On DNS/connect failures, timeouts and non-2xx
        """

    async def close(self) -> None:
        """Release network resources."""

    async def __aenter__(self) -> "FetchTransport":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


class DirectTransport(FetchTransport):
    """aiohttp transport fetching URLs from their origin."""

    def __init__(
        self,
        timeout: float = 30.0,
        user_agent: str = DEFAULT_USER_AGENT,
        retry_config: Optional[RetryConfig] = None,
        session: Optional[aiohttp.ClientSession] = None,
        max_connections: int = 20,
    ):
        """Initialize transport.

        Args:
            timeout: Default total request timeout in seconds
            user_agent: User-Agent header sent with every request
            retry_config: Retry policy for transient failures
            session: Externally managed session (not closed by this transport)
            max_connections: Connector pool size for an owned session
        """
        self.timeout = timeout
        self.user_agent = user_agent
        self.max_connections = max_connections
        self.retry_manager = RetryManager(retry_config or RetryConfig())
        self.logger = get_logger_for_component("transport")

        self._session = session
        self._owns_session = session is None

    @classmethod
    def from_settings(cls, settings: TransportSettings, **kwargs) -> "DirectTransport":
        return cls(
            timeout=settings.request_timeout,
            user_agent=settings.user_agent,
            retry_config=RetryConfig(
                max_attempts=settings.max_attempts,
                base_delay=settings.base_delay,
                max_delay=settings.max_delay,
            ),
            **kwargs,
        )

    def request_url(self, url: str) -> str:
        """URL actually requested for target ``url``."""
        return url

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            ssl_context = ssl.create_default_context(cafile=certifi.where())
            connector = aiohttp.TCPConnector(
                ssl=ssl_context,
                limit=self.max_connections,
                limit_per_host=5,
            )
            self._session = aiohttp.ClientSession(
                connector=connector,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                headers={
                    "User-Agent": self.user_agent,
                    "Accept-Encoding": "gzip, deflate",
                },
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None if self._owns_session else self._session

    async def fetch(
        self,
        url: str,
        *,
        accept: Optional[str] = None,
        timeout: Optional[float] = None,
        retry: bool = True,
    ) -> FetchResponse:
        if not retry:
            return await self._fetch_once(url, accept, timeout)

        return await self.retry_manager.retry_async(
            self._fetch_once, url, accept, timeout, operation=f"fetch {url}"
        )

    async def _fetch_once(
        self, url: str, accept: Optional[str], timeout: Optional[float]
    ) -> FetchResponse:
        request_url = self.request_url(url)
        total = timeout if timeout is not None else self.timeout
        session = self._get_session()

        self.logger.debug(f"GET {request_url}")

        try:
            async with session.get(
                request_url,
                headers={"Accept": accept or FEED_ACCEPT},
                timeout=aiohttp.ClientTimeout(total=total),
                allow_redirects=True,
            ) as response:
                if not 200 <= response.status < 300:
                    raise self._status_error(url, response.status, response.reason)

                body = await response.read()
                return FetchResponse(
                    url=url,
                    status=response.status,
                    body=body,
                    content_type=response.headers.get("Content-Type"),
                    headers=dict(response.headers),
                )

        except asyncio.TimeoutError:
            raise TransportError(
                f"Request timeout after {total}s",
                feed_url=url,
                error_code=ErrorCode.FEED_FETCH_TIMEOUT,
            )
        except aiohttp.ClientError as e:
            raise TransportError(
                f"Connection failed: {e}",
                feed_url=url,
                error_code=ErrorCode.FEED_NETWORK_ERROR,
            )

    @staticmethod
    def _status_error(url: str, status: int, reason: Optional[str]) -> TransportError:
        if status == 429:
            code = ErrorCode.FEED_RATE_LIMITED
        elif status == 404:
            code = ErrorCode.FEED_NOT_FOUND
        elif status in (401, 403):
            code = ErrorCode.FEED_ACCESS_DENIED
        else:
            code = ErrorCode.FEED_HTTP_ERROR

        return TransportError(
            f"HTTP {status}: {reason or 'error'}",
            feed_url=url,
            status=status,
            error_code=code,
        )


class RelayTransport(DirectTransport):
    """Transport that routes requests through a CORS relay."""

    DEFAULT_TEMPLATE = "https://api.allorigins.win/raw?url={url}"

    def __init__(self, relay_url_template: str = DEFAULT_TEMPLATE, **kwargs):
        """Initialize relay transport.

        Args:
            relay_url_template: Relay URL with a ``{url}`` placeholder that
                receives the URL-encoded target
            **kwargs: Passed to ``DirectTransport``
        """
        if "{url}" not in relay_url_template:
            raise ValueError("relay_url_template must contain '{url}'")
        super().__init__(**kwargs)
        self.relay_url_template = relay_url_template

    @classmethod
    def from_settings(cls, settings: TransportSettings, **kwargs) -> "RelayTransport":
        return super().from_settings(
            settings, relay_url_template=settings.relay_url_template, **kwargs
        )

    def request_url(self, url: str) -> str:
        return self.relay_url_template.format(url=quote(url, safe=""))


def create_transport(settings: TransportSettings) -> DirectTransport:
    """Build the transport selected by configuration."""
    if settings.use_relay:
        return RelayTransport.from_settings(settings)
    return DirectTransport.from_settings(settings)
