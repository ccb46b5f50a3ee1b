"""
Async client for the nCore tracker with circuit breaker protection and
adaptive rate limiting.
"""

import asyncio
import logging
import time
from http.cookies import SimpleCookie
from typing import Any, Optional

import aiohttp

from ncore_stream.exceptions import AuthenticationError, SourceUnavailableError
from ncore_stream.models.torrent import SearchPage
from ncore_stream.utils.circuit_breaker import CircuitBreaker, CircuitBreakerError
from ncore_stream.utils.structured_logger import SourceEventLogger

from .auth import NcoreAuthenticator
from .rate_limiter import AdaptiveRateLimiter

log = logging.getLogger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:121.0) Gecko/20100101 Firefox/121.0"
)


class NcoreClient:
    """
    Talks to the tracker's login form, JSON search endpoint, HTML pages and
    torrent downloads.

    Features:
    - One shared session cookie, refreshed by the authenticator
    - Circuit breaker for tracker resilience
    - Adaptive rate limiting
    - Connection pooling
    """

    def __init__(
        self,
        base_url: str,
        username: str,
        password: str,
        timeout_seconds: float = 30,
        max_connections: int = 8,
        events: Optional[SourceEventLogger] = None,
    ):
        """
        Args:
            base_url: Tracker root URL, e.g. https://ncore.pro.
            username: Tracker account name.
            password: Tracker account password.
            timeout_seconds: Total timeout for each outbound request.
            max_connections: Size of the per-host connection pool.
            events: Optional structured event sink for logins.
        """
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.max_connections = max_connections

        self._session: Optional[aiohttp.ClientSession] = None
        self._rate_limiter = AdaptiveRateLimiter()
        self._authenticator = NcoreAuthenticator(self, username, password, events=events)
        self._circuit_breaker = CircuitBreaker(
            "nCore",
            failure_threshold=5,
            recovery_timeout=60,
            success_threshold=2,
            ignored_exceptions=(AuthenticationError,),
        )

    @property
    def authenticator(self) -> NcoreAuthenticator:
        """Provides access to the authentication helper."""
        return self._authenticator

    async def _initialize_session(self) -> aiohttp.ClientSession:
        """Ensures an active aiohttp session is available."""
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(
                limit=self.max_connections * 2,
                limit_per_host=self.max_connections,
                ttl_dns_cache=300,
                enable_cleanup_closed=True,
            )
            self._session = aiohttp.ClientSession(
                connector=connector,
                # Cookies are sent explicitly from the credential session.
                cookie_jar=aiohttp.DummyCookieJar(),
                headers={
                    "User-Agent": USER_AGENT,
                    "Accept-Encoding": "gzip, deflate, br",
                },
                timeout=aiohttp.ClientTimeout(
                    total=self.timeout_seconds, connect=min(15, self.timeout_seconds)
                ),
            )
        return self._session

    async def close(self) -> None:
        """Gracefully closes the aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()

    def url(self, path: str) -> str:
        """Resolves a tracker-relative path to an absolute URL."""
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    async def _request(
        self,
        method: str,
        url: str,
        *,
        authenticated: bool = True,
        **kwargs: Any,
    ) -> tuple[aiohttp.ClientResponse, bytes]:
        """
        Performs a rate-limited request through the circuit breaker and returns
        the response with its fully-read body.

        Raises:
            SourceUnavailableError: On network errors, timeouts, HTTP errors or
                an open circuit.
        """
        session = await self._initialize_session()
        headers = dict(kwargs.pop("headers", {}) or {})
        if authenticated:
            headers["Cookie"] = await self._authenticator.get_cookies()

        try:
            async with self._circuit_breaker:
                await self._rate_limiter.acquire()
                start_time = time.monotonic()
                async with session.request(
                    method, url, headers=headers, **kwargs
                ) as response:
                    body = await response.read()
                    duration_ms = (time.monotonic() - start_time) * 1000
                    log.debug(
                        f"{method} {response.url.path} -> {response.status} "
                        f"({len(body)} bytes, {duration_ms:.0f} ms)"
                    )
                    if response.status == 429:
                        await self._rate_limiter.on_429()
                    if response.status >= 400:
                        response.raise_for_status()
                    return response, body
        except CircuitBreakerError as e:
            log.error(f"[red]Circuit breaker is open for tracker calls: {e}[/red]")
            raise SourceUnavailableError(str(e)) from e
        except aiohttp.ClientResponseError as e:
            raise SourceUnavailableError(
                f"nCore answered {e.status} for {method} {url}"
            ) from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise SourceUnavailableError(f"nCore is unreachable: {e!r}") from e

    async def submit_login(self, username: str, password: str) -> SimpleCookie:
        """
        Posts the login form and returns the cookies the tracker set.
        Redirects are not followed so the Set-Cookie headers stay visible.
        """
        form = aiohttp.FormData()
        form.add_field("set_lang", "hu")
        form.add_field("submitted", "1")
        form.add_field("nev", username)
        form.add_field("pass", password)
        form.add_field("ne_leptessen_ki", "1")
        try:
            response, _ = await self._request(
                "POST",
                self.url("login.php"),
                authenticated=False,
                data=form,
                allow_redirects=False,
            )
        except SourceUnavailableError as e:
            raise AuthenticationError(f"Failed to log in to nCore: {e}") from e
        return response.cookies

    async def search(self, params: dict[str, str]) -> SearchPage:
        """
        Fetches one page of JSON search results. The tracker answers with an
        HTML page instead of JSON when nothing matches.
        """
        response, body = await self._request(
            "GET", self.url("torrents.php"), params=params
        )
        if "application/json" not in response.headers.get("Content-Type", ""):
            return SearchPage()
        try:
            return SearchPage.model_validate_json(body)
        except ValueError as e:
            raise SourceUnavailableError(f"Malformed search response: {e}") from e

    async def fetch_details_page(self, source_id: str) -> str:
        """Returns the HTML of a torrent's details page."""
        _, body = await self._request(
            "GET",
            self.url("torrents.php"),
            params={"action": "details", "id": source_id},
        )
        return body.decode("utf-8", errors="replace")

    async def fetch_obligation_page(self) -> str:
        """Returns the HTML of the hit-and-run listing with every row shown."""
        _, body = await self._request(
            "GET", self.url("hitnrun.php"), params={"showall": "true"}
        )
        return body.decode("utf-8", errors="replace")

    async def download_torrent(self, url: str) -> bytes:
        """Downloads a .torrent file."""
        _, body = await self._request("GET", self.url(url))
        return body
