"""
Handles logging in to the tracker and keeping the session cookie fresh.
"""

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from email.utils import parsedate_to_datetime
from http.cookies import Morsel, SimpleCookie
from typing import TYPE_CHECKING

from ncore_stream.exceptions import AuthenticationError

if TYPE_CHECKING:
    from ncore_stream.utils.structured_logger import SourceEventLogger

    from .client import NcoreClient

log = logging.getLogger(__name__)

PASS_COOKIE = "pass"
# Cookies without an expiry are trusted for this long.
DEFAULT_SESSION_LIFETIME = 30 * 60
# A session this close to expiry is treated as expired.
EXPIRY_MARGIN = 1.0


@dataclass(frozen=True)
class CredentialSession:
    """The tracker cookie header value and the wall-clock time it stops working."""

    cookie_string: str
    expires_at: float

    def is_valid(self, now: float) -> bool:
        return self.expires_at > now + EXPIRY_MARGIN


def _morsel_expiry(morsel: Morsel, now: float) -> float | None:
    if morsel["max-age"]:
        try:
            return now + int(morsel["max-age"])
        except ValueError:
            pass
    if morsel["expires"]:
        try:
            return parsedate_to_datetime(morsel["expires"]).timestamp()
        except (TypeError, ValueError):
            log.debug(f"Unparseable cookie expiry: {morsel['expires']}")
    return None


def session_from_cookies(cookies: SimpleCookie, now: float) -> CredentialSession:
    """
    Builds a CredentialSession from the cookies set by the login response.

    Raises:
        AuthenticationError: If the response carries no usable 'pass' cookie.
    """
    pass_cookie = cookies.get(PASS_COOKIE)
    if pass_cookie is None or not pass_cookie.value or pass_cookie.value == "deleted":
        raise AuthenticationError("Failed to log in to nCore. No pass cookie found.")

    cookie_string = "; ".join(f"{name}={m.value}" for name, m in cookies.items())
    expires_at = _morsel_expiry(pass_cookie, now)
    if expires_at is None:
        expires_at = now + DEFAULT_SESSION_LIFETIME
    return CredentialSession(cookie_string=cookie_string, expires_at=expires_at)


class NcoreAuthenticator:
    """
    Owns the process-wide tracker session. Concurrent callers share a single
    login; a session is reused until it gets within a second of expiring.
    """

    def __init__(
        self,
        api_client: "NcoreClient",
        username: str,
        password: str,
        clock: Callable[[], float] = time.time,
        events: "SourceEventLogger | None" = None,
    ):
        """
        Args:
            api_client: The client used to submit the login form.
            username: Tracker account name.
            password: Tracker account password.
            clock: Wall-clock time source, injectable for tests.
            events: Optional structured event logger.
        """
        self._api_client = api_client
        self._username = username
        self._password = password
        self._clock = clock
        self._events = events
        self._session: CredentialSession | None = None
        self._lock = asyncio.Lock()

    @property
    def session(self) -> CredentialSession | None:
        return self._session

    async def get_cookies(self) -> str:
        """
        Returns a valid cookie header value, logging in when needed.

        Raises:
            AuthenticationError: If the tracker rejects the login.
        """
        session = self._session
        if session and session.is_valid(self._clock()):
            return session.cookie_string

        async with self._lock:
            # Another caller may have refreshed the session while we waited.
            session = self._session
            if session and session.is_valid(self._clock()):
                return session.cookie_string

            log.info(f"Logging in to nCore as {self._username}...")
            cookies = await self._api_client.submit_login(
                self._username, self._password
            )
            session = session_from_cookies(cookies, self._clock())
            self._session = session
            log.info("[green]✓ Logged in to nCore.[/green]")
            if self._events:
                self._events.login(session.expires_at)
            return session.cookie_string
