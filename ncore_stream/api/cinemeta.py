"""
Client for the Cinemeta metadata service, used to resolve a title's display
name from its IMDb id.
"""

import asyncio
import logging
from typing import Optional

import aiohttp

from ncore_stream.exceptions import NotFoundError, SourceUnavailableError

log = logging.getLogger(__name__)


class CinemetaClient:
    """Looks up canonical titles by IMDb id."""

    def __init__(self, base_url: str, timeout_seconds: float = 30):
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._session: Optional[aiohttp.ClientSession] = None

    async def _initialize_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout_seconds)
            )
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()

    async def get_name(self, media_type: str, imdb_id: str) -> str:
        """
        Returns the display name of a title.

        Raises:
            NotFoundError: If the service knows nothing about the id.
            SourceUnavailableError: If the service cannot be reached.
        """
        session = await self._initialize_session()
        url = f"{self.base_url}/meta/{media_type}/{imdb_id}.json"
        try:
            async with session.get(url) as response:
                response.raise_for_status()
                data = await response.json(content_type=None)
        except aiohttp.ClientResponseError as e:
            raise SourceUnavailableError(
                f"Cinemeta answered {e.status} for {imdb_id}"
            ) from e
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise SourceUnavailableError(f"Cinemeta is unreachable: {e!r}") from e

        name = ((data or {}).get("meta") or {}).get("name")
        if not name:
            raise NotFoundError(f"No metadata found for {imdb_id}")
        log.debug(f"Cinemeta resolved {imdb_id} to '{name}'")
        return name
