"""
Downloads .torrent files from the tracker, parses them, and saves them for
the torrent store.
"""

import asyncio
import logging
from pathlib import Path

import aiofiles

from ncore_stream.api.client import NcoreClient
from ncore_stream.models.torrent import ParsedTorrent
from ncore_stream.utils.torrent_parser import parse_torrent

log = logging.getLogger(__name__)


class TorrentService:
    """Fetches torrent metadata on behalf of the aggregator and the play route."""

    def __init__(self, api_client: NcoreClient, torrents_dir: Path):
        self.api_client = api_client
        self.torrents_dir = torrents_dir

    async def download_and_parse(self, url: str) -> ParsedTorrent:
        """Downloads a .torrent and returns its parsed metadata."""
        data = await self.api_client.download_torrent(url)
        return parse_torrent(data)

    async def download_torrent_file(self, url: str) -> Path:
        """
        Downloads a .torrent and stores it as `<info_hash>.torrent` in the
        torrents directory. An existing file for the same hash is reused.

        Returns:
            The path of the saved file.
        """
        data = await self.api_client.download_torrent(url)
        parsed = parse_torrent(data)
        destination = self.torrents_dir / f"{parsed.info_hash}.torrent"

        if await asyncio.to_thread(destination.is_file):
            log.debug(f"Torrent file already present: {destination.name}")
            return destination

        await asyncio.to_thread(self.torrents_dir.mkdir, parents=True, exist_ok=True)
        async with aiofiles.open(destination, "wb") as f:
            await f.write(data)
        log.info(f"Saved torrent file for '{parsed.name}' ({parsed.info_hash[:8]}).")
        return destination
