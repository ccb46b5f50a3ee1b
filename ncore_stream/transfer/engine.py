"""
The boundary between the torrent store and the peer-to-peer transfer engine.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from ncore_stream.models.torrent import TorrentFile


@dataclass(frozen=True)
class EngineTorrent:
    """Metadata of a torrent the engine has registered."""

    info_hash: str
    name: str
    files: tuple[TorrentFile, ...]
    piece_length: int


@dataclass(frozen=True)
class EngineStatus:
    info_hash: str
    progress: float
    downloaded: int
    peers: int = 0
    state: str = ""


class TransferEngine(Protocol):
    """
    Everything the store needs from a transfer engine. Torrents are added
    with every file deselected; bytes are only fetched once a window of a
    file is prioritized or read.
    """

    async def start(self) -> None: ...

    async def stop(self) -> None: ...

    async def add(self, torrent_path: Path, save_path: Path) -> EngineTorrent:
        """Registers a torrent and returns once its metadata is available."""
        ...

    async def remove(self, info_hash: str) -> None:
        """Releases a torrent, leaving downloaded data on disk."""
        ...

    async def prioritize(
        self, info_hash: str, file_index: int, offset: int, length: int
    ) -> None: ...

    async def read(
        self, info_hash: str, file_index: int, offset: int, length: int
    ) -> bytes:
        """Reads bytes of a file, waiting until the pieces holding them arrive."""
        ...

    async def status(self, info_hash: str) -> EngineStatus: ...
