"""
A TransferEngine backed by a single libtorrent session.
"""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path

import aiofiles
import libtorrent as lt

from ncore_stream.exceptions import NotFoundError, TorrentParseError, TransferError
from ncore_stream.models.torrent import TorrentFile

from .engine import EngineStatus, EngineTorrent

log = logging.getLogger(__name__)

TOP_PRIORITY = 7
DONT_DOWNLOAD = 0
PIECE_POLL_INTERVAL = 0.05
# Milliseconds between consecutive piece deadlines inside a read window.
DEADLINE_STEP_MS = 100


@dataclass
class _Entry:
    handle: "lt.torrent_handle"
    info: "lt.torrent_info"
    save_path: Path


class LibtorrentEngine:
    """
    Keeps one libtorrent session alive for the lifetime of the server.

    Files start at priority 0 and storage is sparse, so a torrent costs no
    bandwidth or disk until a window of one of its files is requested.
    """

    def __init__(self, listen_interfaces: str = "0.0.0.0:6881,[::]:6881"):
        self.listen_interfaces = listen_interfaces
        self._session: "lt.session | None" = None
        self._entries: dict[str, _Entry] = {}

    async def start(self) -> None:
        if self._session is not None:
            return
        settings = {
            "listen_interfaces": self.listen_interfaces,
            "alert_mask": lt.alert.category_t.error_notification,
        }
        self._session = await asyncio.to_thread(lt.session, settings)
        log.info(f"Transfer engine listening on {self.listen_interfaces}.")

    async def stop(self) -> None:
        if self._session is None:
            return
        session, self._session = self._session, None
        for entry in self._entries.values():
            session.remove_torrent(entry.handle)
        self._entries.clear()
        await asyncio.to_thread(session.pause)
        log.info("Transfer engine stopped.")

    @property
    def session(self) -> "lt.session":
        if self._session is None:
            raise RuntimeError("Transfer engine is not started.")
        return self._session

    def _entry(self, info_hash: str) -> _Entry:
        entry = self._entries.get(info_hash)
        if entry is None:
            raise NotFoundError(f"Torrent {info_hash} is not registered")
        return entry

    async def add(self, torrent_path: Path, save_path: Path) -> EngineTorrent:
        try:
            info = await asyncio.to_thread(lt.torrent_info, str(torrent_path))
        except RuntimeError as e:
            raise TorrentParseError(f"Cannot load '{torrent_path}': {e}") from e

        info_hash = str(info.info_hash()).lower()
        if info_hash not in self._entries:
            save_path.mkdir(parents=True, exist_ok=True)
            handle = self.session.add_torrent(
                {
                    "ti": info,
                    "save_path": str(save_path),
                    "storage_mode": lt.storage_mode_t.storage_mode_sparse,
                }
            )
            handle.prioritize_files([DONT_DOWNLOAD] * info.num_files())
            self._entries[info_hash] = _Entry(handle, info, save_path)
            log.debug(f"Registered torrent {info_hash} with the session.")

        storage = info.files()
        files = tuple(
            TorrentFile(path=storage.file_path(i), length=storage.file_size(i))
            for i in range(storage.num_files())
        )
        return EngineTorrent(
            info_hash=info_hash,
            name=info.name(),
            files=files,
            piece_length=info.piece_length(),
        )

    async def remove(self, info_hash: str) -> None:
        entry = self._entries.pop(info_hash, None)
        if entry is None:
            return
        # Without the delete_files flag the session leaves the data alone.
        self.session.remove_torrent(entry.handle)
        log.debug(f"Removed torrent {info_hash} from the session.")

    def _pieces_for(
        self, entry: _Entry, file_index: int, offset: int, length: int
    ) -> range:
        file_size = entry.info.files().file_size(file_index)
        if length <= 0 or offset >= file_size:
            return range(0)
        last = min(offset + length, file_size) - 1
        first_piece = entry.info.map_file(file_index, offset, 1).piece
        last_piece = entry.info.map_file(file_index, last, 1).piece
        return range(first_piece, last_piece + 1)

    def _request_pieces(self, entry: _Entry, file_index: int, pieces: range) -> None:
        handle = entry.handle
        if handle.file_priority(file_index) == DONT_DOWNLOAD:
            handle.file_priority(file_index, 1)
        handle.set_sequential_download(True)
        for step, piece in enumerate(pieces):
            if handle.have_piece(piece):
                continue
            handle.piece_priority(piece, TOP_PRIORITY)
            handle.set_piece_deadline(piece, step * DEADLINE_STEP_MS)

    async def prioritize(
        self, info_hash: str, file_index: int, offset: int, length: int
    ) -> None:
        entry = self._entry(info_hash)
        pieces = self._pieces_for(entry, file_index, offset, length)
        self._request_pieces(entry, file_index, pieces)
        log.debug(
            f"Prioritized pieces {pieces.start}-{pieces.stop - 1} of {info_hash}."
        )

    async def read(
        self, info_hash: str, file_index: int, offset: int, length: int
    ) -> bytes:
        entry = self._entry(info_hash)
        pieces = self._pieces_for(entry, file_index, offset, length)
        if not pieces:
            return b""
        self._request_pieces(entry, file_index, pieces)
        while not all(entry.handle.have_piece(p) for p in pieces):
            await asyncio.sleep(PIECE_POLL_INTERVAL)
            if self._entries.get(info_hash) is not entry:
                raise NotFoundError(f"Torrent {info_hash} was removed during a read")

        file_path = entry.save_path / entry.info.files().file_path(file_index)
        try:
            async with aiofiles.open(file_path, "rb") as f:
                await f.seek(offset)
                return await f.read(length)
        except OSError as e:
            raise TransferError(f"Cannot read '{file_path}': {e}") from e

    async def status(self, info_hash: str) -> EngineStatus:
        entry = self._entry(info_hash)
        s = entry.handle.status()
        return EngineStatus(
            info_hash=info_hash,
            progress=float(s.progress),
            downloaded=int(s.total_wanted_done),
            peers=int(s.num_peers),
            state=str(s.state),
        )
