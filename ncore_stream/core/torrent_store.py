"""
Owns the set of active torrents: registers them with the transfer engine,
keeps the durable info-hash -> torrent-file mapping in step with them, and
serves byte ranges of their files.
"""

import asyncio
import logging
import shutil
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Optional, Protocol

import aiofiles

from ncore_stream.exceptions import TransferError
from ncore_stream.models.stats import TorrentStoreStats
from ncore_stream.models.torrent import ByteRange, TorrentResource
from ncore_stream.storage.state import PersistedState
from ncore_stream.transfer.engine import TransferEngine
from ncore_stream.utils.batch_fetcher import gather_settled
from ncore_stream.utils.formatting import format_progress, format_size
from ncore_stream.utils.structured_logger import StoreEventLogger
from ncore_stream.utils.torrent_parser import parse_torrent

log = logging.getLogger(__name__)


class RemovableSource(Protocol):
    async def get_removable_info_hashes(self) -> list[str]: ...


def _remove_tree(path: Path) -> None:
    if path.exists():
        shutil.rmtree(path)


class TorrentStore:
    """
    The single owner of the transfer engine handle.

    A resource becomes visible through `get` only after the engine has
    confirmed its metadata; concurrent `add` calls for one file share a
    single registration.
    """

    def __init__(
        self,
        engine: TransferEngine,
        state: PersistedState,
        torrents_dir: Path,
        downloads_dir: Path,
        events: Optional[StoreEventLogger] = None,
    ):
        self.engine = engine
        self.state = state
        self.torrents_dir = torrents_dir
        self.downloads_dir = downloads_dir
        self.events = events
        self._resources: dict[str, TorrentResource] = {}
        self._pending: dict[Path, asyncio.Future[TorrentResource]] = {}

    async def start(self) -> None:
        await self.engine.start()

    async def stop(self) -> None:
        for future in list(self._pending.values()):
            future.cancel()
        await self.engine.stop()
        self._resources.clear()

    def __len__(self) -> int:
        return len(self._resources)

    def resources(self) -> list[TorrentResource]:
        return list(self._resources.values())

    def get(self, info_hash: str) -> Optional[TorrentResource]:
        return self._resources.get(info_hash.lower())

    def _find_by_path(self, torrent_file_path: Path) -> Optional[TorrentResource]:
        info_hash = self.state.find_by_path(torrent_file_path)
        if info_hash is not None and info_hash in self._resources:
            return self._resources[info_hash]
        for resource in self._resources.values():
            if resource.source_file_path == torrent_file_path:
                return resource
        return None

    async def add(self, torrent_file_path: Path) -> TorrentResource:
        """
        Registers the torrent stored at `torrent_file_path`, or returns the
        resource already registered for it.

        Raises:
            TorrentParseError: If the file is not valid torrent metadata.
            OSError: If the file cannot be read or the state cannot be saved.
        """
        path = torrent_file_path.absolute()
        existing = self._find_by_path(path)
        if existing is not None:
            return existing

        future = self._pending.get(path)
        if future is None:
            future = asyncio.ensure_future(self._register(path))
            self._pending[path] = future
            future.add_done_callback(lambda _: self._pending.pop(path, None))
        return await asyncio.shield(future)

    async def _register(self, path: Path) -> TorrentResource:
        async with aiofiles.open(path, "rb") as f:
            parsed = parse_torrent(await f.read())

        existing = self._resources.get(parsed.info_hash)
        if existing is not None:
            log.debug(
                f"'{path.name}' holds already registered torrent {parsed.info_hash}."
            )
            return existing

        download_path = self.downloads_dir / parsed.info_hash
        registered = await self.engine.add(path, download_path)
        try:
            await self.state.set(registered.info_hash, path)
        except OSError:
            await self.engine.remove(registered.info_hash)
            raise

        resource = TorrentResource(
            info_hash=registered.info_hash,
            name=registered.name,
            files=registered.files,
            piece_length=registered.piece_length,
            source_file_path=path,
            download_path=download_path,
        )
        self._resources[resource.info_hash] = resource
        log.info(
            f"[green]Torrent '{resource.name}' ({resource.info_hash[:8]}) "
            "verified and added.[/green]"
        )
        if self.events:
            self.events.torrent_added(
                resource.info_hash, resource.name, len(resource.files), str(path)
            )
        return resource

    async def delete(self, info_hash: str) -> bool:
        """
        Forgets a torrent and removes its downloaded data and torrent file.
        The durable mapping goes first, so an interrupted delete never leaves
        state pointing at a removed resource.

        Returns:
            True if something was deleted, False for an unknown torrent.
        """
        info_hash = info_hash.lower()
        resource = self._resources.get(info_hash)
        torrent_file_path = self.state.get(info_hash)
        if resource is None or torrent_file_path is None:
            log.debug(f"Nothing to delete for {info_hash}.")
            return False

        if await self.state.remove(info_hash) is None:
            log.debug(f"{info_hash} was deleted concurrently.")
            return False
        self._resources.pop(info_hash, None)
        await self.engine.remove(info_hash)
        await asyncio.to_thread(_remove_tree, resource.download_path)
        await asyncio.to_thread(torrent_file_path.unlink, missing_ok=True)

        log.info(f"Deleted torrent '{resource.name}' ({info_hash[:8]}).")
        if self.events:
            self.events.torrent_deleted(info_hash, resource.name)
        return True

    async def load_all(self) -> int:
        """
        Re-registers every persisted torrent plus any untracked .torrent file
        in the torrents directory. Entries whose file is gone are pruned and
        individual failures are logged without stopping the rest.

        Returns:
            The number of torrents loaded.
        """
        persisted = await self.state.load()
        missing = [h for h, p in persisted.items() if not p.is_file()]
        if missing:
            log.warning(
                f"[yellow]Pruning {len(missing)} state entries whose torrent "
                "file no longer exists.[/yellow]"
            )
            await self.state.remove_many(missing)

        paths = [path.absolute() for _, path in self.state.items()]
        if self.torrents_dir.is_dir():
            known = set(paths)
            paths.extend(
                p.absolute()
                for p in sorted(self.torrents_dir.glob("*.torrent"))
                if p.absolute() not in known
            )

        log.info(f"Found {len(paths)} torrent files, loading...")
        outcomes = await gather_settled(self.add(path) for path in paths)
        loaded = 0
        for path, outcome in zip(paths, outcomes, strict=True):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, BaseException):
                log.warning(f"[yellow]Failed to load '{path}': {outcome}[/yellow]")
                if self.events:
                    self.events.torrent_load_failed(str(path), str(outcome))
                continue
            loaded += 1
        log.info(f"Loaded {loaded} of {len(paths)} torrents.")
        return loaded

    async def prioritize(
        self, resource: TorrentResource, file_index: int, offset: int, length: int
    ) -> None:
        """Biases piece acquisition toward a byte window of a file."""
        await self.engine.prioritize(resource.info_hash, file_index, offset, length)

    async def iter_range(
        self,
        resource: TorrentResource,
        file_index: int,
        byte_range: ByteRange,
        chunk_size: int,
    ) -> AsyncIterator[bytes]:
        """
        Yields the bytes of `byte_range`, waiting on the engine as needed.

        Raises:
            TransferError: If the engine returns no data before the range ends.
        """
        offset = byte_range.start
        while offset <= byte_range.end:
            length = min(chunk_size, byte_range.end - offset + 1)
            chunk = await self.engine.read(
                resource.info_hash, file_index, offset, length
            )
            if not chunk:
                raise TransferError(
                    f"No data at offset {offset} of file {file_index} in "
                    f"{resource.info_hash}"
                )
            yield chunk
            offset += len(chunk)

    async def delete_unnecessary(self, source: RemovableSource) -> int:
        """
        Deletes every active torrent the source no longer needs seeded.

        Returns:
            The number of torrents deleted.
        """
        log.info("Gathering unnecessary torrents...")
        removable = await source.get_removable_info_hashes()
        unique = dict.fromkeys(h.lower() for h in removable)
        active = [h for h in unique if h in self._resources]
        log.info(
            f"Found {len(removable)} removable torrents, {len(active)} of them active."
        )
        results = await asyncio.gather(*(self.delete(h) for h in active))
        deleted = sum(1 for r in results if r)
        if self.events:
            self.events.cleanup_completed(len(removable), deleted)
        return deleted

    async def stats(self) -> list[TorrentStoreStats]:
        snapshot = []
        for resource in self.resources():
            status = await self.engine.status(resource.info_hash)
            resource.downloaded_bytes = status.downloaded
            snapshot.append(
                TorrentStoreStats(
                    hash=resource.info_hash,
                    name=resource.name,
                    progress=format_progress(status.downloaded, resource.total_length),
                    size=format_size(resource.total_length),
                    downloaded=format_size(status.downloaded),
                )
            )
        return snapshot
